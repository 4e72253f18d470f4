"""Entity extraction from visible text.

Picks out multi-word capitalized names, @mentions and project, repo,
ticket or PR references. Common capitalized words (UI verbs, days, months)
are filtered out.
"""

from __future__ import annotations

import re

MIN_TEXT_LENGTH = 5
MAX_ENTITIES = 20
MIN_ENTITY_LENGTH = 2
MAX_ENTITY_LENGTH = 49

COMMON_WORDS: frozenset[str] = frozenset(
    {
        "The", "This", "That", "These", "Those", "Here", "There", "Where",
        "When", "What", "Which", "Who", "How", "Why", "From", "With",
        "About", "After", "Before", "Between", "Under", "Over", "Into",
        "Through", "During", "Until", "Against", "Along", "Among",
        "New", "Open", "Close", "Save", "Edit", "View", "Help",
        "File", "Window", "Tools", "Format", "Insert", "Table",
        "Monday", "Tuesday", "Wednesday", "Thursday", "Friday",
        "Saturday", "Sunday", "January", "February", "March", "April",
        "May", "June", "July", "August", "September", "October",
        "November", "December", "Today", "Tomorrow", "Yesterday",
    }
)

_CAPITALIZED_SEQUENCE = re.compile(r"\b([A-Z][a-z]+(?:\s+[A-Z][a-z]+)+)\b")
_MENTION = re.compile(r"@(\w+)")
_REFERENCE = re.compile(
    r"\b(?:project|repo|repository|branch|ticket|issue|PR|pull request)\s+[:#]?\s*([A-Za-z0-9_-]+)",
    re.IGNORECASE,
)


def _trim_name(sequence: str) -> str | None:
    """Drop leading and trailing common words; keep names of 2+ words."""
    words = sequence.split()
    while words and words[0] in COMMON_WORDS:
        words.pop(0)
    while words and words[-1] in COMMON_WORDS:
        words.pop()
    if len(words) < 2:
        return None
    return " ".join(words)


def _acceptable(entity: str) -> bool:
    return (
        entity not in COMMON_WORDS
        and MIN_ENTITY_LENGTH <= len(entity) <= MAX_ENTITY_LENGTH
    )


def extract_entities(text: str) -> list[str]:
    """Return up to 20 unique entities in order of first appearance."""
    if not text or len(text) < MIN_TEXT_LENGTH:
        return []

    found: dict[str, None] = {}
    for match in _CAPITALIZED_SEQUENCE.finditer(text):
        name = _trim_name(match.group(1))
        if name and _acceptable(name):
            found.setdefault(name)
    for pattern in (_MENTION, _REFERENCE):
        for match in pattern.finditer(text):
            entity = match.group(1).strip()
            if _acceptable(entity):
                found.setdefault(entity)
    return list(found)[:MAX_ENTITIES]
