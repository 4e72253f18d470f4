"""Activity category tables.

Application names map to activity categories through an ordered rule list:
the first rule with a keyword contained in the lowercased app name wins, so
more specific keywords must come before looser ones. Email apps are then
refined into compose or read.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from contextlens.models import ActivityCategory

# Pseudo-application name used for file-system events.
FILE_SYSTEM_APP = "File System"


@dataclass(frozen=True)
class AppCategoryRule:
    """Maps any of ``keywords`` (lowercase app-name substrings) to a category."""

    category: ActivityCategory
    keywords: tuple[str, ...]

    def matches(self, app_lower: str) -> bool:
        return any(kw in app_lower for kw in self.keywords)


APP_CATEGORY_RULES: list[AppCategoryRule] = [
    AppCategoryRule(
        ActivityCategory.EMAIL_COMPOSE,
        ("mail", "outlook", "gmail", "thunderbird", "spark", "airmail"),
    ),
    AppCategoryRule(ActivityCategory.CALENDAR, ("calendar", "fantastical")),
    AppCategoryRule(
        ActivityCategory.CODING,
        (
            "visual studio code",
            "vs code",
            "vscode",
            "code",
            "xcode",
            "intellij",
            "pycharm",
            "webstorm",
            "sublime text",
            "neovim",
            "vim",
            "cursor",
            "zed",
        ),
    ),
    AppCategoryRule(
        ActivityCategory.COMMUNICATION,
        ("slack", "discord", "teams", "messages", "whatsapp", "telegram"),
    ),
    AppCategoryRule(
        ActivityCategory.MEETING,
        ("zoom", "google meet", "facetime", "webex", "skype"),
    ),
    AppCategoryRule(
        ActivityCategory.DESIGN,
        ("figma", "sketch", "adobe photoshop", "adobe illustrator", "canva"),
    ),
    AppCategoryRule(
        ActivityCategory.DOCUMENT_EDITING,
        ("notion", "obsidian", "word", "pages", "google docs", "notes", "bear"),
    ),
    AppCategoryRule(
        ActivityCategory.SPREADSHEET,
        ("numbers", "microsoft excel", "excel", "google sheets"),
    ),
    AppCategoryRule(ActivityCategory.TERMINAL, ("terminal", "iterm", "warp", "hyper")),
    AppCategoryRule(
        ActivityCategory.BROWSING,
        ("chrome", "safari", "firefox", "arc", "brave", "edge", "opera"),
    ),
]

# Window-title fallbacks for applications no rule recognises.
TITLE_FALLBACK_RULES: list[tuple[re.Pattern[str], ActivityCategory]] = [
    (re.compile(r"compose|new message", re.IGNORECASE), ActivityCategory.EMAIL_COMPOSE),
    (re.compile(r"inbox|mail", re.IGNORECASE), ActivityCategory.EMAIL_READ),
    (re.compile(r"calendar|event", re.IGNORECASE), ActivityCategory.CALENDAR),
]

# Email refinement by window title, checked in order.
EMAIL_TITLE_RULES: list[tuple[re.Pattern[str], ActivityCategory]] = [
    (re.compile(r"inbox|- mail", re.IGNORECASE), ActivityCategory.EMAIL_READ),
    (re.compile(r"compose|new message|draft|^re:|^fwd?:", re.IGNORECASE), ActivityCategory.EMAIL_COMPOSE),
]
EMAIL_COMPOSE_MARKERS: tuple[str, ...] = ("to:", "subject:")

EMAIL_CATEGORIES = frozenset({ActivityCategory.EMAIL_COMPOSE, ActivityCategory.EMAIL_READ})
COMMUNICATION_CATEGORIES = frozenset(
    {
        ActivityCategory.COMMUNICATION,
        ActivityCategory.MEETING,
        ActivityCategory.EMAIL_COMPOSE,
        ActivityCategory.EMAIL_READ,
    }
)

# Category pairs that do not count as a context switch, in either direction.
RELATED_CATEGORIES: frozenset[frozenset[ActivityCategory]] = frozenset(
    {
        frozenset({ActivityCategory.CODING, ActivityCategory.TERMINAL}),
        frozenset({ActivityCategory.EMAIL_COMPOSE, ActivityCategory.EMAIL_READ}),
        frozenset({ActivityCategory.DOCUMENT_EDITING, ActivityCategory.SPREADSHEET}),
        frozenset({ActivityCategory.BROWSING, ActivityCategory.DOCUMENT_EDITING}),
    }
)

ACTIVITY_LABELS: dict[ActivityCategory, str] = {
    ActivityCategory.EMAIL_COMPOSE: "Composing email",
    ActivityCategory.EMAIL_READ: "Reading email",
    ActivityCategory.CALENDAR: "Managing calendar",
    ActivityCategory.CODING: "Writing code",
    ActivityCategory.DOCUMENT_EDITING: "Editing document",
    ActivityCategory.BROWSING: "Browsing web",
    ActivityCategory.COMMUNICATION: "Communicating",
    ActivityCategory.MEETING: "In meeting",
    ActivityCategory.DESIGN: "Designing",
    ActivityCategory.SPREADSHEET: "Working on spreadsheet",
    ActivityCategory.TERMINAL: "Using terminal",
    ActivityCategory.OTHER: "Using application",
}

ACTIVITY_INTENTS: dict[ActivityCategory, str] = {
    ActivityCategory.EMAIL_COMPOSE: "composing email message",
    ActivityCategory.EMAIL_READ: "reviewing emails",
    ActivityCategory.CALENDAR: "reviewing schedule",
    ActivityCategory.CODING: "writing or editing code",
    ActivityCategory.DOCUMENT_EDITING: "editing document content",
    ActivityCategory.BROWSING: "researching or browsing",
    ActivityCategory.COMMUNICATION: "communicating with team",
    ActivityCategory.MEETING: "participating in meeting",
    ActivityCategory.DESIGN: "creating visual designs",
    ActivityCategory.SPREADSHEET: "analyzing data in spreadsheet",
    ActivityCategory.TERMINAL: "running commands",
    ActivityCategory.OTHER: "general application use",
}
CALENDAR_CREATE_INTENT = "creating calendar event"
CALENDAR_CREATE_PATTERN = re.compile(r"\bcreate\b|\bnew event\b", re.IGNORECASE)


def match_app_rule(
    app_name: str, rules: list[AppCategoryRule] | None = None
) -> ActivityCategory | None:
    """Return the category of the first app rule matching ``app_name``."""
    app_lower = app_name.lower()
    for rule in rules if rules is not None else APP_CATEGORY_RULES:
        if rule.matches(app_lower):
            return rule.category
    return None


def category_from_title(window_title: str) -> ActivityCategory:
    for pattern, category in TITLE_FALLBACK_RULES:
        if pattern.search(window_title):
            return category
    return ActivityCategory.OTHER


def refine_email(window_title: str, text: str) -> ActivityCategory:
    """Split an email app observation into compose or read."""
    for pattern, category in EMAIL_TITLE_RULES:
        if pattern.search(window_title):
            return category
    text_lower = text.lower()
    if all(marker in text_lower for marker in EMAIL_COMPOSE_MARKERS):
        return ActivityCategory.EMAIL_COMPOSE
    return ActivityCategory.EMAIL_READ


def is_related(a: ActivityCategory, b: ActivityCategory) -> bool:
    return frozenset({a, b}) in RELATED_CATEGORIES
