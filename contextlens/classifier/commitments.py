"""Commitment extraction: promises, follow-ups and deadlines in free text.

Rules are matched in list order. Every match becomes a candidate; a candidate
whose normalized text equals or is contained in an already accepted one is
dropped, so a bare deadline phrase inside a fuller promise is not counted
twice. Due dates are resolved from the matched phrase relative to the
observation time.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo

from contextlens.classifier.entities import COMMON_WORDS
from contextlens.models import Commitment, CommitmentStatus, RequiredAction

MIN_TEXT_LENGTH = 10
DEFAULT_DUE_HOUR = 9
END_OF_DAY_HOUR = 17

_WILL = r"\bI(?:['’]ll| will)"
_END = r"(?:\.|!|$)"
_MONTHS = r"(?:jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)"
_WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


@dataclass(frozen=True)
class CommitmentRule:
    action: RequiredAction
    pattern: re.Pattern[str]


def _rule(action: RequiredAction, pattern: str) -> CommitmentRule:
    return CommitmentRule(action, re.compile(pattern, re.IGNORECASE | re.MULTILINE))


COMMITMENT_RULES: list[CommitmentRule] = [
    _rule(
        RequiredAction.SEND_EMAIL,
        _WILL + r" (?:send|email|forward)(?: you| them| him| her)? (?:a |the )?(.+?)" + _END,
    ),
    _rule(
        RequiredAction.CREATE_EVENT,
        _WILL + r" (?:create|schedule|set up|book) (?:a |the )?(?:meeting|event|call|appointment)(.*?)" + _END,
    ),
    _rule(
        RequiredAction.SEND_FILE,
        _WILL + r" (?:send|share|forward) (?:the |a )?(?:file|document|doc|pdf|attachment|report|spreadsheet)(.*?)" + _END,
    ),
    _rule(
        RequiredAction.FOLLOW_UP,
        _WILL + r" (?:follow up|get back to|reach out|circle back|touch base)(.*?)" + _END,
    ),
    _rule(RequiredAction.MAKE_CALL, _WILL + r" (?:call|phone|ring)(.+?)" + _END),
    _rule(
        RequiredAction.FOLLOW_UP,
        r"\blet me (?:send|email|schedule|create|set up|share|forward)(.+?)" + _END,
    ),
    _rule(
        RequiredAction.FOLLOW_UP,
        r"\b(?:going to|gonna) (?:send|email|schedule|create|share)(.+?)" + _END,
    ),
    _rule(
        RequiredAction.FOLLOW_UP,
        r"\b(?:need|have) to (?:send|email|call|follow up|schedule|finish|complete|submit)(.+?)" + _END,
    ),
    _rule(RequiredAction.FOLLOW_UP, r"\bremind(?:er)?(?:\s+me)?\s+to\s+(.+?)" + _END),
    _rule(
        RequiredAction.DEADLINE,
        r"\b(?:by|before|due|deadline)\s+(?:end of (?:the )?day|eod|tomorrow|next week|"
        + "|".join(_WEEKDAYS)
        + r"|"
        + _MONTHS
        + r"\w*\s+\d{1,2})\b",
    ),
    _rule(RequiredAction.FOLLOW_UP, r"\b(?:agreed|promised|committed) to (.+?)" + _END),
]


# ---------------------------------------------------------------------------
# Deadlines
# ---------------------------------------------------------------------------

DeadlineResolver = Callable[[re.Match[str], datetime], datetime | None]


@dataclass(frozen=True)
class DeadlineRule:
    pattern: re.Pattern[str]
    resolve: DeadlineResolver


def _at_hour(moment: datetime, hour: int) -> datetime:
    return moment.replace(hour=hour, minute=0, second=0, microsecond=0)


def _next_weekday(match: re.Match[str], ref: datetime) -> datetime:
    target = _WEEKDAYS.index(match.group(1).lower())
    days_ahead = target - ref.weekday()
    if days_ahead <= 0:
        days_ahead += 7
    return _at_hour(ref + timedelta(days=days_ahead), DEFAULT_DUE_HOUR)


def _month_day(match: re.Match[str], ref: datetime) -> datetime | None:
    month = _MONTH_NAMES.index(match.group(1).lower()[:3]) + 1
    day = int(match.group(2))
    # Feb 29 may be up to four years away.
    for year in range(ref.year, ref.year + 5):
        try:
            candidate = _at_hour(ref.replace(year=year, month=month, day=day), DEFAULT_DUE_HOUR)
        except ValueError:
            continue
        if candidate > ref:
            return candidate
    return None


_MONTH_NAMES = ["jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"]

DEADLINE_RULES: list[DeadlineRule] = [
    DeadlineRule(
        re.compile(r"\b(?:today|end of (?:the )?day|eod|tonight)\b", re.IGNORECASE),
        lambda m, ref: _at_hour(ref, END_OF_DAY_HOUR),
    ),
    DeadlineRule(
        re.compile(r"\btomorrow\b", re.IGNORECASE),
        lambda m, ref: _at_hour(ref + timedelta(days=1), DEFAULT_DUE_HOUR),
    ),
    DeadlineRule(
        re.compile(r"\bnext week\b", re.IGNORECASE),
        lambda m, ref: ref + timedelta(days=7),
    ),
    DeadlineRule(
        re.compile(r"\b(" + "|".join(_WEEKDAYS) + r")\b", re.IGNORECASE),
        _next_weekday,
    ),
    DeadlineRule(
        re.compile(r"\b(" + _MONTHS + r")[a-z]*\.?\s+(\d{1,2})\b", re.IGNORECASE),
        _month_day,
    ),
]


def resolve_deadline(text: str, reference: datetime) -> datetime | None:
    """Resolve the first deadline phrase in ``text`` relative to ``reference``."""
    for rule in DEADLINE_RULES:
        match = rule.pattern.search(text)
        if match:
            return rule.resolve(match, reference)
    return None


# ---------------------------------------------------------------------------
# Parties
# ---------------------------------------------------------------------------

_PARTY_PATTERN = re.compile(r"\b(?:to|with|for)\s+([A-Z][a-z]+(?:\s+[A-Z][a-z]+)?)")
_MENTION_PATTERN = re.compile(r"@(\w+)")


def extract_parties(text: str) -> list[str]:
    """Names after "to/with/for" plus @mentions, unique, in order of appearance."""
    parties: list[str] = []
    for match in _PARTY_PATTERN.finditer(text):
        words = match.group(1).split()
        while words and words[-1] in COMMON_WORDS:
            words.pop()
        if not words or words[0] in COMMON_WORDS:
            continue
        name = " ".join(words)
        if name not in parties:
            parties.append(name)
    for match in _MENTION_PATTERN.finditer(text):
        if match.group(1) not in parties:
            parties.append(match.group(1))
    return parties


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


def _normalize(text: str) -> str:
    return " ".join(text.lower().split()).rstrip(".!")


def extract_commitments(
    text: str,
    observed_at: datetime,
    tz: tzinfo | None = None,
    rules: list[CommitmentRule] | None = None,
) -> list[Commitment]:
    """Extract commitments from ``text``.

    ``observed_at`` anchors relative deadlines; it is converted to ``tz``
    (local time when None) before resolving.
    """
    if not text or len(text) < MIN_TEXT_LENGTH:
        return []

    reference = observed_at.astimezone(tz)
    accepted: list[str] = []
    commitments: list[Commitment] = []
    for rule in rules if rules is not None else COMMITMENT_RULES:
        for match in rule.pattern.finditer(text):
            description = match.group(0).strip()
            normalized = _normalize(description)
            if not normalized or any(normalized in seen for seen in accepted):
                continue
            accepted.append(normalized)
            commitments.append(
                Commitment(
                    description=description,
                    due_date=resolve_deadline(description, reference),
                    involved_parties=extract_parties(description),
                    status=CommitmentStatus.DETECTED,
                    required_action=rule.action,
                )
            )
    return commitments
