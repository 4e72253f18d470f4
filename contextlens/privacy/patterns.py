"""Pattern tables for the privacy filter.

Sensitive app names, known browsers, private-window markers and the ordered
PII substitution list. Substitution order matters: card, SSN and IP patterns
must run before the looser phone pattern, and the bearer pattern before the
mixed-case token pattern so a whole bearer credential is replaced at once.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass

# Case-insensitive substrings of application names that are never captured.
SENSITIVE_APP_PATTERNS: tuple[str, ...] = (
    # -- Password managers ----------------------------------------------------
    "password",
    "1password",
    "lastpass",
    "keychain",
    "bitwarden",
    "dashlane",
    "keepass",
    # -- Banking and payments -------------------------------------------------
    "banking",
    "chase",
    "wells fargo",
    "bank of america",
    "credit card",
    "venmo",
    "paypal",
    "zelle",
    "wise",
    "revolut",
    # -- Health ---------------------------------------------------------------
    "medical",
    "health",
    "doctor",
    "pharmacy",
    "hipaa",
    "mychart",
    # -- Privacy indicators ---------------------------------------------------
    "private",
    "incognito",
    "vpn",
    # -- System security panels -----------------------------------------------
    "system preferences",
    "system settings",
    "security",
    "filevault",
)

BROWSER_APPS: tuple[str, ...] = (
    "google chrome",
    "chrome",
    "chromium",
    "firefox",
    "safari",
    "microsoft edge",
    "arc",
    "brave browser",
    "opera",
    "vivaldi",
)

PRIVATE_WINDOW_MARKERS: tuple[str, ...] = (
    "private browsing",
    "incognito",
    "inprivate",
    "private window",
    "private tab",
)


@dataclass(frozen=True)
class PIIPattern:
    """A compiled PII substitution with its replacement text.

    When ``accept`` is set, a match is replaced only if it returns True.
    """

    name: str
    pattern: re.Pattern[str]
    replacement: str
    accept: Callable[[str], bool] | None = None

    def apply(self, text: str) -> str:
        if self.accept is None:
            return self.pattern.sub(self.replacement, text)
        accept = self.accept
        return self.pattern.sub(
            lambda m: self.replacement if accept(m.group(0)) else m.group(0), text
        )


def _mixed_alnum(token: str) -> bool:
    return (
        any(c.isdigit() for c in token)
        and any(c.islower() for c in token)
        and any(c.isupper() for c in token)
    )


PII_PATTERNS: list[PIIPattern] = [
    PIIPattern(
        name="email",
        pattern=re.compile(r"[\w.+-]+@[\w-]+(?:\.[\w-]+)*\.[A-Za-z]{2,}"),
        replacement="[email]",
    ),
    PIIPattern(
        name="card",
        pattern=re.compile(r"\b\d{4}[\s-]?\d{4}[\s-]?\d{4}[\s-]?\d{4}\b"),
        replacement="[card]",
    ),
    PIIPattern(
        name="ssn",
        pattern=re.compile(r"\b\d{3}-\d{2}-\d{4}\b"),
        replacement="[ssn]",
    ),
    PIIPattern(
        name="ip",
        pattern=re.compile(r"\b\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}\b"),
        replacement="[ip]",
    ),
    PIIPattern(
        name="phone",
        pattern=re.compile(r"(?:\+\d{1,3}[\s-]?)?\(?\b\d{3}\)?[\s.-]\d{3}[\s.-]\d{4}\b"),
        replacement="[phone]",
    ),
    PIIPattern(
        name="hex_token",
        pattern=re.compile(r"\b[a-fA-F0-9]{32,}\b"),
        replacement="[token]",
    ),
    PIIPattern(
        name="bearer",
        pattern=re.compile(r"Bearer\s+[A-Za-z0-9._~+/=-]{8,}", re.IGNORECASE),
        replacement="Bearer [token]",
    ),
    # Base64-like runs count only when they mix digits and both letter cases,
    # so long ordinary words survive.
    PIIPattern(
        name="mixed_token",
        pattern=re.compile(r"\b[A-Za-z0-9_-]{32,}"),
        replacement="[token]",
        accept=_mixed_alnum,
    ),
]
