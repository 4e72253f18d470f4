"""Skill-signal detection.

The activity category gives a base skill path (extended with the app name).
Coding text is also scanned with per-language fingerprints, and file events
map their extension to a skill.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass

from contextlens.models import ActivityCategory, Proficiency, SkillSignal


@dataclass(frozen=True)
class SkillMapping:
    category: str
    path: tuple[str, ...]


CATEGORY_SKILLS: dict[ActivityCategory, SkillMapping] = {
    ActivityCategory.CODING: SkillMapping("Technology", ("Technology", "Software Development")),
    ActivityCategory.TERMINAL: SkillMapping("Technology", ("Technology", "DevOps")),
    ActivityCategory.EMAIL_COMPOSE: SkillMapping(
        "Communication", ("Communication", "Written Communication")
    ),
    ActivityCategory.EMAIL_READ: SkillMapping("Communication", ("Communication", "Email Management")),
    ActivityCategory.COMMUNICATION: SkillMapping(
        "Communication", ("Communication", "Team Collaboration")
    ),
    ActivityCategory.MEETING: SkillMapping("Communication", ("Communication", "Meetings")),
    ActivityCategory.DOCUMENT_EDITING: SkillMapping("Productivity", ("Productivity", "Documentation")),
    ActivityCategory.SPREADSHEET: SkillMapping("Analytics", ("Analytics", "Data Analysis")),
    ActivityCategory.DESIGN: SkillMapping("Design", ("Design", "Visual Design")),
    ActivityCategory.CALENDAR: SkillMapping("Productivity", ("Productivity", "Time Management")),
    ActivityCategory.BROWSING: SkillMapping("Research", ("Research", "Web Research")),
}

# ---------------------------------------------------------------------------
# Language fingerprints
# ---------------------------------------------------------------------------

LANGUAGE_FINGERPRINTS: list[tuple[str, re.Pattern[str]]] = [
    (
        "TypeScript",
        re.compile(
            r"\binterface\s+\w+\s*\{|\btype\s+\w+\s*=|\benum\s+\w+\s*\{"
            r"|\w\s*:\s*(?:string|number|boolean|void)\b|\bas\s+const\b"
        ),
    ),
    (
        "Python",
        re.compile(
            r"^\s*def\s+\w+\s*\(|^\s*from\s+[\w.]+\s+import\s+\w|^\s*import\s+[\w.]+\s*$"
            r"|\bself\.\w+|\b__\w+__\b|^\s*elif\b",
            re.MULTILINE,
        ),
    ),
    (
        "JavaScript",
        re.compile(
            r"\b(?:const|let|var)\s+\w+\s*=|\bfunction\b|=>|\brequire\(|\bmodule\.exports\b"
            r"|\bconsole\.log\("
        ),
    ),
    (
        "Rust",
        re.compile(r"\bfn\s+\w+\s*[<(]|\blet\s+mut\b|\bimpl\b|\bpub\s+fn\b|\buse\s+\w+::"),
    ),
    (
        "Go",
        re.compile(
            r"\bfunc\s+(?:\(\w+\s+\*?\w+\)\s*)?\w+\s*\(|^\s*package\s+\w+\s*$|\bimport\s*\(|\w\s*:=",
            re.MULTILINE,
        ),
    ),
    (
        "SQL",
        re.compile(
            r"\bSELECT\s+.+?\s+FROM\b|\bINSERT\s+INTO\b|\bUPDATE\s+\w+\s+SET\b"
            r"|\bDELETE\s+FROM\b|\b(?:CREATE|ALTER)\s+TABLE\b|\b(?:INNER|LEFT|RIGHT)?\s*JOIN\s+\w+\s+ON\b"
        ),
    ),
    (
        "HTML",
        re.compile(r"<(?:div|span|p|h[1-6]|a|img|form|table|section|header|footer)\b", re.IGNORECASE),
    ),
    (
        "CSS",
        re.compile(
            r"\{[^}]*(?:display|margin|padding|color|font-size|background|flex|grid)\s*:",
            re.IGNORECASE,
        ),
    ),
]

# ---------------------------------------------------------------------------
# File extensions
# ---------------------------------------------------------------------------

_LANG = ("Technology", "Programming Languages")

EXTENSION_SKILLS: dict[str, SkillMapping] = {
    ".ts": SkillMapping("Technology", (*_LANG, "TypeScript")),
    ".tsx": SkillMapping("Technology", (*_LANG, "TypeScript")),
    ".js": SkillMapping("Technology", (*_LANG, "JavaScript")),
    ".jsx": SkillMapping("Technology", (*_LANG, "JavaScript")),
    ".py": SkillMapping("Technology", (*_LANG, "Python")),
    ".rs": SkillMapping("Technology", (*_LANG, "Rust")),
    ".go": SkillMapping("Technology", (*_LANG, "Go")),
    ".swift": SkillMapping("Technology", (*_LANG, "Swift")),
    ".java": SkillMapping("Technology", (*_LANG, "Java")),
    ".kt": SkillMapping("Technology", (*_LANG, "Kotlin")),
    ".rb": SkillMapping("Technology", (*_LANG, "Ruby")),
    ".css": SkillMapping("Design", ("Design", "Web Design", "CSS")),
    ".scss": SkillMapping("Design", ("Design", "Web Design", "SCSS")),
    ".sql": SkillMapping("Technology", ("Technology", "Databases", "SQL")),
    ".md": SkillMapping("Productivity", ("Productivity", "Documentation", "Markdown")),
    ".docx": SkillMapping("Productivity", ("Productivity", "Documentation", "Word Processing")),
    ".xlsx": SkillMapping("Analytics", ("Analytics", "Spreadsheets")),
    ".csv": SkillMapping("Analytics", ("Analytics", "Spreadsheets")),
    ".psd": SkillMapping("Design", ("Design", "Graphic Design", "Photoshop")),
    ".fig": SkillMapping("Design", ("Design", "UI Design", "Figma")),
}


def estimate_proficiency(text: str) -> Proficiency:
    """Coarse placeholder: beginner without text, intermediate otherwise."""
    return Proficiency.INTERMEDIATE if text else Proficiency.BEGINNER


def detect_languages(text: str) -> list[str]:
    return [lang for lang, pattern in LANGUAGE_FINGERPRINTS if pattern.search(text)]


def detect_skill_signals(category: ActivityCategory, app_name: str, text: str) -> list[SkillSignal]:
    mapping = CATEGORY_SKILLS.get(category)
    if mapping is None:
        return []

    signals = [
        SkillSignal(
            skill_category=mapping.category,
            skill_path=(*mapping.path, app_name),
            proficiency=estimate_proficiency(text),
            evidence=f"Active use of {app_name}",
        )
    ]
    if category == ActivityCategory.CODING and text:
        for lang in detect_languages(text):
            signals.append(
                SkillSignal(
                    skill_category="Technology",
                    skill_path=(*_LANG, lang),
                    proficiency=Proficiency.INTERMEDIATE,
                    evidence=f"Writing {lang} code in {app_name}",
                )
            )
    return signals


def file_skill_signals(extension: str, file_name: str, kind: str) -> list[SkillSignal]:
    mapping = EXTENSION_SKILLS.get(extension.lower())
    if mapping is None:
        return []
    return [
        SkillSignal(
            skill_category=mapping.category,
            skill_path=mapping.path,
            proficiency=Proficiency.INTERMEDIATE,
            evidence=f"{kind.capitalize()} file: {file_name}",
        )
    ]


def dedupe_skills(signals: Iterable[SkillSignal]) -> list[SkillSignal]:
    """Keep one signal per skill path, the one with the highest proficiency."""
    best: dict[str, SkillSignal] = {}
    for signal in signals:
        current = best.get(signal.path_key)
        if current is None or signal.proficiency.rank > current.proficiency.rank:
            best[signal.path_key] = signal
    return list(best.values())
