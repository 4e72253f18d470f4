"""Event classifier: turns a filtered observation into a ContextEvent.

Classification is a pure heuristic over the observation's text apart from
one piece of rolling state, the previous app and category, used to detect
context switches. Each pipeline owns its own classifier instance.

Event type is resolved by an ordered rule list; the first rule whose
predicate holds wins:
commitment_detected > context_switch > communication_event > skill_signal
> document_interaction.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import tzinfo
from pathlib import Path

import yaml

from contextlens.classifier.categories import (
    ACTIVITY_INTENTS,
    ACTIVITY_LABELS,
    APP_CATEGORY_RULES,
    CALENDAR_CREATE_INTENT,
    CALENDAR_CREATE_PATTERN,
    COMMUNICATION_CATEGORIES,
    EMAIL_CATEGORIES,
    FILE_SYSTEM_APP,
    AppCategoryRule,
    category_from_title,
    is_related,
    match_app_rule,
    refine_email,
)
from contextlens.classifier.commitments import extract_commitments
from contextlens.classifier.entities import extract_entities
from contextlens.classifier.skills import detect_skill_signals, file_skill_signals
from contextlens.models import (
    ActivityCategory,
    Commitment,
    ContextEvent,
    ContextEventType,
    EventSource,
    FileChange,
    FileChangeKind,
    Observation,
    SemanticPayload,
    SkillSignal,
)

logger = logging.getLogger(__name__)

BASE_CONFIDENCE = 0.5
FILE_EVENT_CONFIDENCE = 0.9
TITLE_SNIPPET_LENGTH = 50


@dataclass
class _Features:
    category: ActivityCategory
    is_switch: bool
    commitments: list[Commitment]
    skill_signals: list[SkillSignal]


@dataclass(frozen=True)
class EventTypeRule:
    event_type: ContextEventType
    applies: Callable[[_Features], bool]


EVENT_TYPE_RULES: list[EventTypeRule] = [
    EventTypeRule(ContextEventType.COMMITMENT_DETECTED, lambda f: bool(f.commitments)),
    EventTypeRule(ContextEventType.CONTEXT_SWITCH, lambda f: f.is_switch),
    EventTypeRule(
        ContextEventType.COMMUNICATION_EVENT, lambda f: f.category in COMMUNICATION_CATEGORIES
    ),
    EventTypeRule(ContextEventType.SKILL_SIGNAL, lambda f: bool(f.skill_signals)),
]
DEFAULT_EVENT_TYPE = ContextEventType.DOCUMENT_INTERACTION


def compute_confidence(text: str, commitments: list[Commitment]) -> float:
    confidence = BASE_CONFIDENCE
    if len(text) > 100:
        confidence += 0.1
    if len(text) > 500:
        confidence += 0.1
    if commitments:
        confidence += 0.2
    return round(min(confidence, 1.0), 2)


class EventClassifier:
    """Rule-based classifier with last-app/last-category switch detection."""

    def __init__(
        self,
        tz: tzinfo | None = None,
        app_rules: list[AppCategoryRule] | None = None,
    ) -> None:
        self.tz = tz
        self.app_rules = app_rules if app_rules is not None else list(APP_CATEGORY_RULES)
        self.last_app: str | None = None
        self.last_category: ActivityCategory | None = None

    @classmethod
    def from_yaml(cls, path: str | Path, tz: tzinfo | None = None) -> EventClassifier:
        """Build a classifier with extra app rules ahead of the built-in ones.

        Expected format::

            app_rules:
              - category: design
                keywords: [affinity, pixelmator]
        """
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        extra = [
            AppCategoryRule(
                category=ActivityCategory(entry["category"]),
                keywords=tuple(kw.lower() for kw in entry["keywords"]),
            )
            for entry in data.get("app_rules", [])
        ]
        logger.info("Loaded %d extra app rules from %s", len(extra), path)
        return cls(tz=tz, app_rules=extra + list(APP_CATEGORY_RULES))

    def reset(self) -> None:
        self.last_app = None
        self.last_category = None

    # ------------------------------------------------------------------
    # Observations
    # ------------------------------------------------------------------

    def detect_category(self, app_name: str, window_title: str, text: str) -> ActivityCategory:
        category = match_app_rule(app_name, self.app_rules)
        if category is None:
            return category_from_title(window_title)
        if category in EMAIL_CATEGORIES:
            return refine_email(window_title, text)
        return category

    def is_context_switch(self, app_name: str, category: ActivityCategory) -> bool:
        if self.last_app is None or self.last_category is None:
            return False
        if app_name == self.last_app or category == self.last_category:
            return False
        return not is_related(self.last_category, category)

    def classify(self, observation: Observation) -> ContextEvent:
        text = observation.visible_text or observation.focused_text or ""
        category = self.detect_category(observation.app_name, observation.window_title, text)

        is_switch = self.is_context_switch(observation.app_name, category)
        self.last_app = observation.app_name
        self.last_category = category

        features = _Features(
            category=category,
            is_switch=is_switch,
            commitments=extract_commitments(text, observation.timestamp, self.tz),
            skill_signals=detect_skill_signals(category, observation.app_name, text),
        )
        event_type = next(
            (rule.event_type for rule in EVENT_TYPE_RULES if rule.applies(features)),
            DEFAULT_EVENT_TYPE,
        )

        return ContextEvent(
            timestamp=observation.timestamp,
            event_type=event_type,
            source=EventSource(
                application=observation.app_name,
                window_title=observation.window_title,
                url=observation.url,
                file_path=observation.file_path,
            ),
            payload=SemanticPayload(
                summary=self._summary(category, observation.app_name, observation.window_title),
                entities=extract_entities(text),
                intent=self._intent(category, text),
                commitments=features.commitments,
                skill_signals=features.skill_signals,
            ),
            confidence=compute_confidence(text, features.commitments),
        )

    @staticmethod
    def _summary(category: ActivityCategory, app_name: str, window_title: str) -> str:
        title = window_title
        if len(title) > TITLE_SNIPPET_LENGTH:
            title = title[:TITLE_SNIPPET_LENGTH] + "..."
        return f"{ACTIVITY_LABELS[category]} in {app_name}: {title}"

    @staticmethod
    def _intent(category: ActivityCategory, text: str) -> str:
        if category == ActivityCategory.CALENDAR and CALENDAR_CREATE_PATTERN.search(text):
            return CALENDAR_CREATE_INTENT
        return ACTIVITY_INTENTS[category]

    # ------------------------------------------------------------------
    # File changes
    # ------------------------------------------------------------------

    def classify_file_event(self, change: FileChange) -> ContextEvent:
        """Classify a file change. Does not touch the switch-detection state."""
        kind = change.kind.value
        skills: list[SkillSignal] = []
        if change.kind != FileChangeKind.DELETED:
            skills = file_skill_signals(change.extension, change.file_name, kind)

        return ContextEvent(
            timestamp=change.timestamp,
            event_type=ContextEventType.DOCUMENT_INTERACTION,
            source=EventSource(
                application=FILE_SYSTEM_APP,
                window_title=change.file_name,
                file_path=change.path,
            ),
            payload=SemanticPayload(
                summary=f"File {kind}: {change.file_name}",
                entities=[change.file_name],
                intent=f"{kind} file",
                skill_signals=skills,
            ),
            confidence=FILE_EVENT_CONFIDENCE,
        )
