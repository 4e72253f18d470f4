"""Data model for observations and classified context events.

Observations and file changes are ephemeral: they live for one pipeline
pass. ContextEvents are the unit of record and are persisted by the
EventStore. Payloads serialize to plain dicts for the JSON payload column.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any


class ContextEventType(enum.StrEnum):
    COMMITMENT_DETECTED = "commitment_detected"
    CONTEXT_SWITCH = "context_switch"
    COMMUNICATION_EVENT = "communication_event"
    DOCUMENT_INTERACTION = "document_interaction"
    SKILL_SIGNAL = "skill_signal"
    TASK_STARTED = "task_started"
    TASK_COMPLETED = "task_completed"
    OPPORTUNITY_DETECTED = "opportunity_detected"


class PrivacyLevel(enum.StrEnum):
    LOCAL_ONLY = "local_only"
    SYNC_ALLOWED = "sync_allowed"


class CommitmentStatus(enum.StrEnum):
    DETECTED = "detected"
    PENDING_ACTION = "pending_action"
    FULFILLED = "fulfilled"
    OVERDUE = "overdue"


class RequiredAction(enum.StrEnum):
    SEND_EMAIL = "send_email"
    CREATE_EVENT = "create_event"
    SEND_FILE = "send_file"
    FOLLOW_UP = "follow_up"
    MAKE_CALL = "make_call"
    DEADLINE = "deadline"


class Proficiency(enum.StrEnum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    EXPERT = "expert"

    @property
    def rank(self) -> int:
        return _PROFICIENCY_ORDER.index(self)


_PROFICIENCY_ORDER = [
    Proficiency.BEGINNER,
    Proficiency.INTERMEDIATE,
    Proficiency.ADVANCED,
    Proficiency.EXPERT,
]


class ActivityCategory(enum.StrEnum):
    CODING = "coding"
    TERMINAL = "terminal"
    EMAIL_COMPOSE = "email_compose"
    EMAIL_READ = "email_read"
    CALENDAR = "calendar"
    COMMUNICATION = "communication"
    MEETING = "meeting"
    DESIGN = "design"
    DOCUMENT_EDITING = "document_editing"
    SPREADSHEET = "spreadsheet"
    BROWSING = "browsing"
    OTHER = "other"


class FileChangeKind(enum.StrEnum):
    CREATED = "created"
    MODIFIED = "modified"
    RENAMED = "renamed"
    DELETED = "deleted"


def _to_epoch(value: datetime | None) -> float | None:
    return value.timestamp() if value is not None else None


def _from_epoch(value: float | None) -> datetime | None:
    return datetime.fromtimestamp(value, tz=UTC) if value is not None else None


# ---------------------------------------------------------------------------
# Ephemeral capture records
# ---------------------------------------------------------------------------


@dataclass
class Observation:
    """One snapshot of the focused window, produced by a capture source."""

    timestamp: datetime
    app_name: str
    window_title: str = ""
    visible_text: str = ""
    focused_text: str = ""
    focused_role: str | None = None
    url: str | None = None
    file_path: str | None = None

    @property
    def content(self) -> str:
        """The text used for dedup hashing: visible, else focused, else title."""
        return self.visible_text or self.focused_text or self.window_title


@dataclass
class FileChange:
    """A debounced change to a tracked file in a watched directory."""

    timestamp: datetime
    kind: FileChangeKind
    path: str
    file_name: str
    directory: str
    extension: str


# ---------------------------------------------------------------------------
# Durable event model
# ---------------------------------------------------------------------------


@dataclass
class Commitment:
    """A detected promise or obligation."""

    description: str
    due_date: datetime | None = None
    involved_parties: list[str] = field(default_factory=list)
    status: CommitmentStatus = CommitmentStatus.DETECTED
    required_action: RequiredAction | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "description": self.description,
            "due_date": _to_epoch(self.due_date),
            "involved_parties": list(self.involved_parties),
            "status": self.status.value,
            "required_action": self.required_action.value if self.required_action else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Commitment:
        action = data.get("required_action")
        return cls(
            description=data["description"],
            due_date=_from_epoch(data.get("due_date")),
            involved_parties=list(data.get("involved_parties", [])),
            status=CommitmentStatus(data.get("status", CommitmentStatus.DETECTED)),
            required_action=RequiredAction(action) if action else None,
        )


@dataclass(frozen=True)
class SkillSignal:
    """Evidence that the user exercised a skill or tool. Immutable."""

    skill_category: str
    skill_path: tuple[str, ...]
    proficiency: Proficiency
    evidence: str

    @property
    def path_key(self) -> str:
        return "/".join(self.skill_path)

    def to_dict(self) -> dict[str, Any]:
        return {
            "skill_category": self.skill_category,
            "skill_path": list(self.skill_path),
            "proficiency": self.proficiency.value,
            "evidence": self.evidence,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SkillSignal:
        return cls(
            skill_category=data["skill_category"],
            skill_path=tuple(data["skill_path"]),
            proficiency=Proficiency(data["proficiency"]),
            evidence=data.get("evidence", ""),
        )


@dataclass
class EventSource:
    application: str
    window_title: str = ""
    url: str | None = None
    file_path: str | None = None


@dataclass
class SemanticPayload:
    summary: str
    entities: list[str] = field(default_factory=list)
    intent: str | None = None
    commitments: list[Commitment] = field(default_factory=list)
    skill_signals: list[SkillSignal] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": self.summary,
            "entities": list(self.entities),
            "intent": self.intent,
            "commitments": [c.to_dict() for c in self.commitments],
            "skill_signals": [s.to_dict() for s in self.skill_signals],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SemanticPayload:
        return cls(
            summary=data.get("summary", ""),
            entities=list(data.get("entities", [])),
            intent=data.get("intent"),
            commitments=[Commitment.from_dict(c) for c in data.get("commitments", [])],
            skill_signals=[SkillSignal.from_dict(s) for s in data.get("skill_signals", [])],
        )


@dataclass
class ContextEvent:
    """A classified, privacy-graded activity record.

    Only ``synced`` changes after the event is stored. Corrections are
    recorded as new events.
    """

    timestamp: datetime
    event_type: ContextEventType
    source: EventSource
    payload: SemanticPayload
    confidence: float = 0.5
    privacy_level: PrivacyLevel = PrivacyLevel.SYNC_ALLOWED
    synced: bool = False
    id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "source": {
                "application": self.source.application,
                "window_title": self.source.window_title,
                "url": self.source.url,
                "file_path": self.source.file_path,
            },
            "payload": self.payload.to_dict(),
            "confidence": self.confidence,
            "privacy_level": self.privacy_level.value,
            "synced": self.synced,
        }
