"""Aggregation of stored events into daily summaries and context digests.

Summaries are read-only projections recomputed on demand; nothing here is
persisted. Each event counts as one unit of active time, an approximation
of one capture interval.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, tzinfo

from contextlens.classifier.skills import dedupe_skills
from contextlens.models import (
    Commitment,
    CommitmentStatus,
    ContextEvent,
    ContextEventType,
    SkillSignal,
)
from contextlens.store import EventStore

TOP_APPLICATIONS_LIMIT = 10
DIGEST_ENTITY_EVENTS = 10
DIGEST_ENTITY_LIMIT = 10
DIGEST_COMMITMENT_LIMIT = 5
DIGEST_APP_LIMIT = 5

_OPEN_STATUSES = frozenset({CommitmentStatus.DETECTED, CommitmentStatus.PENDING_ACTION})


@dataclass
class AppUsage:
    app: str
    duration: int
    activities: list[str] = field(default_factory=list)


@dataclass
class DailySummary:
    date: date
    total_active_time: int = 0
    top_applications: list[AppUsage] = field(default_factory=list)
    achievements: list[str] = field(default_factory=list)
    commitments_made: list[Commitment] = field(default_factory=list)
    commitments_fulfilled: list[Commitment] = field(default_factory=list)
    commitments_missed: list[Commitment] = field(default_factory=list)
    skills_exercised: list[SkillSignal] = field(default_factory=list)
    context_switch_count: int = 0
    opportunities_surfaced: int = 0


def day_bounds(day: date, tz: tzinfo | None = None) -> tuple[datetime, datetime]:
    """Start and end of ``day`` as aware datetimes (local time when tz is None)."""
    start = datetime.combine(day, time.min)
    end = datetime.combine(day + timedelta(days=1), time.min)
    if tz is None:
        return start.astimezone(), end.astimezone()
    return start.replace(tzinfo=tz), end.replace(tzinfo=tz)


def summarize_events(day: date, events: Iterable[ContextEvent]) -> DailySummary:
    """Fold a day's events into a DailySummary."""
    summary = DailySummary(date=day)
    usage: dict[str, AppUsage] = {}
    commitments: list[Commitment] = []
    skills: list[SkillSignal] = []

    for event in sorted(events, key=lambda e: (e.timestamp, e.id or 0)):
        summary.total_active_time += 1
        app = usage.setdefault(event.source.application, AppUsage(app=event.source.application, duration=0))
        app.duration += 1
        intent = event.payload.intent
        if intent and intent not in app.activities:
            app.activities.append(intent)

        commitments.extend(event.payload.commitments)
        skills.extend(event.payload.skill_signals)

        if event.event_type == ContextEventType.TASK_COMPLETED:
            summary.achievements.append(event.payload.summary)
        elif event.event_type == ContextEventType.CONTEXT_SWITCH:
            summary.context_switch_count += 1
        elif event.event_type == ContextEventType.OPPORTUNITY_DETECTED:
            summary.opportunities_surfaced += 1

    summary.top_applications = sorted(usage.values(), key=lambda a: -a.duration)[
        :TOP_APPLICATIONS_LIMIT
    ]
    summary.commitments_made = [c for c in commitments if c.status in _OPEN_STATUSES]
    summary.commitments_fulfilled = [c for c in commitments if c.status == CommitmentStatus.FULFILLED]
    summary.commitments_missed = [c for c in commitments if c.status == CommitmentStatus.OVERDUE]
    summary.skills_exercised = dedupe_skills(skills)
    return summary


async def daily_summary(store: EventStore, day: date, tz: tzinfo | None = None) -> DailySummary:
    """Build the summary for ``day`` from the store."""
    start, end = day_bounds(day, tz)
    events = await store.get_by_time_range(start, end)
    return summarize_events(day, events)


def build_context_digest(
    recent_events: list[ContextEvent],
    commitment_events: Iterable[ContextEvent] = (),
    tz: tzinfo | None = None,
) -> str:
    """Plain-text digest of current activity for an assistant-facing consumer.

    ``recent_events`` must be newest first. Returns "" when there is no
    recent activity.
    """
    if not recent_events:
        return ""

    latest = recent_events[0]
    lines = ["--- Context ---", f"Current: {latest.payload.summary}"]
    if latest.payload.intent:
        lines.append(f"Intent: {latest.payload.intent}")

    switches = sum(1 for e in recent_events if e.event_type == ContextEventType.CONTEXT_SWITCH)
    if switches:
        lines.append(f"Context switches (recent): {switches}")

    entities: dict[str, None] = {}
    for event in recent_events[:DIGEST_ENTITY_EVENTS]:
        for entity in event.payload.entities:
            entities.setdefault(entity)
    if entities:
        lines.append(f"Mentioned: {', '.join(list(entities)[:DIGEST_ENTITY_LIMIT])}")

    pending = [
        c for e in commitment_events for c in e.payload.commitments if c.status in _OPEN_STATUSES
    ]
    if pending:
        lines.append(f"Pending commitments ({len(pending)}):")
        for c in pending[:DIGEST_COMMITMENT_LIMIT]:
            due = f" (due: {c.due_date.astimezone(tz):%Y-%m-%d %H:%M})" if c.due_date else ""
            lines.append(f"  - {c.description}{due}")

    apps = list(dict.fromkeys(e.source.application for e in recent_events))
    lines.append(f"Recent apps: {', '.join(apps[:DIGEST_APP_LIMIT])}")
    lines.append("---")
    return "\n".join(lines)
