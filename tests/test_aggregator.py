"""Tests for daily summaries and the context digest."""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta

import pytest

from contextlens.aggregator import build_context_digest, daily_summary, day_bounds, summarize_events
from contextlens.models import (
    Commitment,
    CommitmentStatus,
    ContextEvent,
    ContextEventType,
    EventSource,
    Proficiency,
    SemanticPayload,
    SkillSignal,
)

DAY = date(2026, 10, 19)
MORNING = datetime(2026, 10, 19, 9, 0, tzinfo=UTC)

PYTHON = ("Technology", "Programming Languages", "Python")


def _event(
    minutes: int,
    app: str = "Notion",
    event_type: ContextEventType = ContextEventType.DOCUMENT_INTERACTION,
    summary: str = "Editing document in Notion: Plan",
    intent: str | None = "editing document content",
    entities: list[str] | None = None,
    commitments: list[Commitment] | None = None,
    skills: list[SkillSignal] | None = None,
) -> ContextEvent:
    return ContextEvent(
        timestamp=MORNING + timedelta(minutes=minutes),
        event_type=event_type,
        source=EventSource(application=app),
        payload=SemanticPayload(
            summary=summary,
            entities=entities or [],
            intent=intent,
            commitments=commitments or [],
            skill_signals=skills or [],
        ),
    )


def _skill(proficiency: Proficiency) -> SkillSignal:
    return SkillSignal("Technology", PYTHON, proficiency, "test")


# ---------------------------------------------------------------------------
# Daily summary
# ---------------------------------------------------------------------------


class TestSummarizeEvents:
    def test_empty_day(self):
        summary = summarize_events(DAY, [])
        assert summary.date == DAY
        assert summary.total_active_time == 0
        assert summary.top_applications == []

    def test_app_usage_and_activities(self):
        events = [
            _event(0),
            _event(1, intent="editing document content"),
            _event(2, app="Slack", intent="communicating with team"),
            _event(3, intent=None),
        ]

        summary = summarize_events(DAY, events)

        assert summary.total_active_time == 4
        assert [(a.app, a.duration) for a in summary.top_applications] == [("Notion", 3), ("Slack", 1)]
        assert summary.top_applications[0].activities == ["editing document content"]

    def test_event_type_counters(self):
        events = [
            _event(0, event_type=ContextEventType.CONTEXT_SWITCH),
            _event(1, event_type=ContextEventType.CONTEXT_SWITCH),
            _event(2, event_type=ContextEventType.TASK_COMPLETED, summary="Shipped v2"),
            _event(3, event_type=ContextEventType.OPPORTUNITY_DETECTED),
        ]

        summary = summarize_events(DAY, events)

        assert summary.context_switch_count == 2
        assert summary.achievements == ["Shipped v2"]
        assert summary.opportunities_surfaced == 1

    def test_commitments_bucketed_by_status(self):
        commitments = [
            Commitment("a", status=CommitmentStatus.DETECTED),
            Commitment("b", status=CommitmentStatus.PENDING_ACTION),
            Commitment("c", status=CommitmentStatus.FULFILLED),
            Commitment("d", status=CommitmentStatus.OVERDUE),
        ]
        summary = summarize_events(
            DAY, [_event(0, event_type=ContextEventType.COMMITMENT_DETECTED, commitments=commitments)]
        )

        assert [c.description for c in summary.commitments_made] == ["a", "b"]
        assert [c.description for c in summary.commitments_fulfilled] == ["c"]
        assert [c.description for c in summary.commitments_missed] == ["d"]

    def test_skills_deduplicated(self):
        events = [
            _event(0, skills=[_skill(Proficiency.BEGINNER)]),
            _event(1, skills=[_skill(Proficiency.ADVANCED)]),
        ]
        summary = summarize_events(DAY, events)

        [skill] = summary.skills_exercised
        assert skill.proficiency == Proficiency.ADVANCED


def test_day_bounds_utc():
    start, end = day_bounds(DAY, UTC)
    assert start == datetime(2026, 10, 19, tzinfo=UTC)
    assert end == datetime(2026, 10, 20, tzinfo=UTC)


@pytest.mark.asyncio
async def test_daily_summary_reads_only_that_day(event_store):
    await event_store.insert(_event(0))
    await event_store.insert(_event(60, app="Slack"))
    await event_store.insert(_event(-60 * 10))  # previous day, 23:00
    await event_store.insert(_event(60 * 15))  # next day, 00:00

    summary = await daily_summary(event_store, DAY, UTC)

    assert summary.total_active_time == 2
    assert {a.app for a in summary.top_applications} == {"Notion", "Slack"}


# ---------------------------------------------------------------------------
# Context digest
# ---------------------------------------------------------------------------


class TestContextDigest:
    def test_no_recent_activity(self):
        assert build_context_digest([]) == ""

    def test_full_digest(self):
        recent = [
            _event(
                10,
                app="Slack",
                event_type=ContextEventType.CONTEXT_SWITCH,
                summary="Communicating in Slack: #proj",
                intent="communicating with team",
                entities=["Sarah Chen"],
            ),
            _event(5, app="Visual Studio Code", entities=["Project Phoenix", "Sarah Chen"]),
            _event(0, app="Slack"),
        ]
        commitment_events = [
            _event(
                0,
                app="Slack",
                event_type=ContextEventType.COMMITMENT_DETECTED,
                commitments=[
                    Commitment(
                        "I'll send you the proposal by Friday.",
                        due_date=datetime(2026, 10, 23, 9, 0, tzinfo=UTC),
                    ),
                    Commitment("Done already", status=CommitmentStatus.FULFILLED),
                    Commitment("Let me schedule a review.", status=CommitmentStatus.PENDING_ACTION),
                ],
            )
        ]

        digest = build_context_digest(recent, commitment_events, UTC)

        assert digest.splitlines() == [
            "--- Context ---",
            "Current: Communicating in Slack: #proj",
            "Intent: communicating with team",
            "Context switches (recent): 1",
            "Mentioned: Sarah Chen, Project Phoenix",
            "Pending commitments (2):",
            "  - I'll send you the proposal by Friday. (due: 2026-10-23 09:00)",
            "  - Let me schedule a review.",
            "Recent apps: Slack, Visual Studio Code",
            "---",
        ]

    def test_minimal_digest(self):
        digest = build_context_digest([_event(0, intent=None)])
        assert digest.splitlines() == [
            "--- Context ---",
            "Current: Editing document in Notion: Plan",
            "Recent apps: Notion",
            "---",
        ]
