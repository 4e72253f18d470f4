"""Tests for commitment, deadline and party extraction."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone

import pytest

from contextlens.classifier import extract_commitments, resolve_deadline
from contextlens.classifier.commitments import extract_parties
from contextlens.models import CommitmentStatus, RequiredAction


class TestExtractCommitments:
    def test_promise_with_weekday_deadline(self, reference_time):
        commitments = extract_commitments(
            "Hi Sarah, I'll send you the updated proposal by Friday. Thanks!",
            reference_time,
            tz=UTC,
        )

        assert len(commitments) == 1
        [commitment] = commitments
        assert commitment.required_action == RequiredAction.SEND_EMAIL
        assert commitment.status == CommitmentStatus.DETECTED
        assert commitment.description == "I'll send you the updated proposal by Friday."
        assert commitment.due_date == datetime(2026, 10, 23, 9, 0, tzinfo=UTC)

    def test_overlapping_rules_yield_one_commitment(self, reference_time):
        commitments = extract_commitments("I'll send the report to Sarah by Friday.", reference_time, tz=UTC)

        [commitment] = commitments
        assert commitment.required_action == RequiredAction.SEND_EMAIL
        assert commitment.involved_parties == ["Sarah"]
        assert commitment.due_date == datetime(2026, 10, 23, 9, 0, tzinfo=UTC)

    def test_deadline_today_resolves_to_end_of_day(self, reference_time):
        [commitment] = extract_commitments("I'll email the summary today.", reference_time, tz=UTC)
        assert commitment.due_date == datetime(2026, 10, 19, 17, 0, tzinfo=UTC)

    def test_deadline_tomorrow(self, reference_time):
        [commitment] = extract_commitments("I will call Dave tomorrow.", reference_time, tz=UTC)
        assert commitment.required_action == RequiredAction.MAKE_CALL
        assert commitment.due_date == datetime(2026, 10, 20, 9, 0, tzinfo=UTC)

    def test_deadline_next_week(self, reference_time):
        [commitment] = extract_commitments("Let me schedule a review next week.", reference_time, tz=UTC)
        assert commitment.required_action == RequiredAction.FOLLOW_UP
        assert commitment.due_date == reference_time + timedelta(days=7)

    def test_same_weekday_rolls_to_next_week(self, reference_time):
        [commitment] = extract_commitments("The report is due Monday.", reference_time, tz=UTC)
        assert commitment.required_action == RequiredAction.DEADLINE
        assert commitment.due_date == datetime(2026, 10, 26, 9, 0, tzinfo=UTC)

    def test_past_month_day_rolls_to_next_year(self, reference_time):
        [commitment] = extract_commitments("Submit the draft before March 3", reference_time, tz=UTC)
        assert commitment.due_date == datetime(2027, 3, 3, 9, 0, tzinfo=UTC)

    def test_no_deadline(self, reference_time):
        [commitment] = extract_commitments("I'll follow up with the vendor.", reference_time, tz=UTC)
        assert commitment.required_action == RequiredAction.FOLLOW_UP
        assert commitment.due_date is None

    def test_multiple_commitments_in_rule_order(self, reference_time):
        commitments = extract_commitments(
            "I'll call Bob tomorrow. I'll send you the notes.", reference_time, tz=UTC
        )
        assert [c.required_action for c in commitments] == [
            RequiredAction.SEND_EMAIL,
            RequiredAction.MAKE_CALL,
        ]

    def test_deadline_resolved_in_local_timezone(self, reference_time):
        # 10:00 UTC Monday is 00:00 Tuesday at UTC+14
        tz = timezone(timedelta(hours=14))
        [commitment] = extract_commitments("I'll call her tomorrow.", reference_time, tz=tz)
        assert commitment.due_date == datetime(2026, 10, 21, 9, 0, tzinfo=tz)

    @pytest.mark.parametrize("text", ["", "I'll call", "Nothing promised in this text at all."])
    def test_no_commitments(self, reference_time, text):
        assert extract_commitments(text, reference_time, tz=UTC) == []

    def test_curly_apostrophe(self, reference_time):
        commitments = extract_commitments("I’ll send the deck to Priya.", reference_time, tz=UTC)
        assert len(commitments) == 1


class TestResolveDeadline:
    def test_first_matching_rule_wins(self, reference_time):
        due = resolve_deadline("tomorrow or Friday", reference_time)
        assert due == datetime(2026, 10, 20, 9, 0, tzinfo=UTC)

    def test_leap_day_resolves_to_next_leap_year(self, reference_time):
        assert resolve_deadline("due Feb 29", reference_time) == datetime(2028, 2, 29, 9, 0, tzinfo=UTC)

    def test_leap_day_in_current_leap_year(self):
        ref = datetime(2028, 1, 10, 12, 0, tzinfo=UTC)
        assert resolve_deadline("before February 29", ref) == datetime(2028, 2, 29, 9, 0, tzinfo=UTC)

    def test_invalid_month_day(self, reference_time):
        assert resolve_deadline("by feb 31", reference_time) is None

    def test_no_phrase(self, reference_time):
        assert resolve_deadline("whenever", reference_time) is None


class TestExtractParties:
    def test_names_and_mentions(self):
        assert extract_parties("I'll send the deck to Sarah Chen and loop in @mike") == [
            "Sarah Chen",
            "mike",
        ]

    def test_common_words_skipped(self):
        assert extract_parties("Notes for The Team") == []

    def test_trailing_common_word_trimmed(self):
        assert extract_parties("Meet with Dana Tomorrow") == ["Dana"]

    def test_duplicates_removed(self):
        assert extract_parties("to Sam and with Sam, cc @Sam") == ["Sam"]
