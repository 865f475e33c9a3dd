"""
Tests for reviewflow/services/followup_policy.py - the stage decision function.

Covers:
- evaluate_followup(): initial due/not due, follow-up chaining, disabled stages,
  sequence completion, terminal rows, submitted reviews, integrity violations
- mark_stage_sent() / mark_completed(): row mutations
- FollowupDecision truthiness and equality
"""
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from reviewflow.schemas.followup_settings import FollowUpStage, ReviewFollowUpSettings
from reviewflow.services.followup_policy import (
    ACTION_INTEGRITY_VIOLATION,
    ACTION_NO_ACTION,
    ACTION_NOT_YET_DUE,
    ACTION_SEND,
    ACTION_SEQUENCE_COMPLETE,
    FollowupDecision,
    evaluate_followup,
    find_integrity_violation,
    mark_completed,
    mark_stage_sent,
    service_reference_time,
)
from reviewflow.utils.templates import STAGES

T0 = datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc)  # Monday


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _make_status(**overrides):
    values = {
        "status": "pending",
        "review_submitted": False,
        "service_completed_at": T0,
        "created_at": T0,
        "initial_request_sent": False,
        "initial_request_sent_at": None,
        "first_follow_up_sent": False,
        "first_follow_up_sent_at": None,
        "second_follow_up_sent": False,
        "second_follow_up_sent_at": None,
        "final_follow_up_sent": False,
        "final_follow_up_sent_at": None,
        "last_error": None,
        "completed_at": None,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def _make_settings(initial=2, first=(True, 3), second=(True, 5), final=(False, 7)):
    return ReviewFollowUpSettings(
        initial_delay_days=initial,
        first_follow_up=FollowUpStage(enabled=first[0], delay_days=first[1]),
        second_follow_up=FollowUpStage(enabled=second[0], delay_days=second[1]),
        final_follow_up=FollowUpStage(enabled=final[0], delay_days=final[1]),
    )


# ---------------------------------------------------------------------------
# Initial request
# ---------------------------------------------------------------------------

class TestInitialRequest:
    def test_not_due_before_delay(self):
        decision = evaluate_followup(_make_status(), _make_settings(), T0 + timedelta(days=1))
        assert decision.action == ACTION_NOT_YET_DUE
        assert decision.stage == "initial"
        assert decision.due_at == T0 + timedelta(days=2)
        assert not decision

    def test_due_exactly_at_delay(self):
        decision = evaluate_followup(_make_status(), _make_settings(), T0 + timedelta(days=2))
        assert decision.action == ACTION_SEND
        assert decision.stage == "initial"
        assert decision

    def test_zero_delay_sends_immediately(self):
        decision = evaluate_followup(_make_status(), _make_settings(initial=0), T0)
        assert decision.action == ACTION_SEND
        assert decision.due_at == T0

    def test_falls_back_to_created_at(self):
        status = _make_status(service_completed_at=None, created_at=T0 - timedelta(days=5))
        decision = evaluate_followup(status, _make_settings(), T0)
        assert decision.action == ACTION_SEND
        assert decision.due_at == T0 - timedelta(days=3)

    def test_naive_timestamps_are_utc(self):
        status = _make_status(service_completed_at=T0.replace(tzinfo=None))
        assert service_reference_time(status) == T0

    def test_no_reference_time_is_violation(self):
        status = _make_status(service_completed_at=None, created_at=None)
        decision = evaluate_followup(status, _make_settings(), T0)
        assert decision.action == ACTION_INTEGRITY_VIOLATION


# ---------------------------------------------------------------------------
# Follow-up chaining
# ---------------------------------------------------------------------------

class TestFollowUpChaining:
    def test_first_follow_up_relative_to_initial_send(self):
        sent = T0 + timedelta(days=2)
        status = _make_status(
            status="in_progress", initial_request_sent=True, initial_request_sent_at=sent,
        )
        decision = evaluate_followup(status, _make_settings(), sent + timedelta(days=2, hours=23))
        assert decision.action == ACTION_NOT_YET_DUE
        assert decision.stage == "first_follow_up"
        assert decision.due_at == sent + timedelta(days=3)

        decision = evaluate_followup(status, _make_settings(), sent + timedelta(days=3))
        assert decision.action == ACTION_SEND
        assert decision.stage == "first_follow_up"

    def test_delay_is_from_actual_send_not_due_time(self):
        # Initial went out late (weekend roll); first follow-up counts from the real send
        late = T0 + timedelta(days=5)
        status = _make_status(initial_request_sent=True, initial_request_sent_at=late)
        decision = evaluate_followup(status, _make_settings(), T0 + timedelta(days=6))
        assert decision.action == ACTION_NOT_YET_DUE
        assert decision.due_at == late + timedelta(days=3)

    def test_full_scenario(self):
        settings = _make_settings(initial=2, first=(True, 3), second=(False, 5))
        status = _make_status()

        decision = evaluate_followup(status, settings, T0 + timedelta(days=2))
        assert decision.stage == "initial" and decision
        mark_stage_sent(status, "initial", T0 + timedelta(days=2))
        assert status.status == "in_progress"

        decision = evaluate_followup(status, settings, T0 + timedelta(days=4, hours=23))
        assert decision.action == ACTION_NOT_YET_DUE

        decision = evaluate_followup(status, settings, T0 + timedelta(days=5))
        assert decision.stage == "first_follow_up" and decision
        mark_stage_sent(status, "first_follow_up", T0 + timedelta(days=5))

        decision = evaluate_followup(status, settings, T0 + timedelta(days=30))
        assert decision.action == ACTION_SEQUENCE_COMPLETE

    def test_disabled_stage_skipped(self):
        first_sent = T0 + timedelta(days=5)
        settings = _make_settings(second=(False, 5), final=(True, 7))
        status = _make_status(
            initial_request_sent=True, initial_request_sent_at=T0 + timedelta(days=2),
            first_follow_up_sent=True, first_follow_up_sent_at=first_sent,
        )
        decision = evaluate_followup(status, settings, first_sent + timedelta(days=7))
        assert decision.action == ACTION_SEND
        assert decision.stage == "final_follow_up"
        assert decision.due_at == first_sent + timedelta(days=7)

    def test_stage_disabled_after_sending_still_anchors(self):
        first_sent = T0 + timedelta(days=5)
        settings = _make_settings(first=(False, 3), second=(True, 5))
        status = _make_status(
            initial_request_sent=True, initial_request_sent_at=T0 + timedelta(days=2),
            first_follow_up_sent=True, first_follow_up_sent_at=first_sent,
        )
        decision = evaluate_followup(status, settings, first_sent + timedelta(days=1))
        assert decision.stage == "second_follow_up"
        assert decision.due_at == first_sent + timedelta(days=5)

    def test_only_initial_enabled_completes_after_initial(self):
        settings = _make_settings(first=(False, 3), second=(False, 5), final=(False, 7))
        status = _make_status(initial_request_sent=True, initial_request_sent_at=T0)
        decision = evaluate_followup(status, settings, T0 + timedelta(days=1))
        assert decision.action == ACTION_SEQUENCE_COMPLETE

    def test_evaluation_is_pure(self):
        status = _make_status()
        settings = _make_settings()
        first = evaluate_followup(status, settings, T0 + timedelta(days=3))
        second = evaluate_followup(status, settings, T0 + timedelta(days=3))
        assert first == second
        assert status.initial_request_sent is False

    def test_never_due_before_delay(self):
        settings = _make_settings()
        status = _make_status()
        for hours in range(0, 48):
            decision = evaluate_followup(status, settings, T0 + timedelta(hours=hours))
            assert decision.action == ACTION_NOT_YET_DUE


# ---------------------------------------------------------------------------
# Terminal rows
# ---------------------------------------------------------------------------

class TestTerminalRows:
    @pytest.mark.parametrize("row_status", ["completed", "unsubscribed"])
    def test_terminal_status_no_action(self, row_status):
        decision = evaluate_followup(_make_status(status=row_status), _make_settings(), T0 + timedelta(days=30))
        assert decision.action == ACTION_NO_ACTION

    def test_review_submitted_no_action(self):
        status = _make_status(status="in_progress", review_submitted=True)
        decision = evaluate_followup(status, _make_settings(), T0 + timedelta(days=30))
        assert decision.action == ACTION_NO_ACTION


# ---------------------------------------------------------------------------
# Integrity
# ---------------------------------------------------------------------------

class TestIntegrity:
    def test_later_stage_sent_without_earlier(self):
        status = _make_status(
            initial_request_sent=True, initial_request_sent_at=T0,
            second_follow_up_sent=True, second_follow_up_sent_at=T0 + timedelta(days=8),
        )
        decision = evaluate_followup(status, _make_settings(), T0 + timedelta(days=20))
        assert decision.action == ACTION_INTEGRITY_VIOLATION
        assert "first_follow_up" in decision.reason

    def test_sent_flag_without_timestamp(self):
        status = _make_status(initial_request_sent=True, initial_request_sent_at=None)
        assert find_integrity_violation(status, _make_settings()) is not None

    def test_gap_at_disabled_stage_is_fine(self):
        settings = _make_settings(first=(False, 3))
        status = _make_status(
            initial_request_sent=True, initial_request_sent_at=T0,
            second_follow_up_sent=True, second_follow_up_sent_at=T0 + timedelta(days=5),
        )
        assert find_integrity_violation(status, settings) is None


# ---------------------------------------------------------------------------
# Mutations and result object
# ---------------------------------------------------------------------------

class TestMutations:
    def test_mark_stage_sent_sets_flag_and_time(self):
        status = _make_status(last_error="timeout")
        mark_stage_sent(status, "initial", T0)
        assert status.initial_request_sent is True
        assert status.initial_request_sent_at == T0
        assert status.status == "in_progress"
        assert status.last_error is None

    def test_mark_stage_sent_follow_up_fields(self):
        status = _make_status(status="in_progress")
        mark_stage_sent(status, "final_follow_up", T0)
        assert status.final_follow_up_sent is True
        assert status.final_follow_up_sent_at == T0

    def test_mark_completed(self):
        status = _make_status(status="in_progress")
        mark_completed(status, T0)
        assert status.status == "completed"
        assert status.completed_at == T0

    def test_mark_completed_keeps_unsubscribed(self):
        status = _make_status(status="unsubscribed")
        mark_completed(status, T0)
        assert status.status == "unsubscribed"
        assert status.completed_at is None

    def test_stage_order(self):
        assert STAGES == ("initial", "first_follow_up", "second_follow_up", "final_follow_up")


class TestFollowupDecision:
    def test_only_send_is_truthy(self):
        assert FollowupDecision(ACTION_SEND, stage="initial")
        assert not FollowupDecision(ACTION_NOT_YET_DUE, stage="initial")
        assert not FollowupDecision(ACTION_SEQUENCE_COMPLETE)

    def test_equality_ignores_reason(self):
        a = FollowupDecision(ACTION_NO_ACTION, reason="x")
        b = FollowupDecision(ACTION_NO_ACTION, reason="y")
        assert a == b
