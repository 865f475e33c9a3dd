"""
Review follow-up policy.
Decides whether a review request row should get a message now, and which stage.

Pure functions: no DB, no clock. The caller passes `now`, the settings and the row,
then commits "stage sent" only after a confirmed dispatch.

Rules:
- completed / unsubscribed (or a submitted review) -> no action
- stages walk initial -> first -> second -> final; disabled follow-ups are skipped
- a stage is due `delay_days` after the last *sent* stage (service completion for initial)
- a later stage sent while an earlier enabled one is not -> integrity violation
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from reviewflow.utils.templates import STAGE_INITIAL, STAGES

ACTION_SEND = "send"
ACTION_NOT_YET_DUE = "not_yet_due"
ACTION_NO_ACTION = "no_action"
ACTION_SEQUENCE_COMPLETE = "sequence_complete"
ACTION_INTEGRITY_VIOLATION = "integrity_violation"


class FollowupDecision:
    """Result of evaluating one review request row. Truthy only when a stage should be sent."""

    def __init__(
        self,
        action: str,
        stage: Optional[str] = None,
        due_at: Optional[datetime] = None,
        reason: str = "",
    ):
        self.action = action
        self.stage = stage
        self.due_at = due_at
        self.reason = reason

    def __bool__(self) -> bool:
        return self.action == ACTION_SEND

    def __eq__(self, other) -> bool:
        if not isinstance(other, FollowupDecision):
            return NotImplemented
        return (self.action, self.stage, self.due_at) == (other.action, other.stage, other.due_at)

    def __repr__(self) -> str:
        return f"<FollowupDecision {self.action} stage={self.stage} due_at={self.due_at}>"


def sent_flag_field(stage: str) -> str:
    return "initial_request_sent" if stage == STAGE_INITIAL else f"{stage}_sent"


def sent_at_field(stage: str) -> str:
    return f"{sent_flag_field(stage)}_at"


def as_utc(dt: Any) -> datetime | None:
    """Normalize to aware UTC; naive values (SQLite round-trips) are taken as UTC."""
    if not isinstance(dt, datetime):
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def stage_is_sent(status: Any, stage: str) -> bool:
    return bool(getattr(status, sent_flag_field(stage), False))


def stage_sent_at(status: Any, stage: str) -> datetime | None:
    return as_utc(getattr(status, sent_at_field(stage), None))


def service_reference_time(status: Any) -> datetime | None:
    """Base time for the initial request: service completion, else row creation."""
    return as_utc(getattr(status, "service_completed_at", None)) or as_utc(
        getattr(status, "created_at", None)
    )


def find_integrity_violation(status: Any, settings) -> Optional[str]:
    """
    Return a description when a later stage is marked sent while an earlier
    enabled stage is not, or a sent stage has no timestamp. None when consistent.
    """
    missing: Optional[str] = None
    for stage in STAGES:
        if not settings.stage_enabled(stage):
            continue
        if stage_is_sent(status, stage):
            if missing:
                return f"{stage} marked sent while {missing} is not"
            if stage_sent_at(status, stage) is None:
                return f"{stage} marked sent without a timestamp"
        elif missing is None:
            missing = stage
    return None


def evaluate_followup(status: Any, settings, now: datetime) -> FollowupDecision:
    """
    Decide the next action for one review request row.

    Returns a FollowupDecision; never raises for expected row states.
    """
    now_utc = as_utc(now)

    if getattr(status, "status", None) in ("completed", "unsubscribed"):
        return FollowupDecision(ACTION_NO_ACTION, reason=f"status={status.status}")
    if getattr(status, "review_submitted", False):
        return FollowupDecision(ACTION_NO_ACTION, reason="review already submitted")

    violation = find_integrity_violation(status, settings)
    if violation:
        return FollowupDecision(ACTION_INTEGRITY_VIOLATION, reason=violation)

    reference = service_reference_time(status)
    for stage in STAGES:
        if stage_is_sent(status, stage):
            # A stage disabled after it went out still anchors the next delay
            reference = stage_sent_at(status, stage) or reference
            continue
        if not settings.stage_enabled(stage):
            continue

        if reference is None:
            return FollowupDecision(
                ACTION_INTEGRITY_VIOLATION, stage=stage, reason="no reference time for initial request"
            )

        due_at = reference + timedelta(days=settings.stage_delay_days(stage))
        if now_utc >= due_at:
            return FollowupDecision(ACTION_SEND, stage=stage, due_at=due_at)
        return FollowupDecision(ACTION_NOT_YET_DUE, stage=stage, due_at=due_at)

    return FollowupDecision(ACTION_SEQUENCE_COMPLETE, reason="all enabled stages sent")


def mark_stage_sent(status: Any, stage: str, sent_at: datetime) -> None:
    """Apply the "stage sent" mutation. Call only after a confirmed dispatch."""
    setattr(status, sent_flag_field(stage), True)
    setattr(status, sent_at_field(stage), sent_at)
    if status.status == "pending":
        status.status = "in_progress"
    status.last_error = None


def mark_completed(status: Any, completed_at: datetime) -> None:
    if status.status in ("completed", "unsubscribed"):
        return
    status.status = "completed"
    status.completed_at = completed_at
