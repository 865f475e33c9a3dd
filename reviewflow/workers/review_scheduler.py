"""
Review request scheduler worker - sends due review requests and follow-ups.
Runs every scheduler_poll_seconds (default 5 minutes).

Process per pass:
1. Load active company configs (skipping any whose settings no longer validate)
2. For each open review request row: decide (policy), pick the send slot (timing)
3. Render + dispatch under a per-row lock; mark the stage sent only after a confirmed send
4. Rows found out of order are logged and closed instead of repaired
"""
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Callable, Optional

from sqlalchemy import select, and_, or_
from sqlalchemy.orm.exc import StaleDataError

from reviewflow.config import get_settings
from reviewflow.database import async_session_factory
from reviewflow.models.event_log import EventLog
from reviewflow.models.review_automation_config import ReviewAutomationConfig
from reviewflow.models.review_request_status import OPEN_STATUSES, ReviewRequestStatus
from reviewflow.schemas.followup_settings import ConfigurationError
from reviewflow.services.dispatch import dispatch_message
from reviewflow.services.followup_policy import (
    ACTION_INTEGRITY_VIOLATION,
    ACTION_NOT_YET_DUE,
    ACTION_SEQUENCE_COMPLETE,
    evaluate_followup,
    mark_completed,
    mark_stage_sent,
)
from reviewflow.services.review_automation import build_message_context, load_settings
from reviewflow.services.send_timing import SEARCH_HORIZON_DAYS, compute_send_at
from reviewflow.utils.holidays import holidays_between
from reviewflow.utils.locks import LockTimeoutError, request_lock
from reviewflow.utils.logging import new_correlation_id, request_log_context
from reviewflow.utils.templates import render_stage_messages

logger = logging.getLogger(__name__)

HEARTBEAT_KEY = "reviewflow:worker_health:review_scheduler"


async def _heartbeat():
    """Store heartbeat timestamp in Redis."""
    try:
        from reviewflow.utils.dedup import get_redis
        redis = await get_redis()
        await redis.set(
            HEARTBEAT_KEY,
            datetime.now(timezone.utc).isoformat(),
            ex=get_settings().scheduler_poll_seconds * 3,
        )
    except Exception:
        pass


async def run_review_scheduler():
    """Main loop - evaluate open review requests every poll interval."""
    poll_seconds = get_settings().scheduler_poll_seconds
    logger.info("Review scheduler started (poll every %ds)", poll_seconds)

    while True:
        new_correlation_id()
        try:
            counts = await process_due_requests()
            if counts.get("sent"):
                logger.info("Review scheduler pass: %s", counts)
        except Exception as e:
            logger.error("Review scheduler error: %s", str(e), exc_info=True)

        await _heartbeat()
        await asyncio.sleep(poll_seconds)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def process_due_requests(now: Optional[datetime] = None) -> dict:
    """
    One scheduler pass over every open row of every active company. Returns outcome counts.
    A fixed `now` pins the clock for the whole pass; otherwise each row reads the live clock.
    """
    clock: Callable[[], datetime] = (lambda: now) if now else _utcnow
    counts: dict[str, int] = {}

    async with async_session_factory() as db:
        result = await db.execute(
            select(ReviewAutomationConfig).where(ReviewAutomationConfig.is_active == True)  # noqa: E712
        )
        configs = result.scalars().all()

    for config in configs:
        try:
            settings = load_settings(config)
        except ConfigurationError as e:
            logger.error(
                "Skipping company %s: stored review settings invalid: %s",
                config.company_id, str(e),
                extra={"company_id": config.company_id},
            )
            continue

        async for request_id in _open_request_ids(config.company_id):
            try:
                outcome = await _process_single_request(request_id, config, settings, clock)
            except LockTimeoutError:
                outcome = "locked"
            except StaleDataError:
                logger.warning("Request %s changed concurrently, retrying next pass", str(request_id)[:8])
                outcome = "stale"
            except Exception as e:
                logger.error(
                    "Failed to process review request %s: %s", str(request_id)[:8], str(e),
                    exc_info=True,
                    extra={"company_id": config.company_id, "request_status_id": str(request_id)},
                )
                outcome = "error"
            counts[outcome] = counts.get(outcome, 0) + 1

    return counts


async def _open_request_ids(company_id: int) -> AsyncIterator:
    """
    Yield the id of every open row for a company, oldest first.
    Keyset pages on (created_at, id) of scheduler_batch_size rows, each read in
    a short session; rows closed earlier in the pass do not shift later pages.
    """
    batch_size = get_settings().scheduler_batch_size
    after = None

    while True:
        query = (
            select(ReviewRequestStatus.id, ReviewRequestStatus.created_at)
            .where(
                and_(
                    ReviewRequestStatus.company_id == company_id,
                    ReviewRequestStatus.status.in_(OPEN_STATUSES),
                )
            )
            .order_by(ReviewRequestStatus.created_at, ReviewRequestStatus.id)
            .limit(batch_size)
        )
        if after is not None:
            last_created, last_id = after
            query = query.where(
                or_(
                    ReviewRequestStatus.created_at > last_created,
                    and_(ReviewRequestStatus.created_at == last_created, ReviewRequestStatus.id > last_id),
                )
            )

        async with async_session_factory() as db:
            page = (await db.execute(query)).all()

        for row in page:
            yield row.id
        if len(page) < batch_size:
            return
        after = (page[-1].created_at, page[-1].id)


async def _process_single_request(request_id, config, settings, clock: Callable[[], datetime]) -> str:
    """Evaluate and, when due, send one row in its own transaction. Returns the outcome name."""
    async with async_session_factory() as db:
        result = await db.execute(
            select(ReviewRequestStatus)
            .where(ReviewRequestStatus.id == request_id)
            .with_for_update(skip_locked=True)
        )
        status = result.scalar_one_or_none()
        if status is None:
            return "locked"

        outcome = await process_request(db, status, config, settings, clock(), clock=clock)
        await db.commit()
        return outcome


async def process_request(
    db, status: ReviewRequestStatus, config, settings, now: datetime,
    clock: Optional[Callable[[], datetime]] = None,
) -> str:
    """
    Apply the follow-up decision for one loaded row. Caller commits.
    `now` drives the decision; `clock` (default: fixed at `now`) stamps a confirmed send.
    """
    log_extra = request_log_context(status)
    decision = evaluate_followup(status, settings, now)

    if decision.action == ACTION_INTEGRITY_VIOLATION:
        logger.error(
            "Review request %s out of order (%s), closing it",
            str(status.id)[:8], decision.reason, extra=log_extra,
        )
        mark_completed(status, now)
        db.add(EventLog(
            request_status_id=status.id, company_id=status.company_id,
            action="integrity_violation", status="error", error_message=decision.reason,
        ))
        return "integrity_violation"

    if decision.action == ACTION_SEQUENCE_COMPLETE:
        mark_completed(status, now)
        db.add(EventLog(
            request_status_id=status.id, company_id=status.company_id,
            action="sequence_completed", message="All enabled stages sent",
        ))
        return "completed"

    if decision.action == ACTION_NOT_YET_DUE:
        return "waiting"

    if not decision:
        # Submitted review on a row still marked open
        if status.review_submitted:
            mark_completed(status, now)
            return "completed"
        return "skipped"

    holidays = holidays_between(
        decision.due_at.date() - timedelta(days=1),
        decision.due_at.date() + timedelta(days=SEARCH_HORIZON_DAYS + 1),
    )
    send_at = compute_send_at(decision.due_at, settings, holidays)
    if now < send_at:
        return "waiting"

    async with request_lock(str(status.id)):
        return await send_stage(db, status, decision.stage, config, settings, clock or (lambda: now))


async def send_stage(
    db, status: ReviewRequestStatus, stage: str, config, settings, clock: Callable[[], datetime],
) -> str:
    """
    Render and dispatch one stage; mark it sent only if a channel confirmed delivery.
    The sent timestamp is read from `clock` after dispatch returns, since it anchors
    the next stage's delay.
    """
    log_extra = request_log_context(status, stage=stage)

    messages = render_stage_messages(
        stage,
        settings,
        build_message_context(status, config, settings),
        has_email=bool(status.customer_email),
        has_phone=bool(status.customer_phone),
    )
    if not messages:
        logger.warning(
            "No delivery channel for review request %s (%s)", str(status.id)[:8], stage, extra=log_extra,
        )
        status.last_error = "No enabled channel matches customer contact details"
        return "undeliverable"

    results = []
    for message in messages:
        results.append(await dispatch_message(message, status, from_name=config.company_name))

    delivered = [r.channel for r in results if r]
    failed = [f"{r.channel}: {r.error}" for r in results if not r]

    if not delivered:
        status.send_attempts = (status.send_attempts or 0) + 1
        status.last_error = "; ".join(failed)
        db.add(EventLog(
            request_status_id=status.id, company_id=status.company_id,
            action="dispatch_failed", status="failure", stage=stage,
            error_message=status.last_error,
        ))
        logger.warning(
            "Review %s dispatch failed for request %s: %s",
            stage, str(status.id)[:8], status.last_error, extra=log_extra,
        )
        return "failed"

    channels = ",".join(delivered)
    mark_stage_sent(status, stage, clock())
    db.add(EventLog(
        request_status_id=status.id, company_id=status.company_id,
        action="stage_sent", stage=stage, channel=channels,
        message=f"Review {stage} sent",
        data={"failed_channels": failed} if failed else None,
    ))
    logger.info(
        "Review %s sent: request=%s channels=%s", stage, str(status.id)[:8], channels,
        extra=request_log_context(status, stage=stage, channel=channels),
    )
    return "sent"
