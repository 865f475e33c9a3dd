"""
Review automation service - everything that touches the database outside the scheduler loop.

- settings: load, create defaults, validate + save (ConfigurationError blocks activation)
- request creation from a completed service event (targeting gate + dedup)
- customer responses by review token: link click, review submitted, unsubscribe
- per-company statistics
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from reviewflow.config import get_settings
from reviewflow.models.event_log import EventLog
from reviewflow.models.review_automation_config import ReviewAutomationConfig
from reviewflow.models.review_request_status import ReviewRequestStatus
from reviewflow.schemas.followup_settings import ReviewFollowUpSettings, validate_settings
from reviewflow.schemas.service_event import ServiceEvent
from reviewflow.services.followup_policy import mark_completed
from reviewflow.services.targeting import admit_service_event
from reviewflow.utils.dedup import is_duplicate_event
from reviewflow.utils.logging import request_log_context
from reviewflow.utils.templates import STAGES

logger = logging.getLogger(__name__)


def build_review_link(token: str) -> str:
    settings = get_settings()
    base = (settings.review_link_base_url or settings.app_base_url).rstrip("/")
    return f"{base}/r/{token}"


def build_review_page_url(token: str) -> str:
    """The review page a tracked link redirects to."""
    settings = get_settings()
    base = (settings.review_page_base_url or settings.app_base_url).rstrip("/")
    return f"{base}/review/{token}"


def build_message_context(status: ReviewRequestStatus, config: ReviewAutomationConfig, settings) -> dict:
    """Placeholder values for one row's messages."""
    context = {
        "customerName": status.customer_name,
        "companyName": config.company_name,
        "technicianName": status.technician_name,
        "serviceType": "service",
        "location": "your area",
        "reviewLink": build_review_link(status.review_token),
    }
    if settings.include_service_details:
        context["serviceType"] = status.service_type or "service"
        context["location"] = status.location or "your area"
    return context


def load_settings(config: ReviewAutomationConfig) -> ReviewFollowUpSettings:
    """Parse the stored settings document. Raises ConfigurationError if it no longer validates."""
    return validate_settings(config.settings)


async def get_company_config(db: AsyncSession, company_id: int) -> Optional[ReviewAutomationConfig]:
    result = await db.execute(
        select(ReviewAutomationConfig).where(ReviewAutomationConfig.company_id == company_id)
    )
    return result.scalar_one_or_none()


async def get_or_create_config(db: AsyncSession, company_id: int, company_name: str) -> ReviewAutomationConfig:
    """Company config, created with default settings on first use."""
    config = await get_company_config(db, company_id)
    if config:
        return config

    config = ReviewAutomationConfig(
        company_id=company_id,
        company_name=company_name,
        settings=ReviewFollowUpSettings().model_dump(mode="json"),
        is_active=True,
    )
    db.add(config)
    await db.flush()
    logger.info("Default review automation settings created for company %s", company_id)
    return config


async def save_settings(
    db: AsyncSession,
    company_id: int,
    company_name: str,
    data: dict,
) -> ReviewAutomationConfig:
    """
    Validate and store a company's settings.
    Raises ConfigurationError (nothing is written) when the settings are invalid.
    """
    settings = validate_settings(data)

    config = await get_company_config(db, company_id)
    if config is None:
        config = ReviewAutomationConfig(company_id=company_id, company_name=company_name)
        db.add(config)

    config.company_name = company_name
    config.settings = settings.model_dump(mode="json")
    config.is_active = settings.is_active
    await db.flush()

    db.add(EventLog(
        company_id=company_id,
        action="settings_saved",
        message=f"Review automation settings saved (active={settings.is_active})",
    ))
    logger.info("Review automation settings saved for company %s", company_id)
    return config


async def create_request_from_service_event(
    db: AsyncSession,
    company_id: int,
    event: ServiceEvent,
) -> Optional[ReviewRequestStatus]:
    """
    Start a review request sequence for a completed service event.
    Returns None (and creates nothing) when the event is not admitted.
    """
    config = await get_company_config(db, company_id)
    if not config or not config.is_active:
        logger.info("Review automation not active for company %s", company_id)
        return None

    settings = load_settings(config)
    targeting = admit_service_event(event, settings)
    if not targeting:
        logger.info(
            "Service event not admitted for company %s (check-in %s): %s",
            company_id, event.check_in_id, targeting.reason,
        )
        return None

    contact = event.customer_email or event.customer_phone or ""
    if await is_duplicate_event(company_id, event.check_in_id, contact):
        return None

    status = ReviewRequestStatus(
        review_request_id=config.id,
        company_id=company_id,
        check_in_id=event.check_in_id,
        technician_id=event.technician_id,
        technician_name=event.technician_name,
        customer_id=event.customer_id or uuid.uuid4().hex,
        customer_name=event.customer_name,
        customer_email=event.customer_email,
        customer_phone=event.customer_phone,
        service_type=event.service_type,
        location=event.location,
        service_completed_at=event.completed_at,
        review_token=uuid.uuid4().hex,
        status="pending",
    )
    db.add(status)
    await db.flush()

    db.add(EventLog(
        request_status_id=status.id,
        company_id=company_id,
        action="request_created",
        message=f"Review request created for check-in {event.check_in_id}",
        data={"service_type": event.service_type},
    ))
    logger.info(
        "Review request %s created for company %s",
        str(status.id)[:8], company_id,
        extra=request_log_context(status),
    )
    return status


async def get_status_by_token(db: AsyncSession, token: str) -> Optional[ReviewRequestStatus]:
    result = await db.execute(
        select(ReviewRequestStatus).where(ReviewRequestStatus.review_token == token)
    )
    return result.scalar_one_or_none()


async def record_link_click(db: AsyncSession, token: str, now: Optional[datetime] = None) -> bool:
    status = await get_status_by_token(db, token)
    if not status:
        return False

    if not status.link_clicked:
        status.link_clicked = True
        status.link_clicked_at = now or datetime.now(timezone.utc)
        db.add(EventLog(
            request_status_id=status.id, company_id=status.company_id, action="link_clicked",
        ))
    return True


async def record_review_submission(db: AsyncSession, token: str, now: Optional[datetime] = None) -> bool:
    """A submitted review completes the sequence regardless of pending stages."""
    status = await get_status_by_token(db, token)
    if not status:
        return False

    now = now or datetime.now(timezone.utc)
    if not status.review_submitted:
        status.review_submitted = True
        status.review_submitted_at = now
    mark_completed(status, now)

    db.add(EventLog(
        request_status_id=status.id, company_id=status.company_id, action="review_submitted",
    ))
    logger.info(
        "Review submitted for request %s", str(status.id)[:8],
        extra=request_log_context(status),
    )
    return True


async def record_unsubscribe(db: AsyncSession, token: str, now: Optional[datetime] = None) -> bool:
    status = await get_status_by_token(db, token)
    if not status:
        return False

    if status.status == "completed":
        logger.info("Unsubscribe after completion ignored for request %s", str(status.id)[:8])
        return True

    if status.status != "unsubscribed":
        status.status = "unsubscribed"
        status.unsubscribed_at = now or datetime.now(timezone.utc)
        db.add(EventLog(
            request_status_id=status.id, company_id=status.company_id, action="unsubscribed",
        ))
    return True


async def get_automation_stats(db: AsyncSession, company_id: int) -> dict:
    """Counts by status, sends per stage, click and submission rates."""
    by_status = dict(
        (await db.execute(
            select(ReviewRequestStatus.status, func.count())
            .where(ReviewRequestStatus.company_id == company_id)
            .group_by(ReviewRequestStatus.status)
        )).all()
    )
    total = sum(by_status.values())

    sent_columns = [
        func.count().filter(getattr(ReviewRequestStatus, flag).is_(True))
        for flag in ("initial_request_sent", "first_follow_up_sent", "second_follow_up_sent", "final_follow_up_sent")
    ]
    row = (await db.execute(
        select(
            *sent_columns,
            func.count().filter(ReviewRequestStatus.link_clicked.is_(True)),
            func.count().filter(ReviewRequestStatus.review_submitted.is_(True)),
        ).where(ReviewRequestStatus.company_id == company_id)
    )).one()

    stage_counts = dict(zip(STAGES, row[:4]))
    clicked, submitted = row[4], row[5]
    contacted = stage_counts["initial"]

    return {
        "total_requests": total,
        "by_status": {s: by_status.get(s, 0) for s in ("pending", "in_progress", "completed", "unsubscribed")},
        "sent_by_stage": stage_counts,
        "link_clicks": clicked,
        "reviews_submitted": submitted,
        "click_rate": round(clicked / contacted, 4) if contacted else 0.0,
        "conversion_rate": round(submitted / contacted, 4) if contacted else 0.0,
    }
