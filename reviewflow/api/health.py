"""
Health check endpoints - used by load balancers and the container healthcheck.

- GET /health       - basic liveness (always 200 if app running)
- GET /health/ready - readiness check (DB + Redis)
- GET /health/deep  - DB, Redis, scheduler heartbeat, provider config, send backlog
"""
import logging
from datetime import datetime, timezone
from fastapi import APIRouter, Depends
from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from reviewflow.config import get_settings
from reviewflow.database import get_db
from reviewflow.models.review_request_status import OPEN_STATUSES, ReviewRequestStatus
from reviewflow.workers.review_scheduler import HEARTBEAT_KEY

logger = logging.getLogger(__name__)
router = APIRouter(tags=["health"])

VERSION = "1.0.0"
CRITICAL_CHECKS = ("database", "redis")


@router.get("/health")
async def health_check():
    """Basic liveness check - returns 200 if the app is running."""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": VERSION,
    }


@router.get("/health/ready")
async def readiness_check(db: AsyncSession = Depends(get_db)):
    """Readiness - the app can serve review links only with DB and Redis up."""
    checks = {
        "database": (await _check_database(db))["healthy"],
        "redis": (await _check_redis())["healthy"],
    }
    return {
        "status": "ready" if all(checks.values()) else "degraded",
        "checks": checks,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/health/deep")
async def deep_health_check(db: AsyncSession = Depends(get_db)):
    """
    Everything the review pipeline depends on.
    unhealthy = DB or Redis down; degraded = scheduler silent, provider unset or rows failing.
    """
    checks = {
        "database": await _check_database(db),
        "redis": await _check_redis(),
        "scheduler": await _check_scheduler(),
        "providers": _check_providers(),
        "backlog": await _check_backlog(db),
    }

    if all(c["healthy"] for c in checks.values()):
        status = "healthy"
    elif all(checks[name]["healthy"] for name in CRITICAL_CHECKS):
        status = "degraded"
    else:
        status = "unhealthy"

    return {
        "status": status,
        "checks": checks,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": VERSION,
    }


async def _check_database(db: AsyncSession) -> dict:
    try:
        await db.execute(text("SELECT 1"))
        return {"healthy": True}
    except Exception as e:
        logger.error("Database health check failed: %s", str(e))
        return {"healthy": False, "error": str(e)}


async def _check_redis() -> dict:
    try:
        from reviewflow.utils.dedup import get_redis
        redis = await get_redis()
        await redis.ping()
        return {"healthy": True}
    except Exception as e:
        logger.warning("Redis health check failed: %s", str(e))
        return {"healthy": False, "error": str(e)}


async def _check_scheduler() -> dict:
    """The heartbeat key expires after three missed passes."""
    if not get_settings().scheduler_enabled:
        return {"healthy": True, "note": "Scheduler disabled on this instance"}
    try:
        from reviewflow.utils.dedup import get_redis
        redis = await get_redis()
        last_pass = await redis.get(HEARTBEAT_KEY)
        return {"healthy": last_pass is not None, "last_pass": last_pass}
    except Exception:
        return {"healthy": False, "last_pass": None, "note": "Unable to read scheduler heartbeat"}


def _check_providers() -> dict:
    """Configuration only - no network calls to SendGrid or Twilio."""
    settings = get_settings()
    email = bool(settings.sendgrid_api_key)
    sms = bool(settings.twilio_account_sid and settings.twilio_auth_token)
    return {"healthy": email or sms, "email": email, "sms": sms}


async def _check_backlog(db: AsyncSession) -> dict:
    """Open review requests, and how many are stuck on a failed or undeliverable send."""
    try:
        row = (await db.execute(
            select(
                func.count(),
                func.count().filter(ReviewRequestStatus.last_error.isnot(None)),
            ).where(ReviewRequestStatus.status.in_(OPEN_STATUSES))
        )).one()
        open_requests, failing = row[0], row[1]
        return {
            "healthy": failing == 0,
            "open_requests": open_requests,
            "failing_requests": failing,
        }
    except Exception as e:
        logger.error("Backlog health check failed: %s", str(e))
        return {"healthy": False, "error": str(e)}
