"""
Review automation host process.
FastAPI app that serves the review-link tracking endpoints and runs the
review scheduler worker in the background.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from reviewflow.config import Settings, get_settings
from reviewflow.api.health import VERSION
from reviewflow.api.router import api_router
from reviewflow.utils.logging import (
    configure_structured_logging,
    new_correlation_id,
    set_correlation_id,
)

logger = logging.getLogger("reviewflow")

CORRELATION_HEADER = "X-Correlation-ID"


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Binds the caller's correlation ID, or a fresh one, and echoes it back."""

    async def dispatch(self, request: Request, call_next) -> Response:
        cid = request.headers.get(CORRELATION_HEADER)
        if cid:
            set_correlation_id(cid)
        else:
            cid = new_correlation_id()
        response = await call_next(request)
        response.headers[CORRELATION_HEADER] = cid
        return response


def _warn_missing_providers(settings: Settings) -> None:
    # Sends still run and fail per-row; the scheduler retries them next pass
    if not settings.sendgrid_api_key:
        logger.warning("SENDGRID_API_KEY not set - review emails will fail and be retried")
    if not (settings.twilio_account_sid and settings.twilio_auth_token):
        logger.warning("Twilio credentials not set - review SMS will fail and be retried")


def _init_sentry(settings: Settings) -> None:
    if not settings.sentry_dsn:
        return
    try:
        import sentry_sdk
        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            traces_sample_rate=0.1,
            environment=settings.app_env,
            release=f"reviewflow@{VERSION}",
        )
        logger.info("Sentry initialized")
    except Exception as e:
        logger.warning("Sentry initialization failed: %s", str(e))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the scheduler on startup, stop it and release the DB pool on shutdown."""
    settings = get_settings()
    logger.info("Review automation starting up (env=%s)", settings.app_env)
    _warn_missing_providers(settings)
    _init_sentry(settings)

    scheduler_task = None
    if settings.scheduler_enabled:
        from reviewflow.workers.review_scheduler import run_review_scheduler
        scheduler_task = asyncio.create_task(run_review_scheduler(), name="review_scheduler")
        logger.info("Review scheduler worker started")
    else:
        logger.info("Review scheduler disabled (SCHEDULER_ENABLED=false)")

    try:
        yield
    finally:
        if scheduler_task is not None:
            scheduler_task.cancel()
            await asyncio.gather(scheduler_task, return_exceptions=True)

        from reviewflow.database import dispose_engine
        await dispose_engine()
        logger.info("Review automation shutdown complete")


def create_app() -> FastAPI:
    """Application factory."""
    settings = get_settings()
    configure_structured_logging(settings.log_level)

    application = FastAPI(
        title="Rank It Pro Review Automation",
        description="Review request follow-ups for field service companies",
        version=VERSION,
        lifespan=lifespan,
    )
    application.add_middleware(CorrelationIdMiddleware)
    application.include_router(api_router)
    return application
