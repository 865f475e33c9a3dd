"""
Structured JSON logging for the API and the scheduler worker.

One JSON object per line: timestamp, level, correlation_id, module, message,
plus review context (company, request row, stage, channel) when a log call
passes it through `extra=`. The API binds a correlation ID per HTTP request,
the scheduler binds one per pass.
"""
import json
import logging
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Optional

correlation_id_ctx: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

CONTEXT_FIELDS = ("company_id", "request_status_id", "stage", "channel", "error_code")
QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "httpcore", "httpx", "twilio.http_client")


def get_correlation_id() -> Optional[str]:
    return correlation_id_ctx.get()


def set_correlation_id(cid: str) -> None:
    correlation_id_ctx.set(cid)


def generate_correlation_id() -> str:
    """UUID4 hex, 32 chars."""
    return uuid.uuid4().hex


def new_correlation_id() -> str:
    """Bind a fresh correlation ID to the current context and return it."""
    cid = generate_correlation_id()
    set_correlation_id(cid)
    return cid


def request_log_context(status: Any, stage: Optional[str] = None, channel: Optional[str] = None) -> dict:
    """`extra=` payload for log calls about one review request row."""
    context = {"company_id": status.company_id, "request_status_id": str(status.id)}
    if stage:
        context["stage"] = stage
    if channel:
        context["channel"] = channel
    return context


class StructuredJsonFormatter(logging.Formatter):
    """
    {"timestamp": "...Z", "level": "ERROR", "correlation_id": "...", "module": "...",
     "message": "...", "company_id": 42, "request_status_id": "...", "stage": "initial"}
    """

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry = {
            "timestamp": created.strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
            "level": record.levelname,
            "correlation_id": get_correlation_id(),
            "module": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            (key, getattr(record, key))
            for key in CONTEXT_FIELDS
            if getattr(record, key, None) is not None
        )
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def configure_structured_logging(log_level: str = "INFO") -> None:
    """Route every logger through one JSON stdout handler. Call once at startup."""
    handler = logging.StreamHandler()
    handler.setFormatter(StructuredJsonFormatter())
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        handlers=[handler],
        force=True,
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
