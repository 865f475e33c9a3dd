"""
Database models - import all models here so Alembic can discover them.
"""
from reviewflow.models.review_automation_config import ReviewAutomationConfig
from reviewflow.models.review_request_status import ReviewRequestStatus
from reviewflow.models.event_log import EventLog

__all__ = [
    "ReviewAutomationConfig",
    "ReviewRequestStatus",
    "EventLog",
]
