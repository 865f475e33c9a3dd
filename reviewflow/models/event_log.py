"""
Event log model - audit trail for every review request action.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, Text, Integer, DateTime, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column
from reviewflow.database import Base


class EventLog(Base):
    __tablename__ = "review_event_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    request_status_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("review_request_statuses.id")
    )
    company_id: Mapped[Optional[int]] = mapped_column(Integer)

    action: Mapped[str] = mapped_column(
        String(100), nullable=False
    )  # request_created, stage_sent, dispatch_failed, integrity_violation, review_submitted, ...
    status: Mapped[str] = mapped_column(
        String(20), default="success"
    )  # success, failure, skipped, error
    stage: Mapped[Optional[str]] = mapped_column(String(30))
    channel: Mapped[Optional[str]] = mapped_column(String(10))

    message: Mapped[Optional[str]] = mapped_column(Text)
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    data: Mapped[Optional[dict]] = mapped_column(JSONB)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        Index("ix_review_events_status_id", "request_status_id"),
        Index("ix_review_events_company_id", "company_id"),
        Index("ix_review_events_action", "action"),
    )

    def __repr__(self) -> str:
        return f"<EventLog {self.action} status={self.status}>"
