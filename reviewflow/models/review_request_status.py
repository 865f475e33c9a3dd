"""
Review request status - one row per customer service event that entered the sequence.
Tracks which of the four stages were sent, customer responses, and terminal state.
Never deleted; terminal rows are kept for reporting.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, Text, Integer, Boolean, DateTime, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column
from reviewflow.database import Base

OPEN_STATUSES = ("pending", "in_progress")
TERMINAL_STATUSES = ("completed", "unsubscribed")


class ReviewRequestStatus(Base):
    __tablename__ = "review_request_statuses"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    review_request_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("review_automation_configs.id"), nullable=False
    )
    company_id: Mapped[int] = mapped_column(Integer, nullable=False)
    check_in_id: Mapped[Optional[int]] = mapped_column(Integer)
    technician_id: Mapped[int] = mapped_column(Integer, nullable=False)

    # Customer
    customer_id: Mapped[str] = mapped_column(String(64), nullable=False)
    customer_name: Mapped[str] = mapped_column(String(200), nullable=False)
    customer_email: Mapped[Optional[str]] = mapped_column(String(255))
    customer_phone: Mapped[Optional[str]] = mapped_column(String(20))

    # Service context copied from the check-in for rendering
    service_type: Mapped[Optional[str]] = mapped_column(String(100))
    location: Mapped[Optional[str]] = mapped_column(String(200))
    technician_name: Mapped[Optional[str]] = mapped_column(String(100))
    service_completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    review_token: Mapped[str] = mapped_column(
        String(64), nullable=False, unique=True, default=lambda: uuid.uuid4().hex
    )

    # Stage tracking
    initial_request_sent: Mapped[bool] = mapped_column(Boolean, default=False)
    initial_request_sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    first_follow_up_sent: Mapped[bool] = mapped_column(Boolean, default=False)
    first_follow_up_sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    second_follow_up_sent: Mapped[bool] = mapped_column(Boolean, default=False)
    second_follow_up_sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    final_follow_up_sent: Mapped[bool] = mapped_column(Boolean, default=False)
    final_follow_up_sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    # Response tracking
    link_clicked: Mapped[bool] = mapped_column(Boolean, default=False)
    link_clicked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    review_submitted: Mapped[bool] = mapped_column(Boolean, default=False)
    review_submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    # Status
    status: Mapped[str] = mapped_column(
        String(20), default="pending"
    )  # pending, in_progress, completed, unsubscribed
    unsubscribed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    # Dispatch failures (do not affect eligibility)
    send_attempts: Mapped[int] = mapped_column(Integer, default=0)
    last_error: Mapped[Optional[str]] = mapped_column(Text)

    # Optimistic concurrency - stale writers get StaleDataError
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("ix_review_status_company_status", "company_id", "status"),
        Index("ix_review_status_check_in", "check_in_id"),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def __repr__(self) -> str:
        return f"<ReviewRequestStatus {str(self.id)[:8]} status={self.status}>"
