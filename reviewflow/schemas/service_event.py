"""
Service event schema - a completed technician visit that may start a review request sequence.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field


class ServiceEvent(BaseModel):
    """Input to the targeting gate, built from a check-in record."""
    check_in_id: Optional[int] = None
    technician_id: int
    technician_name: str = ""
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    service_type: str = "service"
    location: Optional[str] = None
    invoice_amount: Decimal = Field(default=Decimal("0"), ge=0)
    # Satisfaction signal from the check-in; None means unknown
    positive_experience: Optional[bool] = None
    completed_at: datetime
