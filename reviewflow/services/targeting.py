"""
Targeting gate - decides whether a completed service event enters the review sequence.
Rejected events never get a ReviewRequestStatus row and never receive a message.
"""
import logging

logger = logging.getLogger(__name__)


class TargetingResult:
    """Result of the targeting gate."""

    def __init__(self, admitted: bool, reason: str = ""):
        self.admitted = admitted
        self.reason = reason

    def __bool__(self) -> bool:
        return self.admitted

    def __repr__(self) -> str:
        status = "ADMITTED" if self.admitted else "REJECTED"
        return f"<TargetingResult {status}: {self.reason}>"


def reachable_on_enabled_channel(event, settings) -> bool:
    return bool(
        (settings.email_enabled and event.customer_email)
        or (settings.sms_enabled and event.customer_phone)
    )


def admit_service_event(event, settings) -> TargetingResult:
    """
    Admit iff:
    - automation is active
    - the customer is reachable: a name, plus an email with email enabled
      or a phone with SMS enabled
    - invoice amount >= target minimum
    - service type is targeted (empty target list = all)
    - a positive-experience signal is present when only positive experiences are targeted
    """
    if not settings.is_active:
        return TargetingResult(False, "Review automation inactive")

    if not event.customer_name or not (event.customer_email or event.customer_phone):
        return TargetingResult(False, "No customer contact information")

    if not reachable_on_enabled_channel(event, settings):
        return TargetingResult(False, "No contact details for an enabled channel")

    if event.invoice_amount < settings.target_minimum_invoice_amount:
        return TargetingResult(
            False,
            f"Invoice {event.invoice_amount} below minimum {settings.target_minimum_invoice_amount}",
        )

    if settings.target_service_types and event.service_type not in settings.target_service_types:
        return TargetingResult(False, f"Service type not targeted: {event.service_type}")

    if settings.target_positive_experiences_only and event.positive_experience is not True:
        return TargetingResult(False, "No positive experience signal")

    return TargetingResult(True, "All targeting rules passed")
