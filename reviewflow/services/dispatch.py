"""
Message dispatch - SendGrid for email, Twilio for SMS.

Each send returns a DispatchResult and never raises: a failed send leaves the
stage unsent so the next scheduler pass retries it. No retries happen here.
"""
import asyncio
import logging
from typing import Optional

from reviewflow.config import get_settings

logger = logging.getLogger(__name__)

TWILIO_CLIENT_TIMEOUT = 10


class DispatchResult:
    """Outcome of one delivery attempt on one channel."""

    def __init__(
        self,
        ok: bool,
        channel: str,
        provider_id: Optional[str] = None,
        error: Optional[str] = None,
    ):
        self.ok = ok
        self.channel = channel
        self.provider_id = provider_id
        self.error = error

    def __bool__(self) -> bool:
        return self.ok

    def __repr__(self) -> str:
        status = "SENT" if self.ok else "FAILED"
        return f"<DispatchResult {self.channel} {status} {self.error or ''}>"


def mask_phone(phone: str) -> str:
    """Mask phone number for logging - show first 6 digits only."""
    if len(phone) > 6:
        return phone[:6] + "***"
    return phone


def mask_email(email: str) -> str:
    return email[:3] + "***" if email else email


async def _run_sync(func, *args, **kwargs):
    """Run a blocking SDK call in the thread pool."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, lambda: func(*args, **kwargs))


def _get_twilio_client():
    """Twilio REST client with a bounded HTTP timeout."""
    from twilio.rest import Client as TwilioClient
    from twilio.http.http_client import TwilioHttpClient
    settings = get_settings()
    return TwilioClient(
        settings.twilio_account_sid,
        settings.twilio_auth_token,
        http_client=TwilioHttpClient(timeout=TWILIO_CLIENT_TIMEOUT),
    )


async def send_email(
    to_email: str,
    subject: str,
    html_content: str,
    text_content: str,
    from_name: Optional[str] = None,
) -> DispatchResult:
    """Send one review request email via SendGrid."""
    settings = get_settings()
    if not settings.sendgrid_api_key:
        logger.error("No SendGrid API key configured for review emails")
        return DispatchResult(False, "email", error="SendGrid not configured")

    try:
        from sendgrid import SendGridAPIClient
        from sendgrid.helpers.mail import Mail, Email, To, Content

        message = Mail(
            from_email=Email(settings.sendgrid_from_email, from_name or settings.sendgrid_from_name),
            to_emails=To(to_email),
            subject=subject,
        )
        message.content = [
            Content("text/plain", text_content),
            Content("text/html", html_content),
        ]

        sg = SendGridAPIClient(api_key=settings.sendgrid_api_key)
        response = await _run_sync(sg.send, message)
        if response.status_code >= 400:
            logger.error(
                "Review email rejected: to=%s status=%s", mask_email(to_email), response.status_code,
            )
            return DispatchResult(False, "email", error=f"SendGrid status {response.status_code}")

        message_id = response.headers.get("X-Message-Id", "")
        logger.info("Review email sent: to=%s subject=%s", mask_email(to_email), subject[:40])
        return DispatchResult(True, "email", provider_id=message_id)

    except Exception as e:
        logger.error("Review email failed: to=%s error=%s", mask_email(to_email), str(e))
        return DispatchResult(False, "email", error=str(e))


async def send_sms(to: str, body: str) -> DispatchResult:
    """Send one review request SMS via Twilio."""
    settings = get_settings()
    if not settings.twilio_account_sid or not settings.twilio_auth_token:
        logger.error("Twilio not configured for review SMS")
        return DispatchResult(False, "sms", error="Twilio not configured")

    kwargs = {"to": to, "body": body}
    if settings.twilio_messaging_service_sid:
        kwargs["messaging_service_sid"] = settings.twilio_messaging_service_sid
    elif settings.twilio_from_phone:
        kwargs["from_"] = settings.twilio_from_phone
    else:
        return DispatchResult(False, "sms", error="No Twilio sender configured")

    try:
        client = _get_twilio_client()
        message = await _run_sync(client.messages.create, **kwargs)
        logger.info("Review SMS sent: to=%s sid=%s", mask_phone(to), message.sid)
        return DispatchResult(True, "sms", provider_id=message.sid)
    except Exception as e:
        logger.error("Review SMS failed: to=%s error=%s", mask_phone(to), str(e))
        return DispatchResult(False, "sms", error=str(e))


async def dispatch_message(message, status, from_name: Optional[str] = None) -> DispatchResult:
    """Route a RenderedMessage to its channel for the row's customer."""
    if message.channel == "email":
        html = message.body if "<" in message.body else message.body.replace("\n", "<br>\n")
        return await send_email(
            status.customer_email, message.subject or "", html, message.text or message.body,
            from_name=from_name,
        )
    if message.channel == "sms":
        return await send_sms(status.customer_phone, message.body)
    return DispatchResult(False, message.channel, error=f"Unknown channel {message.channel}")
