"""
Review request template engine - default stage templates plus {{placeholder}} rendering.
Templates use {{variable}} substitution. Unknown or missing values are left in place
so a bad template degrades visibly instead of failing a send.
Template problems are caught when settings are saved, never at send time.
"""
import logging
import re
from typing import Optional

logger = logging.getLogger(__name__)

# Stage keys, in send order
STAGE_INITIAL = "initial"
STAGE_FIRST = "first_follow_up"
STAGE_SECOND = "second_follow_up"
STAGE_FINAL = "final_follow_up"
STAGES = (STAGE_INITIAL, STAGE_FIRST, STAGE_SECOND, STAGE_FINAL)

PLACEHOLDERS = frozenset({
    "customerName",
    "companyName",
    "technicianName",
    "serviceType",
    "location",
    "reviewLink",
})

MIN_MESSAGE_LENGTH = 10
MIN_SUBJECT_LENGTH = 3

_PLACEHOLDER_RE = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")

# === EMAIL / SMS DEFAULTS PER STAGE ===

DEFAULT_TEMPLATES = {
    STAGE_INITIAL: {
        "subject": "How was your service with {{companyName}}?",
        "body": (
            "Dear {{customerName}},\n\n"
            "Thank you for choosing {{companyName}} for your recent {{serviceType}} service. "
            "We hope that {{technicianName}} provided an excellent experience.\n\n"
            "Would you take a moment to share your feedback with a quick review? "
            "It only takes 30 seconds and helps us continue to provide great service "
            "to you and others in the {{location}} area.\n\n"
            "Click here to leave a review: {{reviewLink}}\n\n"
            "Thank you for your time!\n\n"
            "Best regards,\n"
            "The {{companyName}} Team"
        ),
        "sms": (
            "{{companyName}}: Thanks for choosing us for your {{serviceType}} service! "
            "Please share your experience with a quick review: {{reviewLink}}"
        ),
    },
    STAGE_FIRST: {
        "subject": "Your feedback matters to {{companyName}}",
        "body": (
            "Hi {{customerName}},\n\n"
            "We just wanted to follow up about your recent service with {{technicianName}}. "
            "Your opinion is valuable to us, and we'd appreciate if you could take a moment "
            "to share your experience.\n\n"
            "Leave a quick review here: {{reviewLink}}\n\n"
            "Thank you!\n\n"
            "{{companyName}}"
        ),
        "sms": (
            "{{companyName}} here! We'd love to hear about your recent service. "
            "Please share your feedback: {{reviewLink}}"
        ),
    },
    STAGE_SECOND: {
        "subject": "A quick reminder about your {{companyName}} service",
        "body": (
            "Hello {{customerName}},\n\n"
            "We noticed you haven't had a chance to leave us a review yet. "
            "We'd still love to hear about your experience with {{technicianName}} "
            "during your recent {{serviceType}} service.\n\n"
            "Your feedback helps us improve and assists others looking for quality "
            "service in the {{location}} area.\n\n"
            "Share your thoughts here: {{reviewLink}}\n\n"
            "Thanks again for choosing {{companyName}}."
        ),
        "sms": (
            "{{companyName}}: Your feedback matters! Please take a moment to review "
            "your recent service: {{reviewLink}}"
        ),
    },
    STAGE_FINAL: {
        "subject": "Last chance to share your {{companyName}} experience",
        "body": (
            "Hi {{customerName}},\n\n"
            "This is our final reminder about leaving a review for your recent service. "
            "We value your feedback and would appreciate hearing about your experience with us.\n\n"
            "If you have a moment, please click here to share your thoughts: {{reviewLink}}\n\n"
            "Thank you for being a valued customer.\n\n"
            "The {{companyName}} Team"
        ),
        "sms": (
            "{{companyName}}: Final reminder to share your thoughts on your recent "
            "service experience: {{reviewLink}}"
        ),
    },
}


class RenderedMessage:
    """One ready-to-dispatch message for a single channel."""

    def __init__(self, channel: str, body: str, subject: Optional[str] = None, text: Optional[str] = None):
        self.channel = channel
        self.body = body
        self.subject = subject
        self.text = text

    def __repr__(self) -> str:
        return f"<RenderedMessage {self.channel} subject={self.subject!r}>"


def render_template(template: Optional[str], context: dict) -> str:
    """
    Substitute {{name}} placeholders from context.
    Placeholders with no value (missing or None) are left verbatim. Never raises.
    """
    if not template:
        return ""

    def _replace(match: re.Match) -> str:
        value = context.get(match.group(1))
        if value is None:
            return match.group(0)
        return str(value)

    return _PLACEHOLDER_RE.sub(_replace, template)


def strip_html(html: str) -> str:
    """Plain-text fallback for email bodies."""
    text = re.sub(r"<[^>]*>?", "", html)
    text = text.replace("&nbsp;", " ")
    return re.sub(r"[ \t]+", " ", text).strip()


def render_stage_messages(
    stage: str,
    settings,
    context: dict,
    has_email: bool = True,
    has_phone: bool = False,
) -> list[RenderedMessage]:
    """
    Render the stage's templates for every enabled channel the customer can receive.
    Both channels enabled -> both renderings; the caller dispatches each.
    """
    templates = settings.stage_templates(stage)
    messages = []

    if settings.email_enabled and has_email:
        body = render_template(templates.message_template, context)
        messages.append(RenderedMessage(
            channel="email",
            subject=render_template(templates.subject_template, context),
            body=body,
            text=strip_html(body),
        ))

    if settings.sms_enabled and has_phone:
        messages.append(RenderedMessage(
            channel="sms",
            body=render_template(templates.sms_template, context),
        ))

    return messages


def find_template_problems(template: Optional[str], field: str, min_length: int = 1) -> list[str]:
    """Return human-readable problems with one template string (empty list if fine)."""
    if template is None or len(template.strip()) < min_length:
        return [f"{field} must be at least {min_length} characters"]

    problems = []
    if template.count("{{") != template.count("}}"):
        problems.append(f"{field} has unbalanced placeholder braces")

    for name in _PLACEHOLDER_RE.findall(template):
        if name not in PLACEHOLDERS:
            problems.append(f"{field} uses unknown placeholder {{{{{name}}}}}")

    # Leftover braces after removing valid placeholders mean a malformed token like {{ name
    leftover = _PLACEHOLDER_RE.sub("", template)
    if "{{" in leftover or "}}" in leftover:
        if not any("unbalanced" in p for p in problems):
            problems.append(f"{field} has a malformed placeholder")

    return problems
