"""
Review follow-up settings schema - one active configuration per company,
stored as JSONB on ReviewAutomationConfig.

Stage delays are relative offsets from the previously sent stage.
Absolute send times are computed at evaluation time and never stored.
"""
import re
from decimal import Decimal
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from reviewflow.utils.templates import (
    DEFAULT_TEMPLATES,
    MIN_MESSAGE_LENGTH,
    MIN_SUBJECT_LENGTH,
    STAGE_FINAL,
    STAGE_FIRST,
    STAGE_INITIAL,
    STAGE_SECOND,
    STAGES,
    find_template_problems,
)

_SEND_TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

# Response-rate heuristics. Not derived
# from real send analytics - companies can override them via timing_factors.
DEFAULT_DAY_OF_WEEK_FACTORS = [0.85, 1.05, 1.15, 1.10, 1.05, 0.95, 0.75]  # Sun..Sat
DEFAULT_HOUR_OF_DAY_FACTORS = [
    0.3, 0.2, 0.1, 0.1, 0.1, 0.2,  # 0-5
    0.4, 0.7, 1.0, 1.2, 1.1, 1.0,  # 6-11
    0.9, 0.8, 0.8, 0.9, 1.0, 1.1,  # 12-17
    1.2, 1.3, 1.1, 0.9, 0.7, 0.5,  # 18-23
]


class ConfigurationError(ValueError):
    """Settings cannot be activated: invalid delay, bad send time, malformed template."""

    def __init__(self, problems: list[str]):
        self.problems = problems
        super().__init__("; ".join(problems) or "Invalid review follow-up settings")


def _templates_for(stage: str) -> dict:
    defaults = DEFAULT_TEMPLATES[stage]
    return {
        "subject_template": defaults["subject"],
        "message_template": defaults["body"],
        "sms_template": defaults["sms"],
    }


class StageTemplates(BaseModel):
    subject_template: str = ""
    message_template: str = ""
    sms_template: str = ""


class FollowUpStage(StageTemplates):
    enabled: bool = True
    delay_days: int = Field(default=3, ge=0)  # Days after the previous sent stage


class SmartTimingPreferences(BaseModel):
    enabled: bool = False
    prefer_weekdays: bool = True
    preferred_days_of_week: list[int] = Field(default_factory=lambda: [1, 2, 3, 4, 5])  # 0 = Sunday
    avoid_holidays: bool = True
    avoid_late_night: bool = True
    optimize_by_open_rates: bool = True

    @field_validator("preferred_days_of_week")
    @classmethod
    def _days_in_range(cls, value: list[int]) -> list[int]:
        for day in value:
            if day < 0 or day > 6:
                raise ValueError("preferred_days_of_week entries must be 0 (Sunday) to 6 (Saturday)")
        return sorted(set(value))


class TimingFactors(BaseModel):
    day_of_week: list[float] = Field(default_factory=lambda: list(DEFAULT_DAY_OF_WEEK_FACTORS))
    hour_of_day: list[float] = Field(default_factory=lambda: list(DEFAULT_HOUR_OF_DAY_FACTORS))

    @model_validator(mode="after")
    def _table_sizes(self):
        if len(self.day_of_week) != 7:
            raise ValueError("day_of_week factors need exactly 7 entries (Sunday..Saturday)")
        if len(self.hour_of_day) != 24:
            raise ValueError("hour_of_day factors need exactly 24 entries")
        if any(f < 0 for f in self.day_of_week + self.hour_of_day):
            raise ValueError("timing factors cannot be negative")
        return self


class ReviewFollowUpSettings(BaseModel):
    """Complete review automation configuration for one company."""

    # Initial request (never optional)
    initial_delay_days: int = Field(default=2, ge=0)  # Days after service completion
    initial: StageTemplates = Field(default_factory=lambda: StageTemplates(**_templates_for(STAGE_INITIAL)))

    # Follow-ups
    first_follow_up: FollowUpStage = Field(
        default_factory=lambda: FollowUpStage(enabled=True, delay_days=3, **_templates_for(STAGE_FIRST))
    )
    second_follow_up: FollowUpStage = Field(
        default_factory=lambda: FollowUpStage(enabled=True, delay_days=5, **_templates_for(STAGE_SECOND))
    )
    final_follow_up: FollowUpStage = Field(
        default_factory=lambda: FollowUpStage(enabled=False, delay_days=7, **_templates_for(STAGE_FINAL))
    )

    # Channels and time
    email_enabled: bool = True
    sms_enabled: bool = False
    preferred_send_time: str = "10:00"  # 24h HH:MM, company local time
    send_on_weekends: bool = False
    timezone: str = "America/New_York"

    # Presentation options
    include_service_details: bool = True
    enable_incentives: bool = False
    incentive_details: Optional[str] = None

    # Targeting
    target_positive_experiences_only: bool = False
    target_service_types: list[str] = Field(default_factory=list)
    target_minimum_invoice_amount: Decimal = Field(default=Decimal("0"), ge=0)

    # Smart timing
    smart_timing: SmartTimingPreferences = Field(default_factory=SmartTimingPreferences)
    timing_factors: TimingFactors = Field(default_factory=TimingFactors)

    is_active: bool = True

    @field_validator("preferred_send_time")
    @classmethod
    def _send_time_format(cls, value: str) -> str:
        if not _SEND_TIME_RE.match(value):
            raise ValueError("preferred_send_time must be HH:MM in 24-hour format")
        return value

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {value}")
        return value

    def stage_enabled(self, stage: str) -> bool:
        if stage == STAGE_INITIAL:
            return True
        return getattr(self, stage).enabled

    def stage_delay_days(self, stage: str) -> int:
        if stage == STAGE_INITIAL:
            return self.initial_delay_days
        return getattr(self, stage).delay_days

    def stage_templates(self, stage: str) -> StageTemplates:
        return getattr(self, stage)

    @property
    def send_hour_minute(self) -> tuple[int, int]:
        hour, minute = self.preferred_send_time.split(":")
        return int(hour), int(minute)


def validate_settings(data) -> ReviewFollowUpSettings:
    """
    Parse and validate settings before they are saved or activated.
    Raises ConfigurationError listing every problem found.
    """
    if isinstance(data, ReviewFollowUpSettings):
        data = data.model_dump()

    try:
        settings = ReviewFollowUpSettings(**(data or {}))
    except ValidationError as e:
        problems = [
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
            for err in e.errors()
        ]
        raise ConfigurationError(problems) from e

    problems = []
    if not settings.email_enabled and not settings.sms_enabled:
        problems.append("at least one channel (email or SMS) must be enabled")

    for stage in STAGES:
        if not settings.stage_enabled(stage):
            continue
        if stage != STAGE_INITIAL and settings.stage_delay_days(stage) < 1:
            problems.append(f"{stage}.delay_days must be at least 1")

        templates = settings.stage_templates(stage)
        if settings.email_enabled:
            problems += find_template_problems(
                templates.message_template, f"{stage}.message_template", MIN_MESSAGE_LENGTH
            )
            problems += find_template_problems(
                templates.subject_template, f"{stage}.subject_template", MIN_SUBJECT_LENGTH
            )
        if settings.sms_enabled:
            problems += find_template_problems(templates.sms_template, f"{stage}.sms_template")

    if settings.enable_incentives and not (settings.incentive_details or "").strip():
        problems.append("incentive_details is required when incentives are enabled")

    if problems:
        raise ConfigurationError(problems)
    return settings
