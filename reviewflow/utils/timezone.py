"""
Timezone utilities for send-slot scheduling.
Companies configure an IANA timezone; anything unknown falls back to Eastern.
"""
import logging
from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "America/New_York"


def get_zoneinfo(timezone_str: Optional[str] = None) -> ZoneInfo:
    """Get ZoneInfo object, defaulting to Eastern if unknown."""
    if timezone_str:
        try:
            return ZoneInfo(timezone_str)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("Unknown timezone %s, using %s", timezone_str, DEFAULT_TIMEZONE)
    return ZoneInfo(DEFAULT_TIMEZONE)


def sunday_first_weekday(dt) -> int:
    """Day of week with 0 = Sunday .. 6 = Saturday (Python's weekday() starts on Monday)."""
    return (dt.weekday() + 1) % 7


def to_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
