"""
Send-time policy for review requests.
Turns a stage's due time into the concrete timestamp the message goes out.

- sendOnWeekends=False removes Saturday/Sunday, even if they are preferred days
- smart timing picks the best-scoring hour on the first admissible day
  (day factor x hour factor, lowest hour wins ties)
- without smart timing the company's preferred HH:MM is used
- the result is never earlier than the due time
"""
from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, Optional

from reviewflow.utils.timezone import get_zoneinfo, sunday_first_weekday, to_utc

logger = logging.getLogger(__name__)

WEEKEND_DAYS = {0, 6}  # Sunday, Saturday
DAYTIME_START_HOUR = 8
DAYTIME_END_HOUR = 20  # exclusive
SEARCH_HORIZON_DAYS = 14


def is_day_admissible(day: date, settings, holidays: frozenset[date] = frozenset()) -> bool:
    """Whether any message may be sent on this local calendar day."""
    dow = sunday_first_weekday(day)

    if not settings.send_on_weekends and dow in WEEKEND_DAYS:
        return False

    smart = settings.smart_timing
    if smart.enabled:
        if smart.prefer_weekdays:
            preferred = set(smart.preferred_days_of_week)
            if not settings.send_on_weekends:
                preferred -= WEEKEND_DAYS
            if preferred and dow not in preferred:
                return False
        if smart.avoid_holidays and day in holidays:
            return False

    return True


def candidate_hours(settings) -> range:
    if settings.smart_timing.avoid_late_night:
        return range(DAYTIME_START_HOUR, DAYTIME_END_HOUR)
    return range(24)


def slot_score(settings, day: date, hour: int) -> float:
    factors = settings.timing_factors
    return factors.day_of_week[sunday_first_weekday(day)] * factors.hour_of_day[hour]


def _smart_slot(day: date, local_due: datetime, settings) -> Optional[datetime]:
    tz = local_due.tzinfo
    candidates = []
    for hour in candidate_hours(settings):
        slot = datetime.combine(day, time(hour), tzinfo=tz)
        if day == local_due.date():
            if hour < local_due.hour:
                continue
            if hour == local_due.hour:
                slot = local_due
        candidates.append((hour, slot))

    if not candidates:
        return None
    if not settings.smart_timing.optimize_by_open_rates:
        return candidates[0][1]

    _, best_slot = max(
        candidates, key=lambda c: (slot_score(settings, day, c[0]), -c[0])
    )
    return best_slot


def _preferred_time_slot(day: date, local_due: datetime, settings) -> Optional[datetime]:
    hour, minute = settings.send_hour_minute
    slot = datetime.combine(day, time(hour, minute), tzinfo=local_due.tzinfo)
    if slot < local_due:
        return None
    return slot


def compute_send_at(
    due_at: datetime,
    settings,
    holidays: Iterable[date] = (),
    horizon_days: int = SEARCH_HORIZON_DAYS,
) -> datetime:
    """
    Concrete UTC send time for a stage that becomes due at `due_at`.
    Rolls forward day by day to the first admissible day with an open slot.
    """
    due_utc = to_utc(due_at)
    local_due = due_utc.astimezone(get_zoneinfo(settings.timezone))
    holiday_set = frozenset(holidays)
    pick_slot = _smart_slot if settings.smart_timing.enabled else _preferred_time_slot

    for offset in range(horizon_days + 1):
        day = local_due.date() + timedelta(days=offset)
        if not is_day_admissible(day, settings, holiday_set):
            continue
        slot = pick_slot(day, local_due, settings)
        if slot is None:
            continue
        # DST gaps can shift wall-clock slots; never go below the due time
        return max(slot.astimezone(timezone.utc), due_utc)

    logger.warning(
        "No admissible send slot within %d days of %s, sending at due time",
        horizon_days, due_utc.isoformat(),
    )
    return due_utc
