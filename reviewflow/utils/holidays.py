"""
Default holiday calendar for smart-timing send slots.
Computes US federal holidays (observed dates) for any year.

The send-time policy takes holidays as an input set; this module is what the
scheduler passes in when a company has avoid_holidays enabled.
"""
from datetime import date, timedelta
from functools import lru_cache
from typing import Set

from dateutil.relativedelta import relativedelta, MO, TH


def _nth_weekday(year: int, month: int, weekday, n: int) -> date:
    """nth occurrence of a dateutil weekday (MO, TH, ...) in a month, 1-based."""
    return date(year, month, 1) + relativedelta(weekday=weekday(n))


def _last_weekday(year: int, month: int, weekday) -> date:
    """Last occurrence of a dateutil weekday in a month."""
    return date(year, month, 1) + relativedelta(day=31, weekday=weekday(-1))


def _observed_date(holiday: date) -> date:
    """
    Federal observed rule:
    - Saturday -> observed Friday
    - Sunday -> observed Monday
    """
    if holiday.weekday() == 5:
        return holiday - timedelta(days=1)
    elif holiday.weekday() == 6:
        return holiday + timedelta(days=1)
    return holiday


@lru_cache(maxsize=16)
def get_federal_holidays(year: int) -> Set[date]:
    """All federal holidays for a year, as observed dates."""
    holidays = set()

    # Fixed-date holidays (observed if on weekend)
    holidays.add(_observed_date(date(year, 1, 1)))     # New Year's Day
    holidays.add(_observed_date(date(year, 6, 19)))    # Juneteenth
    holidays.add(_observed_date(date(year, 7, 4)))     # Independence Day
    holidays.add(_observed_date(date(year, 11, 11)))   # Veterans Day
    holidays.add(_observed_date(date(year, 12, 25)))   # Christmas Day

    # Floating holidays
    holidays.add(_nth_weekday(year, 1, MO, 3))    # MLK Day
    holidays.add(_nth_weekday(year, 2, MO, 3))    # Presidents' Day
    holidays.add(_last_weekday(year, 5, MO))      # Memorial Day
    holidays.add(_nth_weekday(year, 9, MO, 1))    # Labor Day
    holidays.add(_nth_weekday(year, 10, MO, 2))   # Columbus Day
    holidays.add(_nth_weekday(year, 11, TH, 4))   # Thanksgiving

    return holidays


def holidays_between(start: date, end: date) -> frozenset[date]:
    """Federal holidays falling in [start, end]."""
    found = set()
    for year in range(start.year, end.year + 1):
        found.update(d for d in get_federal_holidays(year) if start <= d <= end)
    return frozenset(found)


def is_federal_holiday(check_date: date) -> bool:
    return check_date in get_federal_holidays(check_date.year)
