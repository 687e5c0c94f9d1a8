"""
Period keys and date ranges.

``YYYY-MM`` identifies a Monthly period; ``YYYY`` identifies a YTD or
Yearly period.  Ranges are half-open: inclusive start, exclusive end.
Malformed keys are rejected before any processing starts.
"""

import re
from dataclasses import dataclass
from datetime import date, timedelta

from ledger_kernel.exceptions import InvalidPeriodKeyError

_MONTHLY_KEY = re.compile(r"[0-9]{4}-(0[1-9]|1[0-2])")
_YEAR_KEY = re.compile(r"[0-9]{4}")

MONTHLY = "Monthly"
YTD = "YTD"
YEARLY = "Yearly"


@dataclass(frozen=True)
class PeriodRange:
    """Inclusive start, exclusive end."""

    start: date
    end: date

    def contains(self, day: date) -> bool:
        return self.start <= day < self.end

    @property
    def last_day(self) -> date:
        return self.end - timedelta(days=1)


def resolve_period(period_type: str, period_key: str) -> PeriodRange:
    """
    Resolve a period type and key into a date range.

    Raises:
        InvalidPeriodKeyError: key does not match the type's format, its range
            runs outside the years ``date`` can represent, or the type is
            unknown.
    """
    period_type = str(getattr(period_type, "value", period_type))
    if period_type == MONTHLY:
        pattern = _MONTHLY_KEY
    elif period_type in (YTD, YEARLY):
        pattern = _YEAR_KEY
    else:
        raise InvalidPeriodKeyError(period_type, period_key)

    if not isinstance(period_key, str) or not pattern.fullmatch(period_key):
        raise InvalidPeriodKeyError(period_type, period_key)

    year = int(period_key[:4])
    try:
        if period_type == MONTHLY:
            month = int(period_key[5:])
            start = date(year, month, 1)
            end = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
        else:
            start, end = date(year, 1, 1), date(year + 1, 1, 1)
    except ValueError:
        raise InvalidPeriodKeyError(period_type, period_key) from None
    return PeriodRange(start, end)


def monthly_key(day: date) -> str:
    return f"{day.year:04d}-{day.month:02d}"


def year_key(day: date) -> str:
    return f"{day.year:04d}"
