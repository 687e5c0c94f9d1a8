"""
Unit tests for period keys and ranges.
"""

from datetime import date

import pytest

from ledger_kernel.domain.periods import (
    MONTHLY,
    YEARLY,
    YTD,
    monthly_key,
    resolve_period,
    year_key,
)
from ledger_kernel.exceptions import InvalidPeriodKeyError
from ledger_kernel.models.snapshot import SnapshotPeriodType


class TestResolvePeriod:

    def test_monthly(self):
        period = resolve_period(MONTHLY, "2025-02")
        assert period.start == date(2025, 2, 1)
        assert period.end == date(2025, 3, 1)
        assert period.last_day == date(2025, 2, 28)

    def test_december_rolls_into_next_year(self):
        period = resolve_period(MONTHLY, "2025-12")
        assert period.start == date(2025, 12, 1)
        assert period.end == date(2026, 1, 1)
        assert period.last_day == date(2025, 12, 31)

    def test_leap_february(self):
        assert resolve_period(MONTHLY, "2024-02").last_day == date(2024, 2, 29)

    @pytest.mark.parametrize("period_type", [YTD, YEARLY])
    def test_year(self, period_type):
        period = resolve_period(period_type, "2025")
        assert period.start == date(2025, 1, 1)
        assert period.end == date(2026, 1, 1)

    def test_accepts_enum_member(self):
        period = resolve_period(SnapshotPeriodType.MONTHLY, "2025-12")
        assert period.start == date(2025, 12, 1)

    def test_range_is_half_open(self):
        period = resolve_period(MONTHLY, "2025-12")
        assert period.contains(date(2025, 12, 1))
        assert period.contains(date(2025, 12, 31))
        assert not period.contains(date(2026, 1, 1))
        assert not period.contains(date(2025, 11, 30))

    @pytest.mark.parametrize(
        "period_type,key",
        [
            (MONTHLY, "2025-13"),
            (MONTHLY, "2025-00"),
            (MONTHLY, "2025-1"),
            (MONTHLY, "2025"),
            (MONTHLY, "25-12"),
            (YTD, "2025-12"),
            (YTD, "20a5"),
            (YEARLY, ""),
            ("Quarterly", "2025-Q1"),
            (MONTHLY, "2025-12\n"),
            (YTD, "2025\n"),
            (YEARLY, "0000"),
            (YTD, "9999"),
            (MONTHLY, "0000-05"),
            (MONTHLY, "9999-12"),
        ],
    )
    def test_malformed_keys_are_rejected(self, period_type, key):
        with pytest.raises(InvalidPeriodKeyError) as exc_info:
            resolve_period(period_type, key)
        assert exc_info.value.period_key == key


class TestKeysFromDates:

    def test_monthly_key_is_zero_padded(self):
        assert monthly_key(date(2025, 3, 9)) == "2025-03"

    def test_year_key(self):
        assert year_key(date(2025, 12, 10)) == "2025"
