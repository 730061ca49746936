"""Tests for renewal period calendar arithmetic."""

from datetime import date

import pytest

from src.cycles.periods import (
    NEARING_EXPIRY_MONTHS,
    RENEWAL_PERIOD_YEARS,
    add_months,
    add_years,
    renewal_end,
)


class TestConstants:
    def test_renewal_period_is_three_years(self) -> None:
        assert RENEWAL_PERIOD_YEARS == 3

    def test_nearing_expiry_window_is_six_months(self) -> None:
        assert NEARING_EXPIRY_MONTHS == 6


class TestAddMonths:
    @pytest.mark.parametrize(
        ("start", "months", "expected"),
        [
            (date(2024, 1, 15), 6, date(2024, 7, 15)),
            (date(2024, 8, 31), 6, date(2025, 2, 28)),
            (date(2023, 8, 31), 6, date(2024, 2, 29)),
            (date(2024, 12, 1), 1, date(2025, 1, 1)),
            (date(2024, 3, 31), -1, date(2024, 2, 29)),
        ],
    )
    def test_add_months(self, start: date, months: int, expected: date) -> None:
        assert add_months(start, months) == expected


class TestAddYears:
    def test_plain_date(self) -> None:
        assert add_years(date(2024, 1, 1), 3) == date(2027, 1, 1)

    def test_leap_day_clamps_to_feb_28(self) -> None:
        assert add_years(date(2024, 2, 29), 3) == date(2027, 2, 28)

    def test_leap_day_to_leap_year_keeps_day(self) -> None:
        assert add_years(date(2024, 2, 29), 4) == date(2028, 2, 29)


class TestRenewalEnd:
    def test_same_calendar_day_three_years_later(self) -> None:
        assert renewal_end(date(2027, 1, 1)) == date(2030, 1, 1)

    def test_span_is_calendar_not_fixed_days(self) -> None:
        # 2024-03-01 → 2027-03-01 crosses no leap day; 2023-03-01 → 2026-03-01 crosses one.
        assert (renewal_end(date(2024, 3, 1)) - date(2024, 3, 1)).days == 1095
        assert (renewal_end(date(2023, 3, 1)) - date(2023, 3, 1)).days == 1096
