"""Calendar arithmetic for the fixed renewal period.

A renewal period is three calendar years. Dates that do not exist in the
target year or month (29 Feb, 31 Apr) clamp to the last day of that month,
so a cycle starting on 29 Feb 2024 ends on 28 Feb 2027.
"""

import calendar
from datetime import date

RENEWAL_PERIOD_YEARS = 3
NEARING_EXPIRY_MONTHS = 6


def add_months(d: date, months: int) -> date:
    """Shift ``d`` by whole calendar months, clamping to month end."""
    month_index = d.month - 1 + months
    year = d.year + month_index // 12
    month = month_index % 12 + 1
    day = min(d.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def add_years(d: date, years: int) -> date:
    """Shift ``d`` by whole calendar years, clamping 29 Feb to 28 Feb."""
    return add_months(d, years * 12)


def renewal_end(start: date) -> date:
    """Return the end date of a cycle starting on ``start``."""
    return add_years(start, RENEWAL_PERIOD_YEARS)
