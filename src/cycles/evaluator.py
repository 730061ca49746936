"""Expiry/status evaluators: pure functions over a cycle's dates.

No I/O and no implicit clock: callers pass ``now`` explicitly. Comparisons
are made at day granularity; a ``datetime`` is reduced to its date.
A cycle is expired strictly after its end date, and nearing expiry from
six months before the end date up to and including the end date itself.
"""

from datetime import date, datetime
from enum import StrEnum

from src.cycles.periods import NEARING_EXPIRY_MONTHS, add_months
from src.models.cycle import CycleRecord, CycleStatus

EXPIRED = "Expired"


class ExpiryStatus(StrEnum):
    """Human-facing expiry band of a cycle."""

    ON_TRACK = "ON_TRACK"
    NEARING_EXPIRY = "NEARING_EXPIRY"
    EXPIRED = "EXPIRED"


def _as_date(now: date | datetime) -> date:
    return now.date() if isinstance(now, datetime) else now


def is_expired(cycle: CycleRecord, now: date | datetime) -> bool:
    """True iff ``now`` is after the cycle's end date."""
    return _as_date(now) > cycle.end_date


def is_nearing_expiry(cycle: CycleRecord, now: date | datetime) -> bool:
    """True iff the end date is within six months of ``now`` and not yet passed."""
    today = _as_date(now)
    if today > cycle.end_date:
        return False
    return add_months(today, NEARING_EXPIRY_MONTHS) >= cycle.end_date


def expiry_status(cycle: CycleRecord, now: date | datetime) -> ExpiryStatus:
    if is_expired(cycle, now):
        return ExpiryStatus.EXPIRED
    if is_nearing_expiry(cycle, now):
        return ExpiryStatus.NEARING_EXPIRY
    return ExpiryStatus.ON_TRACK


def _plural(n: int, unit: str) -> str:
    return f"{n} {unit}{'s' if n != 1 else ''}"


def remaining_time(cycle: CycleRecord, now: date | datetime) -> str:
    """Describe the time left in the cycle, or ``EXPIRED``.

    Over 365 days: "N year(s), M days". Over 30 days: "N month(s)".
    Otherwise "N day(s)". Years are counted as 365 days and months as 30.
    """
    if is_expired(cycle, now):
        return EXPIRED

    days = (cycle.end_date - _as_date(now)).days
    if days > 365:
        years, rest = divmod(days, 365)
        return f"{_plural(years, 'year')}, {rest} days"
    if days > 30:
        return _plural(days // 30, "month")
    return _plural(days, "day")


def format_cycle_period(cycle: CycleRecord) -> str:
    """Format the cycle span for display, e.g. "Jan 1, 2024 - Jan 1, 2027"."""

    def _fmt(d: date) -> str:
        return f"{d.strftime('%b')} {d.day}, {d.year}"

    return f"{_fmt(cycle.start_date)} - {_fmt(cycle.end_date)}"


_STATUS_TEXT: dict[CycleStatus, str] = {
    CycleStatus.ACTIVE: "Currently Active",
    CycleStatus.COMPLETED: "Completed & Submitted",
    CycleStatus.ARCHIVED: "Archived",
}


def cycle_status_text(cycle: CycleRecord) -> str:
    return _STATUS_TEXT.get(cycle.status, "Unknown")
