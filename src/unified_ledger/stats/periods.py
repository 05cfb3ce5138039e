"""Calendar windows addressed by a signed offset from the current period."""
import calendar
from datetime import datetime, time, timedelta
from typing import Literal, Optional

from unified_ledger.domain.dates import ensure_utc, utcnow
from unified_ledger.services.models import DateRange

PeriodMode = Literal["month", "week"]


def _add_months(year: int, month: int, delta: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def month_range(offset: int = 0, now: Optional[datetime] = None) -> DateRange:
    """First instant to last instant of the month `offset` months from now."""
    now = ensure_utc(now or utcnow())
    year, month = _add_months(now.year, now.month, offset)
    _, last_day = calendar.monthrange(year, month)
    start = datetime(year, month, 1, tzinfo=now.tzinfo)
    end = datetime.combine(start.replace(day=last_day).date(), time.max, tzinfo=now.tzinfo)
    return DateRange(start=start, end=end)


def week_range(offset: int = 0, now: Optional[datetime] = None) -> DateRange:
    """Sunday-to-Saturday week `offset` weeks from the current one."""
    now = ensure_utc(now or utcnow())
    days_since_sunday = (now.weekday() + 1) % 7
    start_day = now.date() - timedelta(days=days_since_sunday) + timedelta(weeks=offset)
    start = datetime.combine(start_day, time.min, tzinfo=now.tzinfo)
    end = datetime.combine(start_day + timedelta(days=6), time.max, tzinfo=now.tzinfo)
    return DateRange(start=start, end=end)


def get_date_range(mode: PeriodMode, offset: int = 0, now: Optional[datetime] = None) -> DateRange:
    if mode == "month":
        return month_range(offset, now)
    if mode == "week":
        return week_range(offset, now)
    raise ValueError(f"Unknown period mode: {mode!r}")


def shift_offset(current: int, delta: int) -> int:
    """
    Move a period offset, refusing to step into the future.

    Offsets are relative to the current period, so anything above 0 would be
    a period that hasn't happened yet; such moves leave the offset unchanged.
    """
    proposed = current + delta
    if proposed > 0:
        return current
    return proposed


def format_range_label(mode: PeriodMode, period: DateRange) -> str:
    """'January 2024' for months, '7 Jan – 13 Jan' for weeks."""
    if mode == "month":
        return period.start.strftime("%B %Y")
    return (
        f"{period.start.day} {period.start.strftime('%b')} – "
        f"{period.end.day} {period.end.strftime('%b')}"
    )
