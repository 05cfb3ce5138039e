"""Timestamp helpers shared by the merge, mirror and stats code.

Every function here is total: malformed or missing input maps to the Unix
epoch instead of raising, so one bad record can never break a sort.
"""
from datetime import datetime, timezone
from typing import Any, Optional

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def parse_datetime(value: Any) -> datetime:
    """
    Parse an ISO-8601 value into an aware UTC datetime.

    Args:
        value: ISO string, datetime, epoch milliseconds, or None

    Returns:
        Aware datetime; EPOCH when the value can't be understood
    """
    if value is None or value == "":
        return EPOCH

    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return EPOCH
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return EPOCH

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_iso(dt: datetime) -> str:
    """Render a datetime the way JavaScript's toISOString does (ms precision, Z)."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def hours_since(iso: Optional[str], now: Optional[datetime] = None) -> float:
    """Hours elapsed since an ISO timestamp; infinity when it's unknown."""
    if not iso:
        return float("inf")
    parsed = parse_datetime(iso)
    if parsed == EPOCH:
        return float("inf")
    now = now or utcnow()
    return (now - parsed).total_seconds() / 3600


def ensure_utc(dt: datetime) -> datetime:
    """Treat naive datetimes as UTC so they compare with parsed timestamps."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
