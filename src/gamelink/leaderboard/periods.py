"""Period window utilities for leaderboards and reward claims.

Each period has a window key:
    all_time -> "all"
    monthly  -> "2026-10"   (calendar month, UTC)
    weekly   -> "2026-W42"  (ISO week, Monday start, UTC)

Rollover is lazy: a scoring event computes the key for its own timestamp,
so the first event of a new week lands in a fresh entry and the previous
week's entry is left untouched as history.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone

from gamelink.enums import Period
from gamelink.errors import ValidationError

ALL_TIME_KEY = "all"


def _as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def get_week_iso(dt: datetime) -> str:
    """Get ISO week string e.g. '2026-W09'. Uses %G-W%V (ISO year + ISO week)."""
    return _as_utc(dt).strftime("%G-W%V")


def get_month_key(dt: datetime) -> str:
    """Get calendar month key e.g. '2026-02'."""
    return _as_utc(dt).strftime("%Y-%m")


def get_monday(dt: datetime | date) -> date:
    """Get the Monday of the ISO week containing dt."""
    d = _as_utc(dt).date() if isinstance(dt, datetime) else dt
    return d - timedelta(days=d.weekday())


def parse_period(value: str | Period) -> Period:
    """Validate a period at the boundary. 'alltime' and 'global' are accepted aliases."""
    if isinstance(value, Period):
        return value
    normalized = value.strip().lower()
    if normalized in ("alltime", "global"):
        return Period.ALL_TIME
    try:
        return Period(normalized)
    except ValueError:
        raise ValidationError(f"Unknown period: {value}") from None


def period_key(period: Period | str, at: datetime | None = None) -> str:
    """Window key of ``period`` containing ``at`` (default: now)."""
    period = parse_period(period)
    if at is None:
        at = datetime.now(timezone.utc)
    if period is Period.WEEKLY:
        return get_week_iso(at)
    if period is Period.MONTHLY:
        return get_month_key(at)
    return ALL_TIME_KEY


def window_bounds(period: Period | str, at: datetime | None = None) -> tuple[datetime | None, datetime | None]:
    """Half-open [start, end) UTC bounds of the window containing ``at``.

    The all-time window is unbounded: (None, None).
    """
    period = parse_period(period)
    if at is None:
        at = datetime.now(timezone.utc)
    at = _as_utc(at)
    if period is Period.WEEKLY:
        start = datetime.combine(get_monday(at), time.min, tzinfo=timezone.utc)
        return start, start + timedelta(days=7)
    if period is Period.MONTHLY:
        start = datetime(at.year, at.month, 1, tzinfo=timezone.utc)
        if at.month == 12:
            end = datetime(at.year + 1, 1, 1, tzinfo=timezone.utc)
        else:
            end = datetime(at.year, at.month + 1, 1, tzinfo=timezone.utc)
        return start, end
    return None, None


def validate_period_key(period: Period | str, key: str) -> str:
    """Check a client-supplied window key has the right shape for its period."""
    period = parse_period(period)
    try:
        if period is Period.WEEKLY:
            datetime.strptime(key + "-1", "%G-W%V-%u")
        elif period is Period.MONTHLY:
            datetime.strptime(key, "%Y-%m")
        elif key != ALL_TIME_KEY:
            raise ValueError(key)
    except ValueError:
        raise ValidationError(f"Invalid window key {key!r} for period {period.value}") from None
    return key
