"""Time helpers shared by the milestone tracker and the priority scorer."""

from datetime import date, datetime, time, timezone

SECONDS_PER_DAY = 86400


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: date | datetime) -> datetime:
    """Return an aware UTC datetime. Plain dates map to midnight UTC."""
    if isinstance(value, datetime):
        # SQLite hands back naive datetimes
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def days_between(start: date | datetime, end: date | datetime) -> float:
    """Fractional days from start to end (negative when end is earlier)."""
    return (as_utc(end) - as_utc(start)).total_seconds() / SECONDS_PER_DAY
