"""Time helpers — UTC instants, epoch conversion, local midnights."""

from datetime import date, datetime, timezone, tzinfo


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_epoch(value: datetime) -> float:
    """Epoch seconds for an instant. Naive datetimes are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.timestamp()


def from_epoch(ts: float) -> datetime:
    return datetime.fromtimestamp(ts, tz=timezone.utc)


def local_date(now: datetime, tz: tzinfo | None = None) -> date:
    """Calendar date of `now` in `tz` (system local zone when None)."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(tz).date()


def local_midnight(day: date, tz: tzinfo | None = None) -> datetime:
    """00:00 of `day` in `tz`, returned as an aware UTC datetime.

    With no zone the system's local rules apply, DST included.
    """
    naive = datetime.combine(day, datetime.min.time())
    if tz is None:
        aware = naive.astimezone()
    else:
        aware = naive.replace(tzinfo=tz)
    return aware.astimezone(timezone.utc)
