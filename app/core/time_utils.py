from datetime import datetime, timedelta, timezone


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def start_of_day(dt: datetime) -> datetime:
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


def days_ago(dt: datetime, days: int) -> datetime:
    return dt - timedelta(days=days)


def to_naive_utc(dt):
    """Normalize an incoming filter datetime to UTC-naive; naive input is taken as UTC."""
    if dt is None or dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)
