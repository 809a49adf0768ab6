from datetime import datetime, timedelta, timezone
from typing import Optional


def utc_now() -> datetime:
    """Return a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    """Return an ISO 8601 string for the current UTC time."""
    return utc_now().isoformat()


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes read back from the database."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def minutes_ago(minutes: float) -> datetime:
    """Return the UTC instant `minutes` before now."""
    return utc_now() - timedelta(minutes=minutes)


def days_ago(days: float) -> datetime:
    """Return the UTC instant `days` before now."""
    return utc_now() - timedelta(days=days)
