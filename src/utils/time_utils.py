"""Time helpers shared by the reminder subsystem.

Reminders carry timezone-aware datetimes. Naive values coming from callers are
interpreted in the local timezone of the running process.
"""

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Return the current instant as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    """Attach the local timezone to naive datetimes; leave aware ones alone."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.astimezone()
    return value


def format_local_minute(value: datetime) -> str:
    """Format a datetime as ``YYYY-MM-DD HH:mm`` in local time."""
    return ensure_aware(value).astimezone().strftime("%Y-%m-%d %H:%M")


def next_boundary(now: datetime, interval_seconds: float) -> datetime:
    """Return the next instant after ``now`` aligned to ``interval_seconds``.

    With a 60 second interval this is the start of the next minute, the same
    firing pattern as a ``*/1 * * * *`` cron entry.
    """
    now = ensure_aware(now)
    epoch = now.timestamp()
    step = float(interval_seconds)
    next_epoch = (epoch // step + 1) * step
    if next_epoch <= epoch:
        next_epoch += step
    return datetime.fromtimestamp(next_epoch, tz=now.tzinfo)
