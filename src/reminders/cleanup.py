"""Retention policy for reminders that can no longer be delivered."""

from datetime import datetime, timedelta
from typing import Optional

from src.reminders.state_machine import is_reclaimable
from src.reminders.store import ReminderStore
from src.utils.logger import log_debug, log_error, log_info
from src.utils.time_utils import utc_now


DEFAULT_RETENTION = timedelta(hours=24)


class CleanupPolicy:
    """Deletes failed or cancelled reminders older than the retention window.

    Sent reminders are kept so users can still see them.
    """

    def __init__(self, store: ReminderStore, retention: timedelta = DEFAULT_RETENTION):
        self.store = store
        self.retention = retention

    def cutoff(self, now: Optional[datetime] = None) -> datetime:
        return (now or utc_now()) - self.retention

    async def run(self, now: Optional[datetime] = None) -> int:
        """Delete expired reminders.

        Store errors are logged and reported as zero deletions; the next tick
        retries naturally.

        Returns:
            Number of deleted reminders
        """
        cutoff = self.cutoff(now)
        try:
            deleted = await self.store.delete_where(cutoff, is_reclaimable)
        except Exception as e:
            log_error(f"Failed to clean up expired reminders: {e}")
            return 0

        if deleted > 0:
            log_info(f"Cleaned up {deleted} expired reminders")
        else:
            log_debug("No expired reminders to clean up")
        return deleted
