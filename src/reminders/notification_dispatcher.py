"""Notification dispatcher for delivering due reminders.

This module sends reminders through the push channel in fixed-size batches
and records each outcome in the reminder store.
"""

import asyncio
from dataclasses import dataclass
from typing import List, Optional, Sequence, Set

from src.models.reminder import Reminder
from src.push_channel.wechat_client import PushChannel
from src.reminders.payload import build_payload
from src.reminders.state_machine import failure_fields, success_fields
from src.reminders.store import ReminderStore
from src.utils.logger import log_debug, log_error, log_info, log_warning
from src.utils.time_utils import utc_now


CHANNEL_REJECTED = "push channel rejected the message"
DEFAULT_CONCURRENCY_LIMIT = 5


@dataclass
class DispatchReport:
    """Outcome counts of one dispatch run."""
    attempted: int = 0
    sent: int = 0
    failed: int = 0


class NotificationDispatcher:
    """Delivers reminders with bounded concurrency.

    Reminders are split into batches of ``concurrency_limit``. Batches run one
    after another; members of a batch run concurrently and a failing member
    never cancels its batch-mates.
    """

    def __init__(
        self,
        store: ReminderStore,
        channel: PushChannel,
        concurrency_limit: int = DEFAULT_CONCURRENCY_LIMIT,
    ):
        """Initialize the notification dispatcher.

        Args:
            store: Store used to record delivery outcomes
            channel: Push channel that delivers the messages
            concurrency_limit: Maximum simultaneous channel calls
        """
        if concurrency_limit < 1:
            raise ValueError("concurrency_limit must be at least 1")

        self.store = store
        self.channel = channel
        self.concurrency_limit = concurrency_limit
        self._in_flight: Set[str] = set()

        log_debug(f"NotificationDispatcher initialized (concurrency {concurrency_limit})")

    def _batches(self, reminders: Sequence[Reminder]) -> List[Sequence[Reminder]]:
        size = self.concurrency_limit
        return [reminders[i:i + size] for i in range(0, len(reminders), size)]

    async def dispatch(self, reminders: Sequence[Reminder]) -> DispatchReport:
        """Send every reminder, batch by batch.

        Reminders still being sent by an earlier, overlapping dispatch are
        skipped.

        Args:
            reminders: Dispatch-eligible reminders in store order

        Returns:
            Counts of attempted, sent and failed deliveries
        """
        report = DispatchReport()

        claimed = [reminder for reminder in reminders if reminder.id not in self._in_flight]
        if len(claimed) < len(reminders):
            log_debug(f"Skipping {len(reminders) - len(claimed)} reminder(s) already in flight")
        self._in_flight.update(reminder.id for reminder in claimed)

        try:
            for batch in self._batches(claimed):
                results = await asyncio.gather(
                    *(self.send_reminder(reminder) for reminder in batch),
                    return_exceptions=True,
                )
                self._in_flight.difference_update(reminder.id for reminder in batch)

                for reminder, result in zip(batch, results):
                    report.attempted += 1
                    if result is True:
                        report.sent += 1
                        continue
                    report.failed += 1
                    if isinstance(result, BaseException):
                        log_error(f"Unexpected error sending reminder {reminder.id}: {result!r}")
        finally:
            self._in_flight.difference_update(reminder.id for reminder in claimed)

        return report

    async def send_reminder(self, reminder: Reminder) -> bool:
        """Send one reminder and record the outcome.

        Channel errors are recorded on the reminder rather than raised.

        Returns:
            True if the channel accepted the message
        """
        log_info(f"Sending reminder: {reminder.title} (ID: {reminder.id})")
        payload = build_payload(reminder)

        error: Optional[str] = None
        try:
            success = await self.channel.send(reminder.user_id, reminder.message_id, payload)
            if not success:
                error = CHANNEL_REJECTED
        except Exception as e:
            error = str(e) or e.__class__.__name__

        if error is None:
            await self.store.update_fields(reminder.id, success_fields(utc_now()))
            log_info(f"Reminder sent: {reminder.title}")
            return True

        updated = await self.store.update_fields(reminder.id, failure_fields(error))
        attempt = updated.retry_count if updated is not None else reminder.retry_count + 1
        log_warning(f"Reminder delivery failed: {reminder.title} (attempt {attempt}): {error}")
        return False
