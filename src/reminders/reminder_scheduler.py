"""Recurring scheduler that delivers due reminders.

Each firing of the timer runs one tick:

1. Query the store for dispatch-eligible reminders
2. Hand them to the dispatcher
3. Run the cleanup policy

Firings are aligned to interval boundaries (the start of every minute by
default). Every tick runs as its own task, so a slow push channel delays only
the tick it belongs to, never the next firing.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Set

from src.reminders.cleanup import CleanupPolicy
from src.reminders.errors import ReminderNotFoundError
from src.reminders.notification_dispatcher import DispatchReport, NotificationDispatcher
from src.reminders.state_machine import is_terminal
from src.reminders.store import ReminderStore
from src.models.reminder import SubscriptionStatus
from src.utils.logger import log_debug, log_error, log_info
from src.utils.time_utils import next_boundary, utc_now


@dataclass
class SchedulerStatus:
    """Snapshot of the scheduler state."""
    running: bool
    next_fire_time: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "running": self.running,
            "next_fire_time": self.next_fire_time.isoformat() if self.next_fire_time else None,
        }


@dataclass
class TickResult:
    """What a single tick did."""
    started_at: datetime
    report: DispatchReport = field(default_factory=DispatchReport)
    cleaned_up: int = 0


class ReminderScheduler:
    """Runs reminder delivery on a recurring timer."""

    def __init__(
        self,
        store: ReminderStore,
        dispatcher: NotificationDispatcher,
        cleanup: CleanupPolicy,
        interval_seconds: float = 60,
    ):
        """Initialize the scheduler.

        Args:
            store: Store queried for due reminders
            dispatcher: Dispatcher that sends them
            cleanup: Retention policy run after each dispatch
            interval_seconds: Seconds between firings
        """
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")

        self.store = store
        self.dispatcher = dispatcher
        self.cleanup = cleanup
        self.interval_seconds = interval_seconds

        self._timer_task: Optional[asyncio.Task] = None
        self._next_fire_time: Optional[datetime] = None
        self._tick_tasks: Set[asyncio.Task] = set()
        self._ticks_run = 0
        self._last_tick: Optional[TickResult] = None

        log_info(f"ReminderScheduler initialized, interval: {interval_seconds}s")

    @property
    def is_running(self) -> bool:
        return self._timer_task is not None

    async def start(self) -> None:
        """Start the recurring timer.

        Calling start on a running scheduler does nothing. If registering the
        timer fails, the scheduler is left stopped and the error propagates so
        the caller can retry.
        """
        if self._timer_task is not None:
            log_debug("ReminderScheduler already running")
            return

        try:
            self._next_fire_time = next_boundary(utc_now(), self.interval_seconds)
            self._timer_task = asyncio.create_task(self._timer_loop(), name="reminder-scheduler")
        except Exception as e:
            log_error(f"[{utc_now().isoformat()}] ReminderScheduler failed to start: {e}")
            self._timer_task = None
            self._next_fire_time = None
            raise

        log_info(f"ReminderScheduler started, checking due reminders every {self.interval_seconds}s")

    async def stop(self) -> None:
        """Cancel future firings. A tick already in progress keeps running."""
        if self._timer_task is None:
            return

        task = self._timer_task
        self._timer_task = None
        self._next_fire_time = None

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

        log_info("ReminderScheduler stopped")

    async def wait_idle(self) -> None:
        """Wait for ticks that are still in flight."""
        if self._tick_tasks:
            await asyncio.gather(*self._tick_tasks, return_exceptions=True)

    def status(self) -> SchedulerStatus:
        if self._timer_task is None:
            return SchedulerStatus(running=False)
        return SchedulerStatus(running=True, next_fire_time=self._next_fire_time)

    async def _timer_loop(self) -> None:
        """Fire a tick at every interval boundary until cancelled."""
        log_debug("Reminder timer loop started")

        while True:
            delay = (self._next_fire_time - utc_now()).total_seconds()
            await asyncio.sleep(max(delay, 0))

            fired_at = self._next_fire_time
            self._next_fire_time = next_boundary(max(utc_now(), fired_at), self.interval_seconds)

            task = asyncio.create_task(self.run_tick(), name=f"reminder-tick-{fired_at.isoformat()}")
            self._tick_tasks.add(task)
            task.add_done_callback(self._tick_tasks.discard)

    async def run_tick(self, now: Optional[datetime] = None) -> Optional[TickResult]:
        """Run one dispatch and cleanup pass.

        Never raises; failures are logged and the next tick starts fresh.

        Returns:
            The tick result, or None if the tick failed
        """
        now = now or utc_now()
        log_info(f"[{now.isoformat()}] Checking for due reminders...")

        try:
            reminders = await self.store.find_eligible(now)
            log_info(f"Found {len(reminders)} due reminders")

            result = TickResult(started_at=now)
            if reminders:
                result.report = await self.dispatcher.dispatch(reminders)
            result.cleaned_up = await self.cleanup.run(now)
        except Exception as e:
            log_error(f"[{utc_now().isoformat()}] Failed to process due reminders: {e}")
            return None

        self._ticks_run += 1
        self._last_tick = result
        return result

    async def send_now(self, reminder_id: str) -> bool:
        """Deliver a subscribed, undelivered reminder immediately.

        The reminder's ``remind_time`` is ignored.

        Raises:
            ReminderNotFoundError: If no such reminder exists
        """
        reminder = await self.store.get(reminder_id)
        if reminder is None:
            raise ReminderNotFoundError(reminder_id)

        if is_terminal(reminder) or reminder.subscription_status != SubscriptionStatus.SUBSCRIBED:
            log_info(f"Reminder {reminder_id} is not deliverable, skipping immediate send")
            return False

        return await self.dispatcher.send_reminder(reminder)

    def get_stats(self) -> Dict[str, Any]:
        """Get scheduler statistics."""
        stats: Dict[str, Any] = {
            **self.status().to_dict(),
            "ticks_run": self._ticks_run,
            "ticks_in_flight": len(self._tick_tasks),
        }
        if self._last_tick:
            stats["last_tick"] = {
                "started_at": self._last_tick.started_at.isoformat(),
                "attempted": self._last_tick.report.attempted,
                "sent": self._last_tick.report.sent,
                "failed": self._last_tick.report.failed,
                "cleaned_up": self._last_tick.cleaned_up,
            }
        return stats
