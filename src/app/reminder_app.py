"""Application orchestration for the reminder service.

This module centralizes startup/shutdown of the reminder subsystem so it can
be reused by different front-ends (HTTP API, scripts, tests).
"""

from __future__ import annotations

import asyncio
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Optional

from config.config import AppConfig, load_config, validate_config
from src.push_channel.wechat_client import PushChannel, WeChatPushChannel
from src.reminders.cleanup import CleanupPolicy
from src.reminders.notification_dispatcher import NotificationDispatcher
from src.reminders.reminder_scheduler import ReminderScheduler
from src.reminders.reminder_service import InMemoryNoteDirectory, NoteDirectory, ReminderService
from src.reminders.store import InMemoryReminderStore, ReminderStore
from src.utils.logger import log_error, log_info, log_warning, setup_logging
from src.utils.time_utils import utc_now


class ReminderApp:
    """Coordinates the store, push channel, scheduler and user-facing service."""

    def __init__(
        self,
        config_path: Optional[Path] = None,
        *,
        config: Optional[AppConfig] = None,
        store: Optional[ReminderStore] = None,
        channel: Optional[PushChannel] = None,
        notes: Optional[NoteDirectory] = None,
    ) -> None:
        self._config_path = config_path
        self._config: Optional[AppConfig] = config
        self._store = store
        self._channel = channel
        self._owns_channel = channel is None
        self._notes = notes

        self._service: Optional[ReminderService] = None
        self._scheduler: Optional[ReminderScheduler] = None

        self._template_valid: Optional[bool] = None

        self._startup_lock = asyncio.Lock()
        self._is_started = False

    @property
    def config(self) -> AppConfig:
        if not self._config:
            raise RuntimeError("ReminderApp not started yet; config unavailable")
        return self._config

    @property
    def service(self) -> ReminderService:
        if not self._service:
            raise RuntimeError("ReminderApp not started yet; reminder service unavailable")
        return self._service

    @property
    def scheduler(self) -> ReminderScheduler:
        if not self._scheduler:
            raise RuntimeError("ReminderApp not started yet; scheduler unavailable")
        return self._scheduler

    @property
    def is_started(self) -> bool:
        return self._is_started

    async def startup(self) -> None:
        """Load configuration, build dependencies and start the schedulers."""

        async with self._startup_lock:
            if self._is_started:
                return

            if self._config is None:
                log_info("ReminderApp startup: loading configuration")
                self._config = load_config(self._config_path)
            setup_logging(self._config.logging.level)

            problems = validate_config(self._config)
            for problem in problems:
                log_warning(f"Configuration problem: {problem}")

            self._store = self._store or InMemoryReminderStore()
            self._notes = self._notes or InMemoryNoteDirectory()
            self._channel = self._channel or WeChatPushChannel(self._config.wechat)

            if not problems and isinstance(self._channel, WeChatPushChannel):
                await self.check_message_template()

            self._service = ReminderService(
                store=self._store,
                notes=self._notes,
                default_message_id=self._config.reminders.default_message_id,
                max_page_size=self._config.reminders.max_page_size,
            )

            scheduler_config = self._config.scheduler
            dispatcher = NotificationDispatcher(
                store=self._store,
                channel=self._channel,
                concurrency_limit=scheduler_config.concurrency_limit,
            )
            cleanup = CleanupPolicy(
                store=self._store,
                retention=timedelta(hours=scheduler_config.retention_hours),
            )
            self._scheduler = ReminderScheduler(
                store=self._store,
                dispatcher=dispatcher,
                cleanup=cleanup,
                interval_seconds=scheduler_config.interval_seconds,
            )

            if scheduler_config.enabled:
                await self.start_all_schedulers()
            else:
                log_info("Reminder scheduler disabled in configuration")

            self._is_started = True
            log_info("ReminderApp startup complete")

    async def shutdown(self) -> None:
        """Gracefully shut down services."""

        if not self._is_started:
            return

        log_info("ReminderApp shutdown: stopping services")
        await self.stop_all_schedulers()

        if self._scheduler:
            await self._scheduler.wait_idle()

        if self._owns_channel and isinstance(self._channel, WeChatPushChannel):
            try:
                await self._channel.aclose()
            except Exception as exc:  # pragma: no cover - best effort cleanup
                log_error(f"Error closing WeChat client: {exc}")

        self._is_started = False
        log_info("ReminderApp shutdown complete")

    async def check_message_template(self) -> bool:
        """Check that the default message template exists on the WeChat account.

        A missing template is logged; deliveries using it would be rejected.
        """
        template_id = self.config.reminders.default_message_id
        if not isinstance(self._channel, WeChatPushChannel):
            return False

        self._template_valid = await self._channel.validate_template(template_id)
        if self._template_valid:
            log_info(f"Message template {template_id} is available")
        else:
            log_warning(f"Message template {template_id} was not found on the WeChat account")
        return self._template_valid

    async def start_all_schedulers(self) -> bool:
        """Start every scheduler; a failure is logged, never raised.

        Returns:
            True if the schedulers are running afterwards
        """
        log_info("Starting all schedulers...")
        try:
            await self.scheduler.start()
        except Exception as exc:
            log_error(
                f"[{utc_now().isoformat()}] Scheduler start-up failed, the service keeps running "
                f"and the scheduler can be started again later: {exc}"
            )
            return False

        log_info("All schedulers started")
        return True

    async def stop_all_schedulers(self) -> None:
        log_info("Stopping all schedulers...")
        if self._scheduler:
            await self._scheduler.stop()
        log_info("All schedulers stopped")

    def get_scheduler_status(self) -> Dict[str, Any]:
        """Return the status of every scheduler."""

        if not self._scheduler:
            return {"reminder_scheduler": {"running": False, "next_fire_time": None}}
        return {"reminder_scheduler": self._scheduler.status().to_dict()}

    def snapshot(self) -> Dict[str, Any]:
        """Return a health snapshot of the application state."""

        return {
            "is_started": self._is_started,
            "config_loaded": self._config is not None,
            "message_template_valid": self._template_valid,
            "scheduler": self._scheduler.get_stats() if self._scheduler else None,
        }
