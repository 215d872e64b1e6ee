from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List

import pytest

from src.models.reminder import Reminder, SendStatus, SubscriptionStatus
from src.reminders.cleanup import CleanupPolicy
from src.reminders.notification_dispatcher import NotificationDispatcher
from src.reminders.reminder_scheduler import ReminderScheduler
from src.reminders.store import InMemoryReminderStore
from src.utils.time_utils import utc_now


class FakePushChannel:
    """Records every send; outcome decided per reminder title."""

    def __init__(self) -> None:
        self.calls: List[Dict[str, Any]] = []
        self.reject_titles: set[str] = set()
        self.raise_titles: set[str] = set()
        self.reject_all = False

    async def send(self, user_id: str, template_id: str, fields: Dict[str, str]) -> bool:
        self.calls.append({"user_id": user_id, "template_id": template_id, "fields": fields})
        subject = fields["subject"]
        if subject in self.raise_titles:
            raise ConnectionError(f"channel timeout for {subject}")
        if self.reject_all or subject in self.reject_titles:
            return False
        return True


@pytest.fixture
def now() -> datetime:
    return utc_now()


@pytest.fixture
def make_reminder(now: datetime) -> Callable[..., Reminder]:
    def factory(**overrides: Any) -> Reminder:
        data: Dict[str, Any] = {
            "user_id": "user-1",
            "note_id": "note-1",
            "title": "Morning pages",
            "content": "Write three pages before breakfast",
            "remind_time": now - timedelta(minutes=1),
            "subscription_status": SubscriptionStatus.SUBSCRIBED,
            "send_status": SendStatus.PENDING,
        }
        data.update(overrides)
        return Reminder(**data)

    return factory


@pytest.fixture
def channel() -> FakePushChannel:
    return FakePushChannel()


@pytest.fixture
def store() -> InMemoryReminderStore:
    return InMemoryReminderStore()


@pytest.fixture
def dispatcher(store: InMemoryReminderStore, channel: FakePushChannel) -> NotificationDispatcher:
    return NotificationDispatcher(store=store, channel=channel, concurrency_limit=5)


@pytest.fixture
def scheduler(store: InMemoryReminderStore, dispatcher: NotificationDispatcher) -> ReminderScheduler:
    return ReminderScheduler(
        store=store,
        dispatcher=dispatcher,
        cleanup=CleanupPolicy(store),
        interval_seconds=60,
    )
