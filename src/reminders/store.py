"""Reminder persistence.

``ReminderStore`` is the capability the scheduler, dispatcher and service
depend on. Updates are single-document and atomic; the ``"$inc"`` key in an
update increments numeric fields the way a document store update operator
does.

``InMemoryReminderStore`` keeps reminders in a dict guarded by an
``asyncio.Lock``.
"""

import asyncio
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Tuple

from src.models.reminder import Reminder, SendStatus, SubscriptionStatus
from src.reminders.state_machine import is_dispatch_eligible, settle_retry_budget
from src.utils.logger import log_debug
from src.utils.time_utils import ensure_aware, utc_now


class ReminderStore(Protocol):
    """Storage operations used by the reminder subsystem."""

    async def find_eligible(self, now: datetime) -> List[Reminder]: ...

    async def update_fields(self, reminder_id: str, fields: Dict[str, Any]) -> Optional[Reminder]: ...

    async def delete_where(
        self,
        created_before: datetime,
        predicate: Callable[[Reminder], bool],
    ) -> int: ...

    async def insert(self, reminder: Reminder) -> Reminder: ...

    async def get(self, reminder_id: str, user_id: Optional[str] = None) -> Optional[Reminder]: ...

    async def find_for_user(
        self,
        user_id: str,
        *,
        subscription_status: Optional[SubscriptionStatus] = None,
        send_status: Optional[SendStatus] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[Reminder], int]: ...

    async def update_for_user(
        self,
        reminder_id: str,
        user_id: str,
        fields: Dict[str, Any],
    ) -> Optional[Reminder]: ...

    async def delete_for_user(self, reminder_id: str, user_id: str) -> bool: ...

    async def delete_many_for_user(self, reminder_ids: Iterable[str], user_id: str) -> int: ...


def apply_update(reminder: Reminder, fields: Dict[str, Any], now: datetime) -> Reminder:
    """Return a validated copy of ``reminder`` with ``fields`` applied."""
    data = reminder.model_dump()
    for key, value in fields.items():
        if key == "$inc":
            for field_name, amount in value.items():
                data[field_name] = data[field_name] + amount
        else:
            data[key] = value
    settle_retry_budget(data)
    data["updated_at"] = now
    return Reminder.model_validate(data)


class InMemoryReminderStore:
    """Dict-backed reminder store with atomic per-document updates."""

    def __init__(self, reminders: Optional[Iterable[Reminder]] = None):
        self._reminders: Dict[str, Reminder] = {}
        self._lock = asyncio.Lock()

        for reminder in reminders or []:
            self._reminders[reminder.id] = self._stamp(reminder)

    @staticmethod
    def _stamp(reminder: Reminder) -> Reminder:
        now = utc_now()
        return reminder.model_copy(update={
            "created_at": reminder.created_at or now,
            "updated_at": reminder.updated_at or now,
        })

    def __len__(self) -> int:
        return len(self._reminders)

    async def insert(self, reminder: Reminder) -> Reminder:
        async with self._lock:
            stored = self._stamp(reminder)
            self._reminders[stored.id] = stored
            log_debug(f"Reminder stored: {stored.id}")
            return stored

    async def get(self, reminder_id: str, user_id: Optional[str] = None) -> Optional[Reminder]:
        reminder = self._reminders.get(reminder_id)
        if reminder is None or (user_id is not None and reminder.user_id != user_id):
            return None
        return reminder

    async def find_eligible(self, now: datetime) -> List[Reminder]:
        now = ensure_aware(now)
        return [r for r in self._reminders.values() if is_dispatch_eligible(r, now)]

    async def find_for_user(
        self,
        user_id: str,
        *,
        subscription_status: Optional[SubscriptionStatus] = None,
        send_status: Optional[SendStatus] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[Reminder], int]:
        matches = [
            r for r in self._reminders.values()
            if r.user_id == user_id
            and (subscription_status is None or r.subscription_status == subscription_status)
            and (send_status is None or r.send_status == send_status)
        ]
        matches.sort(key=lambda r: r.remind_time, reverse=True)
        return matches[skip:skip + limit], len(matches)

    async def update_fields(self, reminder_id: str, fields: Dict[str, Any]) -> Optional[Reminder]:
        async with self._lock:
            reminder = self._reminders.get(reminder_id)
            if reminder is None:
                return None
            updated = apply_update(reminder, fields, utc_now())
            self._reminders[reminder_id] = updated
            return updated

    async def update_for_user(
        self,
        reminder_id: str,
        user_id: str,
        fields: Dict[str, Any],
    ) -> Optional[Reminder]:
        async with self._lock:
            reminder = self._reminders.get(reminder_id)
            if reminder is None or reminder.user_id != user_id:
                return None
            updated = apply_update(reminder, fields, utc_now())
            self._reminders[reminder_id] = updated
            return updated

    async def delete_where(
        self,
        created_before: datetime,
        predicate: Callable[[Reminder], bool],
    ) -> int:
        created_before = ensure_aware(created_before)
        async with self._lock:
            doomed = [
                r.id for r in self._reminders.values()
                if r.created_at is not None and r.created_at < created_before and predicate(r)
            ]
            for reminder_id in doomed:
                del self._reminders[reminder_id]
            return len(doomed)

    async def delete_for_user(self, reminder_id: str, user_id: str) -> bool:
        async with self._lock:
            reminder = self._reminders.get(reminder_id)
            if reminder is None or reminder.user_id != user_id:
                return False
            del self._reminders[reminder_id]
            return True

    async def delete_many_for_user(self, reminder_ids: Iterable[str], user_id: str) -> int:
        async with self._lock:
            deleted = 0
            for reminder_id in set(reminder_ids):
                reminder = self._reminders.get(reminder_id)
                if reminder is not None and reminder.user_id == user_id:
                    del self._reminders[reminder_id]
                    deleted += 1
            return deleted
