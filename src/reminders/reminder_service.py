"""User-facing reminder operations.

Every operation is scoped to the calling user's ID; reminders owned by other
users behave as if they did not exist.
"""

from typing import Any, Dict, Iterable, Optional, Protocol

from src.models.reminder import (
    DEFAULT_MESSAGE_ID,
    Reminder,
    ReminderCreate,
    ReminderPage,
    ReminderUpdate,
    SendStatus,
    SubscriptionStatus,
    Note,
)
from src.reminders.errors import NoteNotFoundError, ReminderNotFoundError
from src.reminders.state_machine import subscription_transition
from src.reminders.store import ReminderStore
from src.utils.logger import log_info


class NoteDirectory(Protocol):
    """Lookup of journal notes owned by a user."""

    async def get_note(self, note_id: str, user_id: str) -> Optional[Note]: ...


class InMemoryNoteDirectory:
    """Note lookup backed by a dict, for local runs and tests."""

    def __init__(self, notes: Optional[Iterable[Note]] = None):
        self._notes: Dict[str, Note] = {note.id: note for note in notes or []}

    def add(self, note: Note) -> None:
        self._notes[note.id] = note

    async def get_note(self, note_id: str, user_id: str) -> Optional[Note]:
        note = self._notes.get(note_id)
        if note is None or note.user_id != user_id:
            return None
        return note


class ReminderService:
    """Creates, reads, edits and deletes a user's reminders."""

    def __init__(
        self,
        store: ReminderStore,
        notes: NoteDirectory,
        default_message_id: str = DEFAULT_MESSAGE_ID,
        max_page_size: int = 100,
    ):
        self.store = store
        self.notes = notes
        self.default_message_id = default_message_id
        self.max_page_size = max_page_size

    async def create_reminder(self, user_id: str, data: ReminderCreate) -> Reminder:
        """Create a pending reminder for one of the user's notes.

        The note's title is used when no title is given.

        Raises:
            NoteNotFoundError: If the note is missing or owned by someone else
        """
        note = await self.notes.get_note(data.note_id, user_id)
        if note is None:
            raise NoteNotFoundError(data.note_id)

        reminder = Reminder(
            user_id=user_id,
            note_id=data.note_id,
            title=data.title or note.title,
            content=data.content,
            remind_time=data.remind_time,
            message_id=self.default_message_id,
        )
        stored = await self.store.insert(reminder)
        log_info(f"Created reminder '{stored.title}' for note {stored.note_id} at {stored.remind_time.isoformat()}")
        return stored

    async def get_reminder(self, reminder_id: str, user_id: str) -> Reminder:
        reminder = await self.store.get(reminder_id, user_id)
        if reminder is None:
            raise ReminderNotFoundError(reminder_id)
        return reminder

    async def list_reminders(
        self,
        user_id: str,
        *,
        page: int = 1,
        limit: int = 20,
        subscription_status: Optional[SubscriptionStatus] = None,
        send_status: Optional[SendStatus] = None,
    ) -> ReminderPage:
        """List the user's reminders, newest ``remind_time`` first."""
        page = max(page, 1)
        limit = min(max(limit, 1), self.max_page_size)

        items, total = await self.store.find_for_user(
            user_id,
            subscription_status=subscription_status,
            send_status=send_status,
            skip=(page - 1) * limit,
            limit=limit,
        )
        return ReminderPage(items=items, total=total, page=page, limit=limit)

    async def update_reminder(self, reminder_id: str, user_id: str, data: ReminderUpdate) -> Reminder:
        """Apply a user edit.

        Raises:
            ReminderNotFoundError: If the reminder does not exist for this user
            InvalidTransitionError: If the subscription change is not allowed
        """
        current = await self.get_reminder(reminder_id, user_id)

        fields: Dict[str, Any] = data.model_dump(exclude_none=True)
        if "subscription_status" in fields:
            fields["subscription_status"] = subscription_transition(
                current.subscription_status, fields["subscription_status"]
            )
        if not fields:
            return current

        updated = await self.store.update_for_user(reminder_id, user_id, fields)
        if updated is None:
            raise ReminderNotFoundError(reminder_id)
        return updated

    async def subscribe(self, reminder_id: str, user_id: str) -> Reminder:
        return await self.update_reminder(
            reminder_id, user_id, ReminderUpdate(subscription_status=SubscriptionStatus.SUBSCRIBED)
        )

    async def cancel(self, reminder_id: str, user_id: str) -> Reminder:
        return await self.update_reminder(
            reminder_id, user_id, ReminderUpdate(subscription_status=SubscriptionStatus.CANCELLED)
        )

    async def delete_reminder(self, reminder_id: str, user_id: str) -> None:
        if not await self.store.delete_for_user(reminder_id, user_id):
            raise ReminderNotFoundError(reminder_id)

    async def batch_delete(self, reminder_ids: Iterable[str], user_id: str) -> int:
        """Delete several reminders; IDs that do not belong to the user are skipped."""
        deleted = await self.store.delete_many_for_user(reminder_ids, user_id)
        log_info(f"Deleted {deleted} reminders for user {user_id}")
        return deleted
