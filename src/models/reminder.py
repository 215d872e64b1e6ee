"""Data models for reminder entities."""

from datetime import datetime
from enum import Enum
from typing import Optional, List
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

from src.utils.time_utils import ensure_aware


DEFAULT_MESSAGE_ID = "3eKAvMUDfwzRBOIUatLtDROUxHdECTNmvk9vGOKMLck"
MAX_TITLE_LENGTH = 200
MAX_CONTENT_LENGTH = 500
MAX_RETRIES = 3


class SubscriptionStatus(str, Enum):
    """Whether the user authorized push delivery for a reminder."""
    PENDING = "pending"
    SUBSCRIBED = "subscribed"
    CANCELLED = "cancelled"


class SendStatus(str, Enum):
    """Delivery outcome of a reminder."""
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


def new_reminder_id() -> str:
    return uuid4().hex


class Reminder(BaseModel):
    """A scheduled notification tied to a note."""
    id: str = Field(default_factory=new_reminder_id, description="Reminder ID")
    user_id: str = Field(description="Owning user ID")
    note_id: str = Field(description="Source note ID")
    title: str = Field(min_length=1, max_length=MAX_TITLE_LENGTH, description="Reminder title")
    content: str = Field(min_length=1, max_length=MAX_CONTENT_LENGTH, description="Reminder content")
    remind_time: datetime = Field(description="Instant the reminder becomes due")
    message_id: str = Field(default=DEFAULT_MESSAGE_ID, description="Push template ID")
    subscription_status: SubscriptionStatus = Field(default=SubscriptionStatus.PENDING)
    send_status: SendStatus = Field(default=SendStatus.PENDING)
    retry_count: int = Field(default=0, ge=0, le=MAX_RETRIES, description="Dispatch attempts so far")
    last_error: str = Field(default="", description="Most recent failure description")
    sent_at: Optional[datetime] = Field(default=None, description="Successful delivery timestamp")
    created_at: Optional[datetime] = Field(default=None, description="Creation timestamp")
    updated_at: Optional[datetime] = Field(default=None, description="Last update timestamp")

    @field_validator("title", "content", mode="before")
    @classmethod
    def _strip(cls, value):
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("remind_time", "sent_at", "created_at", "updated_at")
    @classmethod
    def _aware(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_aware(value)


class ReminderCreate(BaseModel):
    """Model for creating a new reminder."""
    note_id: str = Field(min_length=1, description="Note the reminder belongs to")
    content: str = Field(min_length=1, max_length=MAX_CONTENT_LENGTH, description="Reminder content")
    remind_time: datetime = Field(description="When to send the reminder")
    title: Optional[str] = Field(default=None, max_length=MAX_TITLE_LENGTH, description="Defaults to the note title")

    @field_validator("content", mode="before")
    @classmethod
    def _strip_content(cls, value):
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("title", mode="before")
    @classmethod
    def _strip_title(cls, value):
        # blank titles fall back to the note title
        if isinstance(value, str):
            return value.strip() or None
        return value


class ReminderUpdate(BaseModel):
    """Model for user edits to an existing reminder."""
    content: Optional[str] = Field(default=None, min_length=1, max_length=MAX_CONTENT_LENGTH)
    remind_time: Optional[datetime] = Field(default=None)
    subscription_status: Optional[SubscriptionStatus] = Field(default=None)

    @field_validator("content", mode="before")
    @classmethod
    def _strip_content(cls, value):
        if isinstance(value, str):
            return value.strip()
        return value


class ReminderPage(BaseModel):
    """One page of a user's reminders."""
    items: List[Reminder] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 20


class Note(BaseModel):
    """The slice of a journal note that reminders depend on."""
    id: str
    user_id: str
    title: str
