"""Formatting of reminders into push-channel payloads.

The subscribe-message template accepts at most 20 characters in its text
fields and expects times as ``YYYY-MM-DD HH:mm``.
"""

from typing import Dict, Optional

from src.models.reminder import Reminder
from src.utils.time_utils import format_local_minute


FIELD_MAX_LENGTH = 20
ELLIPSIS = "…"


def truncate_field(text: Optional[str], max_length: int = FIELD_MAX_LENGTH) -> str:
    """Trim ``text`` and cut it to ``max_length`` characters.

    Over-long values keep their first ``max_length - 1`` characters followed
    by a single ellipsis character.
    """
    if not text:
        return ""

    trimmed = text.strip()
    if len(trimmed) <= max_length:
        return trimmed

    return trimmed[:max_length - 1] + ELLIPSIS


def build_payload(reminder: Reminder) -> Dict[str, str]:
    """Build the ``subject``/``body``/``time`` fields for a reminder."""
    return {
        "subject": truncate_field(reminder.title),
        "body": truncate_field(reminder.content),
        "time": format_local_minute(reminder.remind_time),
    }
