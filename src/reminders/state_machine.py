"""Delivery and subscription state rules for a single reminder.

A reminder is described by two independent statuses:

* ``subscription_status`` changes only on explicit user action. Once a
  reminder is cancelled it can never be subscribed again.
* ``send_status`` changes only through dispatch attempts. ``sent`` and
  ``failed`` are terminal.

Every dispatch attempt increments ``retry_count``, successful ones included.
A successful send therefore consumes one unit of the retry budget; this has
no further effect because ``sent`` is terminal.
"""

from datetime import datetime
from typing import Any, Dict

from src.models.reminder import MAX_RETRIES, Reminder, SendStatus, SubscriptionStatus
from src.reminders.errors import InvalidTransitionError
from src.utils.time_utils import ensure_aware


_ALLOWED_SUBSCRIPTION_MOVES = {
    SubscriptionStatus.PENDING: {SubscriptionStatus.SUBSCRIBED, SubscriptionStatus.CANCELLED},
    SubscriptionStatus.SUBSCRIBED: {SubscriptionStatus.CANCELLED},
    SubscriptionStatus.CANCELLED: set(),
}


def is_dispatch_eligible(reminder: Reminder, now: datetime) -> bool:
    """Return True if the reminder should be attempted at ``now``."""
    return (
        reminder.remind_time <= ensure_aware(now)
        and reminder.subscription_status == SubscriptionStatus.SUBSCRIBED
        and reminder.send_status == SendStatus.PENDING
        and reminder.retry_count < MAX_RETRIES
    )


def is_terminal(reminder: Reminder) -> bool:
    return reminder.send_status in (SendStatus.SENT, SendStatus.FAILED)


def is_reclaimable(reminder: Reminder) -> bool:
    """True for reminders that can never be delivered.

    Sent reminders are kept for the user's history and never match.
    """
    if reminder.send_status == SendStatus.SENT:
        return False
    return (
        reminder.send_status == SendStatus.FAILED
        or reminder.subscription_status == SubscriptionStatus.CANCELLED
    )


def success_fields(now: datetime) -> Dict[str, Any]:
    """Store update recording a successful delivery."""
    return {
        "send_status": SendStatus.SENT,
        "sent_at": ensure_aware(now),
        "$inc": {"retry_count": 1},
    }


def failure_fields(error: str) -> Dict[str, Any]:
    """Store update recording a failed attempt.

    The cap is applied from the incremented count by
    ``settle_retry_budget`` inside the store update.
    """
    return {
        "last_error": error,
        "$inc": {"retry_count": 1},
    }


def settle_retry_budget(data: Dict[str, Any]) -> Dict[str, Any]:
    """Apply the retry cap to a reminder document after an update.

    A pending reminder whose count reached the cap becomes ``failed``.
    The count never goes past the cap.
    """
    if data["retry_count"] >= MAX_RETRIES:
        data["retry_count"] = MAX_RETRIES
        if SendStatus(data["send_status"]) == SendStatus.PENDING:
            data["send_status"] = SendStatus.FAILED
    return data


def subscription_transition(
    current: SubscriptionStatus,
    target: SubscriptionStatus,
) -> SubscriptionStatus:
    """Validate a user-driven subscription change and return the new status.

    Raises:
        InvalidTransitionError: If the move is not allowed
    """
    current = SubscriptionStatus(current)
    target = SubscriptionStatus(target)
    if current == target:
        return target
    if target not in _ALLOWED_SUBSCRIPTION_MOVES[current]:
        raise InvalidTransitionError(current.value, target.value)
    return target
