"""Reminders module for scheduled push notifications of journal notes."""

from src.reminders.reminder_service import ReminderService
from src.reminders.reminder_scheduler import ReminderScheduler
from src.reminders.notification_dispatcher import NotificationDispatcher
from src.reminders.cleanup import CleanupPolicy

__all__ = [
    'ReminderService',
    'ReminderScheduler',
    'NotificationDispatcher',
    'CleanupPolicy',
]
