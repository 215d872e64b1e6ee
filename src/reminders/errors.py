"""Exceptions raised by the reminder subsystem."""


class ReminderError(Exception):
    """Base class for reminder errors."""


class NoteNotFoundError(ReminderError):
    """The note does not exist or is not owned by the caller."""


class ReminderNotFoundError(ReminderError):
    """The reminder does not exist or is not owned by the caller."""


class InvalidTransitionError(ReminderError):
    """A subscription status change that the state machine forbids."""

    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot change subscription from '{current}' to '{target}'")
        self.current = current
        self.target = target
