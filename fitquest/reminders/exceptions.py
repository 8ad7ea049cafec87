from typing import Any


class ReminderError(Exception):
    """Base class for reminder scheduling and storage errors."""


class InvalidIntervalError(ReminderError, ValueError):
    def __init__(self, value: Any):
        self.value = value
        super().__init__(f"Invalid reminder interval: {value!r}")


class NoSuchSessionError(ReminderError, KeyError):
    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"No active reminder session: {session_id}")

    def __str__(self) -> str:
        return self.args[0]


class StoreUnavailableError(ReminderError):
    """The reminder store could not be reached."""
