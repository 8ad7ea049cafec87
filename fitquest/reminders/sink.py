import logging
from typing import Any, Awaitable, Dict, Optional, Protocol

from .metrics import (
    reminders_dispatch_queued_total,
    reminders_dispatch_success_total,
)
from .notifications import PendingNotificationQueue

logger = logging.getLogger(__name__)

REMINDER_MESSAGES = {
    "water": "Time to drink some water!",
    "exercise": "Time for a quick exercise break!",
}


def build_reminder_message(reminder_type: Optional[str]) -> str:
    if reminder_type in REMINDER_MESSAGES:
        return REMINDER_MESSAGES[reminder_type]
    return f"Reminder: {reminder_type or 'time to move'}"


class NotificationSink(Protocol):
    """Receives fired reminders. May return an awaitable; callers never wait on it."""

    def deliver(self, user_id: str, payload: Dict[str, Any]) -> Optional[Awaitable[None]]:
        ...


class WebSocketNotificationSink:
    """Pushes to the user's live socket, or queues for when they reconnect."""

    def __init__(self, manager: Any, queue: PendingNotificationQueue):
        self.manager = manager
        self.queue = queue

    async def deliver(self, user_id: str, payload: Dict[str, Any]) -> None:
        message = build_reminder_message(payload.get("reminder_type"))
        event = {"type": "reminder", **payload, "message": message}

        try:
            sent = await self.manager.send_to_user(user_id, event)
        except Exception as e:
            logger.warning(f"[Sink] Live push to user {user_id} failed, queueing: {e!r}")
            sent = False

        if sent:
            reminders_dispatch_success_total.inc()
            logger.info(f"[Sink] Pushed reminder {payload.get('reminder_id')} to user {user_id}")
            return

        await self.queue.enqueue(user_id, payload, message)
        reminders_dispatch_queued_total.inc()
