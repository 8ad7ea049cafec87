"""
Bridges persisted reminder records to the in-process scheduler and the
notification sink.
"""
import asyncio
import inspect
import logging
from datetime import datetime, timezone as dt_timezone
from typing import Any, Callable, Set

from .metrics import reminders_dispatch_failed_total, scheduler_restarts_total
from .repository import ReminderStore
from .scheduler import ReminderScheduler, session_id_for
from .schemas import Reminder
from .sink import NotificationSink

logger = logging.getLogger(__name__)


class ReminderService:
    def __init__(self, scheduler: ReminderScheduler, store: ReminderStore, sink: NotificationSink):
        self.scheduler = scheduler
        self.store = store
        self.sink = sink
        self._deliveries: Set["asyncio.Future[Any]"] = set()

    def start_reminder(self, reminder: Reminder) -> bool:
        """Schedule (or reschedule) a reminder. Returns False for an invalid interval."""
        return self.scheduler.start(
            session_id_for(reminder.id),
            reminder.interval_minutes,
            self._notify_callback(reminder),
        )

    def stop_reminder(self, reminder_id: Any) -> bool:
        return self.scheduler.stop(session_id_for(reminder_id))

    def update_reminder(self, reminder: Reminder) -> bool:
        """Apply a changed interval to a running reminder. False if it isn't running."""
        return self.scheduler.update(
            session_id_for(reminder.id),
            reminder.interval_minutes,
            self._notify_callback(reminder),
        )

    def is_scheduled(self, reminder_id: Any) -> bool:
        return self.scheduler.is_active(session_id_for(reminder_id))

    async def restart_all(self) -> int:
        """Rebuild every session from the store.

        Stops all sessions first, so a store outage leaves a clean, empty
        schedule; the StoreUnavailableError then propagates to the caller.
        Records the scheduler rejects are logged and skipped.
        """
        scheduler_restarts_total.inc()
        self.scheduler.stop_all_sessions()

        reminders = await self.store.list_active_reminders()
        started = 0
        for reminder in reminders:
            if self.start_reminder(reminder):
                started += 1
            else:
                logger.warning(
                    f"[Reminders] Skipped reminder {reminder.id} on restart "
                    f"(interval={reminder.interval_minutes!r})"
                )
        logger.info(f"[Reminders] Restarted {started}/{len(reminders)} active reminders")
        return started

    async def shutdown(self, timeout: float = 5.0) -> int:
        """Stop every session, then give in-flight deliveries ``timeout`` seconds to finish."""
        stopped = self.scheduler.stop_all_sessions()
        pending = list(self._deliveries)
        if pending:
            _, not_done = await asyncio.wait(pending, timeout=timeout)
            for task in not_done:
                task.cancel()
            if not_done:
                logger.warning(f"[Reminders] Cancelled {len(not_done)} deliveries still running at shutdown")
        return stopped

    def _notify_callback(self, reminder: Reminder) -> Callable[[str], None]:
        user_id = reminder.user_id
        base_payload = reminder.to_payload()

        def on_notify(session_id: str) -> None:
            payload = {
                **base_payload,
                "session_id": session_id,
                "fired_at": datetime.now(dt_timezone.utc).isoformat(),
            }
            self._hand_off(user_id, payload)

        return on_notify

    def _hand_off(self, user_id: str, payload: dict) -> None:
        # Fire-and-forget: never await the sink, never let it raise into the timer
        try:
            result = self.sink.deliver(user_id, payload)
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._deliveries.add(task)
                task.add_done_callback(self._on_delivery_done)
        except Exception:
            reminders_dispatch_failed_total.inc()
            logger.exception(f"[Reminders] Delivery hand-off failed for user {user_id}")

    def _on_delivery_done(self, task: "asyncio.Future[Any]") -> None:
        self._deliveries.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            reminders_dispatch_failed_total.inc()
            logger.error(f"[Reminders] Delivery failed: {exc!r}", exc_info=exc)
