"""
In-process reminder scheduler.

Keeps exactly one timer pair per active reminder session: a one-shot
first-fire shortly after start, and a recurring timer at the session's
interval. All timers run on a single event loop; any object with asyncio's
``time()``, ``call_later()`` and ``call_at()`` works, which lets tests drive
the scheduler with a manual clock.
"""
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Set

from .constants import (
    FIRST_NOTIFICATION_DELAY,
    MAX_INTERVAL,
    MIN_INTERVAL,
    SECONDS_PER_MINUTE,
    SESSION_ID_PREFIX,
)
from .exceptions import InvalidIntervalError, NoSuchSessionError
from .metrics import (
    scheduler_active_sessions,
    scheduler_fires_total,
    scheduler_rejected_total,
    scheduler_sessions_started_total,
    scheduler_sessions_stopped_total,
)

logger = logging.getLogger(__name__)

NotifyCallback = Callable[[str], Any]


def session_id_for(reminder_id: Any) -> str:
    return f"{SESSION_ID_PREFIX}{reminder_id}"


def validate_interval(interval_minutes: Any) -> int:
    """Return the interval if it is an integer in [MIN_INTERVAL, MAX_INTERVAL].

    Raises InvalidIntervalError otherwise. Values are never clamped; bools and
    floats (even integral ones) are rejected.
    """
    if isinstance(interval_minutes, bool) or not isinstance(interval_minutes, int):
        raise InvalidIntervalError(interval_minutes)
    if not MIN_INTERVAL <= interval_minutes <= MAX_INTERVAL:
        raise InvalidIntervalError(interval_minutes)
    return interval_minutes


class RecurringTimer:
    """Fires ``callback`` every ``interval_seconds`` until cancelled.

    Deadlines are computed from the start time rather than from each firing,
    so a slow callback does not push later firings back.
    """

    def __init__(self, loop: Any, interval_seconds: float, callback: Callable[[], None]):
        self._loop = loop
        self._interval = interval_seconds
        self._callback = callback
        self._handle = None
        self._next_deadline: Optional[float] = None
        self._cancelled = False

    def start(self) -> "RecurringTimer":
        self._next_deadline = self._loop.time() + self._interval
        self._handle = self._loop.call_at(self._next_deadline, self._tick)
        return self

    def _tick(self) -> None:
        if self._cancelled:
            return
        # Re-arm first: the callback must not be able to break the schedule
        self._next_deadline += self._interval
        self._handle = self._loop.call_at(self._next_deadline, self._tick)
        self._callback()

    def cancel(self) -> None:
        self._cancelled = True
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class TimerPair:
    """The two timers owned by a session. Only ever cancelled together."""

    def __init__(self, first_fire: Any, recurring: RecurringTimer):
        self._first_fire = first_fire
        self._recurring = recurring

    def cancel(self) -> None:
        self._first_fire.cancel()
        self._recurring.cancel()


@dataclass
class ReminderSession:
    session_id: str
    interval_minutes: int
    on_notify: NotifyCallback
    timers: Optional[TimerPair] = None


class ReminderScheduler:
    """Session table mapping session ids to their live timers.

    Created once per process and handed to the orchestration layer. Nothing
    outside this class touches the table; mutations go through
    ``start``/``stop``/``update``/``stop_all_sessions``.
    """

    def __init__(self, loop: Any):
        self.loop = loop
        self._sessions: Dict[str, ReminderSession] = {}
        # start() stops the previous session before scheduling the new one;
        # the lock keeps that a single step if called off the loop thread.
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def start(self, session_id: str, interval_minutes: Any, on_notify: NotifyCallback) -> bool:
        try:
            interval = validate_interval(interval_minutes)
        except InvalidIntervalError as e:
            scheduler_rejected_total.inc()
            logger.warning(f"[Scheduler] Rejected start for {session_id}: {e}")
            return False

        with self._lock:
            if session_id in self._sessions:
                self._stop_locked(session_id)

            session = ReminderSession(
                session_id=session_id,
                interval_minutes=interval,
                on_notify=on_notify,
            )
            first_fire = self.loop.call_later(
                FIRST_NOTIFICATION_DELAY, self._fire, session, "first"
            )
            recurring = RecurringTimer(
                self.loop,
                interval * SECONDS_PER_MINUTE,
                lambda: self._fire(session, "recurring"),
            ).start()
            session.timers = TimerPair(first_fire, recurring)
            self._sessions[session_id] = session
            scheduler_active_sessions.set(len(self._sessions))

        scheduler_sessions_started_total.inc()
        logger.info(
            f"[Scheduler] Started {session_id} every {interval}m "
            f"(first notification in {FIRST_NOTIFICATION_DELAY}s)"
        )
        return True

    def stop(self, session_id: str) -> bool:
        with self._lock:
            if session_id not in self._sessions:
                return False
            self._stop_locked(session_id)
        logger.info(f"[Scheduler] Stopped {session_id}")
        return True

    def update(self, session_id: str, new_interval_minutes: Any, on_notify: NotifyCallback) -> bool:
        """Restart a running session with a new interval.

        Unlike ``start`` this never creates a session. The first-fire
        countdown restarts along with the recurring timer.
        """
        with self._lock:
            try:
                self.require_session(session_id)
            except NoSuchSessionError as e:
                logger.warning(f"[Scheduler] Update ignored: {e}")
                return False
            return self.start(session_id, new_interval_minutes, on_notify)

    def stop_all_sessions(self) -> int:
        with self._lock:
            session_ids = list(self._sessions)
            for session_id in session_ids:
                self._stop_locked(session_id)
        if session_ids:
            logger.info(f"[Scheduler] Stopped all sessions ({len(session_ids)})")
        return len(session_ids)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def is_active(self, session_id: str) -> bool:
        return session_id in self._sessions

    def get_interval(self, session_id: str) -> Optional[int]:
        session = self._sessions.get(session_id)
        return session.interval_minutes if session else None

    def list_active(self) -> Set[str]:
        return set(self._sessions)

    def require_session(self, session_id: str) -> ReminderSession:
        try:
            return self._sessions[session_id]
        except KeyError:
            raise NoSuchSessionError(session_id) from None

    def __len__(self) -> int:
        return len(self._sessions)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _stop_locked(self, session_id: str) -> None:
        session = self._sessions.pop(session_id)
        if session.timers is not None:
            session.timers.cancel()
        scheduler_sessions_stopped_total.inc()
        scheduler_active_sessions.set(len(self._sessions))

    def _fire(self, session: ReminderSession, phase: str) -> None:
        # A replaced or stopped session must never notify again
        if self._sessions.get(session.session_id) is not session:
            return
        scheduler_fires_total.labels(phase=phase).inc()
        try:
            session.on_notify(session.session_id)
        except Exception:
            logger.exception(f"[Scheduler] Notify callback failed for {session.session_id}")
