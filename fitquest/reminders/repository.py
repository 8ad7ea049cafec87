import functools
import logging
from datetime import datetime, timezone as dt_timezone
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

from pydantic import ValidationError
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from .exceptions import StoreUnavailableError
from .schemas import Reminder, ReminderCreate, ReminderUpdate

logger = logging.getLogger(__name__)

T = TypeVar("T")

REMINDER_KEY = "reminder:{reminder_id}"
REMINDER_ID_SEQ = "reminder:next_id"
USER_REMINDERS_KEY = "reminders:user:{user_id}"
ACTIVE_REMINDERS_KEY = "reminders:active"


def utcnow() -> datetime:
    return datetime.now(dt_timezone.utc)


def translate_redis_errors(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
    """Surface Redis connectivity failures as StoreUnavailableError."""

    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> T:
        try:
            return await func(*args, **kwargs)
        except (RedisConnectionError, RedisTimeoutError) as e:
            logger.error(f"[Store] Redis unavailable during {func.__name__}: {e}")
            raise StoreUnavailableError(str(e)) from e

    return wrapper


def _parse_reminder(raw: Optional[str]) -> Optional[Reminder]:
    if raw is None:
        return None
    try:
        return Reminder.model_validate_json(raw)
    except ValidationError as e:
        logger.warning(f"[Store] Skipping malformed reminder record: {e}")
        return None


class ReminderStore:
    """Reminder records persisted in Redis.

    Layout:
      reminder:<id>            JSON record
      reminder:next_id         id sequence
      reminders:user:<uid>     set of the user's reminder ids
      reminders:active         set of ids that should be scheduled
    """

    def __init__(self, redis_client: Any, default_interval_minutes: int = 30):
        self.redis = redis_client
        self.default_interval_minutes = default_interval_minutes

    @translate_redis_errors
    async def ping(self) -> bool:
        return bool(await self.redis.ping())

    @translate_redis_errors
    async def create_reminder(self, data: ReminderCreate) -> Reminder:
        reminder_id = int(await self.redis.incr(REMINDER_ID_SEQ))
        now = utcnow()
        reminder = Reminder(
            id=reminder_id,
            user_id=data.user_id,
            type=data.type,
            interval_minutes=data.interval_minutes or self.default_interval_minutes,
            is_active=data.is_active,
            created_at=now,
            updated_at=now,
        )
        await self._save(reminder)
        await self.redis.sadd(USER_REMINDERS_KEY.format(user_id=reminder.user_id), reminder_id)
        logger.info(f"[Store] Created reminder {reminder_id} for user {reminder.user_id}")
        return reminder

    @translate_redis_errors
    async def get_reminder(self, reminder_id: int) -> Optional[Reminder]:
        return _parse_reminder(await self.redis.get(REMINDER_KEY.format(reminder_id=reminder_id)))

    @translate_redis_errors
    async def list_reminders(self, user_id: str) -> List[Reminder]:
        ids = await self.redis.smembers(USER_REMINDERS_KEY.format(user_id=user_id))
        return await self._load_many(ids)

    @translate_redis_errors
    async def list_active_reminders(self) -> List[Reminder]:
        ids = await self.redis.smembers(ACTIVE_REMINDERS_KEY)
        return [r for r in await self._load_many(ids) if r.is_active]

    @translate_redis_errors
    async def update_reminder(self, reminder_id: int, changes: ReminderUpdate) -> Optional[Reminder]:
        reminder = await self.get_reminder(reminder_id)
        if reminder is None:
            return None
        updates = changes.model_dump(exclude_none=True)
        if not updates:
            return reminder
        reminder = reminder.model_copy(update={**updates, "updated_at": utcnow()})
        await self._save(reminder)
        return reminder

    @translate_redis_errors
    async def delete_reminder(self, reminder_id: int) -> bool:
        reminder = await self.get_reminder(reminder_id)
        if reminder is None:
            return False
        await self.redis.delete(REMINDER_KEY.format(reminder_id=reminder_id))
        await self.redis.srem(USER_REMINDERS_KEY.format(user_id=reminder.user_id), reminder_id)
        await self.redis.srem(ACTIVE_REMINDERS_KEY, reminder_id)
        logger.info(f"[Store] Deleted reminder {reminder_id}")
        return True

    async def _save(self, reminder: Reminder) -> None:
        await self.redis.set(REMINDER_KEY.format(reminder_id=reminder.id), reminder.model_dump_json())
        if reminder.is_active:
            await self.redis.sadd(ACTIVE_REMINDERS_KEY, reminder.id)
        else:
            await self.redis.srem(ACTIVE_REMINDERS_KEY, reminder.id)

    async def _load_many(self, ids: Any) -> List[Reminder]:
        if not ids:
            return []
        ordered = sorted(int(i) for i in ids)
        raws = await self.redis.mget([REMINDER_KEY.format(reminder_id=i) for i in ordered])
        reminders = []
        for raw in raws:
            reminder = _parse_reminder(raw)
            if reminder is not None:
                reminders.append(reminder)
        return reminders
