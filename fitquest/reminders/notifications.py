import logging
from typing import Any, Dict, Iterable, List, Optional

from .repository import translate_redis_errors, utcnow
from .schemas import PendingNotification

logger = logging.getLogger(__name__)

NOTIFICATION_KEY = "notification:{notification_id}"
NOTIFICATION_ID_SEQ = "notification:next_id"
PENDING_KEY = "notifications:pending:{user_id}"


class PendingNotificationQueue:
    """Reminders queued for users who had no live socket when they fired."""

    def __init__(self, redis_client: Any):
        self.redis = redis_client

    @translate_redis_errors
    async def enqueue(self, user_id: str, payload: Dict[str, Any], message: str) -> PendingNotification:
        notification_id = int(await self.redis.incr(NOTIFICATION_ID_SEQ))
        notification = PendingNotification(
            id=notification_id,
            user_id=str(user_id),
            reminder_id=payload.get("reminder_id"),
            type=str(payload.get("reminder_type") or "reminder"),
            message=message,
            created_at=utcnow(),
        )
        await self._save(notification)
        await self.redis.rpush(PENDING_KEY.format(user_id=notification.user_id), notification_id)
        logger.info(f"[Notifications] Queued {notification_id} for offline user {user_id}")
        return notification

    @translate_redis_errors
    async def list_pending(self, user_id: str) -> List[PendingNotification]:
        """Unsent notifications for the user, oldest first."""
        ids = await self.redis.lrange(PENDING_KEY.format(user_id=user_id), 0, -1)
        if not ids:
            return []
        raws = await self.redis.mget([NOTIFICATION_KEY.format(notification_id=i) for i in ids])
        pending = []
        for raw in raws:
            if raw is None:
                continue
            notification = PendingNotification.model_validate_json(raw)
            if not notification.sent:
                pending.append(notification)
        return pending

    @translate_redis_errors
    async def mark_sent(self, notification_ids: Iterable[int]) -> int:
        marked = 0
        for notification_id in notification_ids:
            if await self._mark_one(notification_id):
                marked += 1
        return marked

    @translate_redis_errors
    async def dismiss(self, notification_id: int) -> bool:
        return await self._mark_one(notification_id)

    async def _mark_one(self, notification_id: int) -> bool:
        notification = await self._get(notification_id)
        if notification is None:
            return False
        notification = notification.model_copy(update={"sent": True})
        await self._save(notification)
        await self.redis.lrem(PENDING_KEY.format(user_id=notification.user_id), 0, notification_id)
        return True

    async def _get(self, notification_id: int) -> Optional[PendingNotification]:
        raw = await self.redis.get(NOTIFICATION_KEY.format(notification_id=notification_id))
        return PendingNotification.model_validate_json(raw) if raw else None

    async def _save(self, notification: PendingNotification) -> None:
        await self.redis.set(
            NOTIFICATION_KEY.format(notification_id=notification.id),
            notification.model_dump_json(),
        )
