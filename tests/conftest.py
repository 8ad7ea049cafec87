import heapq
import itertools
from datetime import datetime, timezone as dt_timezone
from typing import Any, Dict, List, Optional, Set

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from fitquest.reminders.schemas import Reminder


class FakeTimerHandle:
    def __init__(self, when: float, callback, args):
        self.when = when
        self._callback = callback
        self._args = args
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    def cancelled(self) -> bool:
        return self._cancelled

    def _run(self) -> None:
        self._callback(*self._args)


class FakeLoop:
    """Manual clock exposing the subset of the asyncio loop the scheduler uses."""

    def __init__(self):
        self._now = 0.0
        self._queue: List[Any] = []
        self._seq = itertools.count()

    def time(self) -> float:
        return self._now

    def call_at(self, when: float, callback, *args) -> FakeTimerHandle:
        handle = FakeTimerHandle(when, callback, args)
        heapq.heappush(self._queue, (when, next(self._seq), handle))
        return handle

    def call_later(self, delay: float, callback, *args) -> FakeTimerHandle:
        return self.call_at(self._now + delay, callback, *args)

    def advance(self, seconds: float) -> None:
        target = self._now + seconds
        while self._queue and self._queue[0][0] <= target:
            when, _, handle = heapq.heappop(self._queue)
            self._now = when
            if not handle.cancelled():
                handle._run()
        self._now = target

    def pending_handles(self) -> int:
        return sum(1 for _, _, h in self._queue if not h.cancelled())


class FakeRedis:
    """In-memory stand-in for the async Redis commands the stores use."""

    def __init__(self):
        self.strings: Dict[str, str] = {}
        self.sets: Dict[str, Set[str]] = {}
        self.lists: Dict[str, List[str]] = {}
        self.available = True

    def _check(self) -> None:
        if not self.available:
            raise RedisConnectionError("Connection refused")

    async def ping(self) -> bool:
        self._check()
        return True

    async def incr(self, key: str) -> int:
        self._check()
        value = int(self.strings.get(key, "0")) + 1
        self.strings[key] = str(value)
        return value

    async def get(self, key: str) -> Optional[str]:
        self._check()
        return self.strings.get(key)

    async def set(self, key: str, value: Any) -> bool:
        self._check()
        self.strings[key] = str(value)
        return True

    async def mget(self, keys: List[str]) -> List[Optional[str]]:
        self._check()
        return [self.strings.get(k) for k in keys]

    async def delete(self, *keys: str) -> int:
        self._check()
        removed = 0
        for key in keys:
            for table in (self.strings, self.sets, self.lists):
                if key in table:
                    del table[key]
                    removed += 1
        return removed

    async def sadd(self, key: str, *members: Any) -> int:
        self._check()
        bucket = self.sets.setdefault(key, set())
        before = len(bucket)
        bucket.update(str(m) for m in members)
        return len(bucket) - before

    async def srem(self, key: str, *members: Any) -> int:
        self._check()
        bucket = self.sets.get(key, set())
        removed = 0
        for m in members:
            if str(m) in bucket:
                bucket.discard(str(m))
                removed += 1
        return removed

    async def smembers(self, key: str) -> Set[str]:
        self._check()
        return set(self.sets.get(key, set()))

    async def rpush(self, key: str, *values: Any) -> int:
        self._check()
        bucket = self.lists.setdefault(key, [])
        bucket.extend(str(v) for v in values)
        return len(bucket)

    async def lrange(self, key: str, start: int, end: int) -> List[str]:
        self._check()
        bucket = self.lists.get(key, [])
        return list(bucket[start:] if end == -1 else bucket[start:end + 1])

    async def lrem(self, key: str, count: int, value: Any) -> int:
        self._check()
        bucket = self.lists.get(key, [])
        kept = [v for v in bucket if v != str(value)]
        self.lists[key] = kept
        return len(bucket) - len(kept)

    async def aclose(self) -> None:
        return None


class RecordingSink:
    def __init__(self):
        self.deliveries: List[Any] = []

    def deliver(self, user_id: str, payload: Dict[str, Any]) -> None:
        self.deliveries.append((user_id, payload))


class StubStore:
    """Reminder store double returning a fixed list of active reminders."""

    def __init__(self, reminders: Optional[List[Reminder]] = None, error: Optional[Exception] = None):
        self.reminders = reminders or []
        self.error = error
        self.calls = 0

    async def list_active_reminders(self) -> List[Reminder]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.reminders)


def make_reminder(reminder_id: int, user_id: Any, interval_minutes: Any, type: str = "water") -> Reminder:
    now = datetime(2024, 1, 1, tzinfo=dt_timezone.utc)
    return Reminder.model_construct(
        id=reminder_id,
        user_id=str(user_id),
        type=type,
        interval_minutes=interval_minutes,
        is_active=True,
        created_at=now,
        updated_at=now,
    )


@pytest.fixture
def fake_loop() -> FakeLoop:
    return FakeLoop()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def recording_sink() -> RecordingSink:
    return RecordingSink()
