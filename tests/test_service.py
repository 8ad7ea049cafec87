"""Tests for store-backed reminder orchestration."""
import asyncio

import pytest

from conftest import StubStore, make_reminder
from fitquest.reminders.exceptions import StoreUnavailableError
from fitquest.reminders.scheduler import ReminderScheduler
from fitquest.reminders.service import ReminderService


def build_service(loop, store=None, sink=None):
    return ReminderService(ReminderScheduler(loop), store or StubStore(), sink)


def test_start_reminder_forwards_user_and_payload(fake_loop, recording_sink):
    service = build_service(fake_loop, sink=recording_sink)
    reminder = make_reminder(1, 7, 5)

    assert service.start_reminder(reminder) is True
    assert service.is_scheduled(1)
    fake_loop.advance(5)

    assert len(recording_sink.deliveries) == 1
    user_id, payload = recording_sink.deliveries[0]
    assert user_id == "7"
    assert payload["reminder_id"] == 1
    assert payload["reminder_type"] == "water"
    assert payload["interval_minutes"] == 5
    assert payload["session_id"] == "reminder-1"
    assert "fired_at" in payload


def test_stop_reminder(fake_loop, recording_sink):
    service = build_service(fake_loop, sink=recording_sink)
    service.start_reminder(make_reminder(3, 1, 1))

    assert service.stop_reminder(3) is True
    assert service.stop_reminder(3) is False
    fake_loop.advance(600)
    assert recording_sink.deliveries == []


def test_update_reminder_only_when_running(fake_loop, recording_sink):
    service = build_service(fake_loop, sink=recording_sink)
    reminder = make_reminder(4, 1, 10)

    assert service.update_reminder(reminder) is False
    assert not service.is_scheduled(4)

    service.start_reminder(reminder)
    assert service.update_reminder(reminder.model_copy(update={"interval_minutes": 20})) is True
    assert service.scheduler.get_interval("reminder-4") == 20


def test_restart_all_reconciles_with_store(fake_loop, recording_sink):
    store = StubStore([make_reminder(1, 7, 5), make_reminder(2, 8, 30)])
    service = build_service(fake_loop, store=store, sink=recording_sink)
    service.scheduler.start("reminder-99", 10, lambda sid: None)

    started = asyncio.run(service.restart_all())

    assert started == 2
    assert service.scheduler.list_active() == {"reminder-1", "reminder-2"}
    assert service.scheduler.get_interval("reminder-1") == 5
    assert service.scheduler.get_interval("reminder-2") == 30


def test_restart_all_with_no_active_reminders(fake_loop):
    service = build_service(fake_loop)
    service.start_reminder(make_reminder(1, 7, 5))

    assert asyncio.run(service.restart_all()) == 0
    assert service.scheduler.list_active() == set()


def test_restart_all_skips_invalid_records(fake_loop, recording_sink):
    store = StubStore([make_reminder(1, 7, 5), make_reminder(2, 7, 0), make_reminder(3, 7, 3.5)])
    service = build_service(fake_loop, store=store, sink=recording_sink)

    assert asyncio.run(service.restart_all()) == 1
    assert service.scheduler.list_active() == {"reminder-1"}


def test_restart_all_surfaces_store_outage_after_clearing(fake_loop):
    store = StubStore(error=StoreUnavailableError("down"))
    service = build_service(fake_loop, store=store)
    service.start_reminder(make_reminder(1, 7, 5))

    with pytest.raises(StoreUnavailableError):
        asyncio.run(service.restart_all())

    assert store.calls == 1
    assert service.scheduler.list_active() == set()
    assert fake_loop.pending_handles() == 0


def test_sync_sink_failure_does_not_stop_schedule(fake_loop):
    class BrokenSink:
        def __init__(self):
            self.attempts = 0

        def deliver(self, user_id, payload):
            self.attempts += 1
            raise ConnectionError("socket gone")

    sink = BrokenSink()
    service = build_service(fake_loop, sink=sink)
    service.start_reminder(make_reminder(1, 7, 1))

    fake_loop.advance(120)

    assert sink.attempts == 3
    assert service.is_scheduled(1)


def test_async_sink_is_handed_off_without_waiting(fake_loop):
    delivered = []

    class AsyncSink:
        async def deliver(self, user_id, payload):
            await asyncio.sleep(0)
            delivered.append((user_id, payload["reminder_id"]))

    class FailingAsyncSink:
        async def deliver(self, user_id, payload):
            raise RuntimeError("push failed")

    async def scenario():
        ok = build_service(fake_loop, sink=AsyncSink())
        ok.start_reminder(make_reminder(1, 7, 1))
        bad = build_service(fake_loop, sink=FailingAsyncSink())
        bad.start_reminder(make_reminder(2, 8, 1))

        fake_loop.advance(5)
        # the timer callback returned before delivery ran
        assert delivered == []
        for _ in range(3):
            await asyncio.sleep(0)

        assert delivered == [("7", 1)]
        assert bad.is_scheduled(2)
        assert not bad._deliveries

        fake_loop.advance(55)
        for _ in range(3):
            await asyncio.sleep(0)
        assert delivered == [("7", 1), ("7", 1)]

        await ok.shutdown()
        await bad.shutdown()

    asyncio.run(scenario())


def test_shutdown_stops_sessions_and_drains_deliveries(fake_loop):
    release = []

    class SlowSink:
        async def deliver(self, user_id, payload):
            await asyncio.sleep(10)
            release.append(user_id)

    async def scenario():
        service = build_service(fake_loop, sink=SlowSink())
        service.start_reminder(make_reminder(1, 7, 1))
        service.start_reminder(make_reminder(2, 8, 1))
        fake_loop.advance(5)
        await asyncio.sleep(0)
        assert len(service._deliveries) == 2

        stopped = await service.shutdown(timeout=0.01)

        assert stopped == 2
        assert service.scheduler.list_active() == set()
        for _ in range(3):
            await asyncio.sleep(0)
        assert not service._deliveries

    asyncio.run(scenario())
    assert release == []
