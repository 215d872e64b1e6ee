import asyncio
from datetime import timedelta

import pytest

from src.models.reminder import MAX_RETRIES, SendStatus, SubscriptionStatus
from src.reminders import reminder_scheduler as scheduler_module
from src.reminders.cleanup import CleanupPolicy
from src.reminders.errors import ReminderNotFoundError
from src.reminders.reminder_scheduler import ReminderScheduler


@pytest.mark.asyncio
async def test_tick_sends_due_reminder(store, channel, scheduler, make_reminder, now) -> None:
    remind_time = now - timedelta(minutes=1)
    reminder = await store.insert(make_reminder(remind_time=remind_time))

    result = await scheduler.run_tick(now)

    assert result is not None
    assert result.report.sent == 1
    assert len(channel.calls) == 1
    assert channel.calls[0]["fields"]["time"] == remind_time.astimezone().strftime("%Y-%m-%d %H:%M")
    updated = await store.get(reminder.id)
    assert updated.send_status == SendStatus.SENT
    assert updated.sent_at is not None


@pytest.mark.asyncio
async def test_sent_reminder_is_not_sent_again(store, channel, scheduler, make_reminder, now) -> None:
    await store.insert(make_reminder())

    await scheduler.run_tick(now)
    await scheduler.run_tick(now + timedelta(minutes=1))

    assert len(channel.calls) == 1


@pytest.mark.asyncio
async def test_three_failures_then_no_more_attempts(store, channel, scheduler, make_reminder, now) -> None:
    channel.reject_all = True
    reminder = await store.insert(make_reminder())

    for minute in range(3):
        await scheduler.run_tick(now + timedelta(minutes=minute))

    updated = await store.get(reminder.id)
    assert updated.send_status == SendStatus.FAILED
    assert updated.retry_count == MAX_RETRIES
    assert len(channel.calls) == 3

    await scheduler.run_tick(now + timedelta(minutes=3))
    assert len(channel.calls) == 3


@pytest.mark.asyncio
async def test_retry_count_never_exceeds_cap(store, channel, scheduler, make_reminder, now) -> None:
    channel.reject_all = True
    reminders = [await store.insert(make_reminder(title=f"R{i}", retry_count=i)) for i in range(3)]

    for minute in range(6):
        await scheduler.run_tick(now + timedelta(minutes=minute))

    for reminder in reminders:
        updated = await store.get(reminder.id)
        assert updated.retry_count <= MAX_RETRIES
        assert updated.send_status == SendStatus.FAILED
        assert updated.retry_count == MAX_RETRIES


@pytest.mark.asyncio
async def test_unsubscribed_reminders_are_skipped(store, channel, scheduler, make_reminder, now) -> None:
    await store.insert(make_reminder(subscription_status=SubscriptionStatus.PENDING))
    await store.insert(make_reminder(subscription_status=SubscriptionStatus.CANCELLED))
    await store.insert(make_reminder(remind_time=now + timedelta(hours=1)))

    result = await scheduler.run_tick(now)

    assert result.report.attempted == 0
    assert channel.calls == []


@pytest.mark.asyncio
async def test_tick_runs_cleanup(store, scheduler, make_reminder, now) -> None:
    expired = await store.insert(
        make_reminder(created_at=now - timedelta(hours=30), send_status=SendStatus.FAILED, retry_count=3)
    )

    result = await scheduler.run_tick(now)

    assert result.cleaned_up == 1
    assert await store.get(expired.id) is None


@pytest.mark.asyncio
async def test_tick_swallows_store_errors(dispatcher, now) -> None:
    class BrokenStore:
        async def find_eligible(self, now):
            raise RuntimeError("database offline")

    scheduler = ReminderScheduler(
        store=BrokenStore(),
        dispatcher=dispatcher,
        cleanup=CleanupPolicy(BrokenStore()),
    )

    assert await scheduler.run_tick(now) is None


@pytest.mark.asyncio
async def test_start_stop_status(scheduler) -> None:
    assert scheduler.status().running is False
    assert scheduler.status().next_fire_time is None

    await scheduler.start()
    status = scheduler.status()
    assert status.running is True
    assert status.next_fire_time is not None
    assert status.next_fire_time.second == 0

    first_task = scheduler._timer_task
    await scheduler.start()
    assert scheduler._timer_task is first_task

    await scheduler.stop()
    assert scheduler.status().running is False
    await scheduler.stop()


@pytest.mark.asyncio
async def test_failed_start_resets_state(scheduler, monkeypatch) -> None:
    def broken_boundary(now, interval):
        raise RuntimeError("timer registration failed")

    monkeypatch.setattr(scheduler_module, "next_boundary", broken_boundary)
    with pytest.raises(RuntimeError):
        await scheduler.start()
    assert scheduler.status().running is False
    assert scheduler.status().next_fire_time is None

    monkeypatch.undo()
    await scheduler.start()
    assert scheduler.status().running is True
    await scheduler.stop()


@pytest.mark.asyncio
async def test_timer_fires_ticks(store, dispatcher, channel, make_reminder) -> None:
    await store.insert(make_reminder())
    scheduler = ReminderScheduler(
        store=store,
        dispatcher=dispatcher,
        cleanup=CleanupPolicy(store),
        interval_seconds=0.05,
    )

    await scheduler.start()
    await asyncio.sleep(0.3)
    await scheduler.stop()
    await scheduler.wait_idle()

    assert scheduler.get_stats()["ticks_run"] >= 2
    assert len(channel.calls) == 1


@pytest.mark.asyncio
async def test_send_now(store, channel, scheduler, make_reminder, now) -> None:
    future = await store.insert(make_reminder(remind_time=now + timedelta(days=1)))
    unsubscribed = await store.insert(make_reminder(subscription_status=SubscriptionStatus.PENDING))

    assert await scheduler.send_now(future.id) is True
    assert await scheduler.send_now(unsubscribed.id) is False
    assert len(channel.calls) == 1

    with pytest.raises(ReminderNotFoundError):
        await scheduler.send_now("missing")


def test_interval_must_be_positive(store, dispatcher) -> None:
    with pytest.raises(ValueError):
        ReminderScheduler(store=store, dispatcher=dispatcher, cleanup=CleanupPolicy(store), interval_seconds=0)
