import asyncio

import pytest

from src.models.reminder import SendStatus
from src.reminders.notification_dispatcher import CHANNEL_REJECTED, NotificationDispatcher


@pytest.mark.asyncio
async def test_successful_send_marks_sent(store, channel, dispatcher, make_reminder) -> None:
    reminder = await store.insert(make_reminder())

    assert await dispatcher.send_reminder(reminder) is True

    updated = await store.get(reminder.id)
    assert updated.send_status == SendStatus.SENT
    assert updated.sent_at is not None
    assert updated.retry_count == 1
    assert channel.calls[0]["user_id"] == "user-1"
    assert channel.calls[0]["template_id"] == reminder.message_id


@pytest.mark.asyncio
async def test_rejected_send_records_error(store, channel, dispatcher, make_reminder) -> None:
    channel.reject_all = True
    reminder = await store.insert(make_reminder())

    assert await dispatcher.send_reminder(reminder) is False

    updated = await store.get(reminder.id)
    assert updated.send_status == SendStatus.PENDING
    assert updated.retry_count == 1
    assert updated.last_error == CHANNEL_REJECTED
    assert updated.sent_at is None


@pytest.mark.asyncio
async def test_channel_exception_is_recorded_not_raised(store, channel, dispatcher, make_reminder) -> None:
    reminder = await store.insert(make_reminder(title="Flaky", retry_count=2))
    channel.raise_titles.add("Flaky")

    assert await dispatcher.send_reminder(reminder) is False

    updated = await store.get(reminder.id)
    assert updated.send_status == SendStatus.FAILED
    assert updated.retry_count == 3
    assert "channel timeout" in updated.last_error


@pytest.mark.asyncio
async def test_batch_isolation(store, channel, dispatcher, make_reminder) -> None:
    reminders = [await store.insert(make_reminder(title=f"Item {i}")) for i in range(1, 6)]
    channel.reject_titles.add("Item 2")
    channel.raise_titles.add("Item 4")

    report = await dispatcher.dispatch(reminders)

    assert report.attempted == 5
    assert report.sent == 3
    assert report.failed == 2
    for reminder in reminders:
        updated = await store.get(reminder.id)
        assert updated.retry_count == 1
        if reminder.title in ("Item 2", "Item 4"):
            assert updated.send_status == SendStatus.PENDING
            assert updated.last_error
        else:
            assert updated.send_status == SendStatus.SENT


class _CountingChannel:
    """Tracks how many sends are in flight at once."""

    def __init__(self) -> None:
        self.in_flight = 0
        self.peak = 0
        self.order = []

    async def send(self, user_id, template_id, fields) -> bool:
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        self.order.append(fields["subject"])
        await asyncio.sleep(0.01)
        self.in_flight -= 1
        return True


@pytest.mark.asyncio
async def test_concurrency_is_capped_per_batch(store, make_reminder) -> None:
    channel = _CountingChannel()
    dispatcher = NotificationDispatcher(store=store, channel=channel, concurrency_limit=5)
    reminders = [await store.insert(make_reminder(title=f"R{i:02d}")) for i in range(12)]

    report = await dispatcher.dispatch(reminders)

    assert report.sent == 12
    assert channel.peak == 5
    # Batches run in order: nothing from the second batch starts before the first finishes
    assert set(channel.order[:5]) == {f"R{i:02d}" for i in range(5)}
    assert set(channel.order[5:10]) == {f"R{i:02d}" for i in range(5, 10)}


@pytest.mark.asyncio
async def test_store_failure_does_not_abort_batch(channel, make_reminder) -> None:
    class BrokenStore:
        async def update_fields(self, reminder_id, fields):
            raise RuntimeError("store unavailable")

    dispatcher = NotificationDispatcher(store=BrokenStore(), channel=channel)
    reminders = [make_reminder(title=f"Item {i}") for i in range(3)]

    report = await dispatcher.dispatch(reminders)

    assert report.attempted == 3
    assert report.failed == 3
    assert len(channel.calls) == 3


class _GatedChannel:
    """Holds every send until released, then rejects it."""

    def __init__(self) -> None:
        self.release = asyncio.Event()
        self.calls = 0

    async def send(self, user_id, template_id, fields) -> bool:
        self.calls += 1
        await self.release.wait()
        return False


@pytest.mark.asyncio
async def test_overlapping_failures_on_stale_snapshot_mark_failed(store, make_reminder) -> None:
    channel = _GatedChannel()
    dispatcher = NotificationDispatcher(store=store, channel=channel)
    snapshot = await store.insert(make_reminder(retry_count=1))

    attempts = asyncio.gather(dispatcher.send_reminder(snapshot), dispatcher.send_reminder(snapshot))
    await asyncio.sleep(0)
    channel.release.set()
    assert await attempts == [False, False]

    updated = await store.get(snapshot.id)
    assert updated.retry_count == 3
    assert updated.send_status == SendStatus.FAILED


@pytest.mark.asyncio
async def test_overlapping_dispatch_skips_reminders_in_flight(store, make_reminder) -> None:
    channel = _GatedChannel()
    dispatcher = NotificationDispatcher(store=store, channel=channel)
    reminder = await store.insert(make_reminder())

    first = asyncio.create_task(dispatcher.dispatch([reminder]))
    await asyncio.sleep(0)
    second = await dispatcher.dispatch([reminder])
    channel.release.set()
    first_report = await first

    assert second.attempted == 0
    assert first_report.attempted == 1
    assert channel.calls == 1
    assert (await store.get(reminder.id)).retry_count == 1

    channel.release = asyncio.Event()
    channel.release.set()
    assert (await dispatcher.dispatch([reminder])).attempted == 1


def test_invalid_concurrency_limit(store, channel) -> None:
    with pytest.raises(ValueError):
        NotificationDispatcher(store=store, channel=channel, concurrency_limit=0)
