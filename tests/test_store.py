import asyncio
import sqlite3
import pytest
from datetime import datetime, timezone

from analytics_pipeline.errors import PersistenceError
from analytics_pipeline.models import Event
from analytics_pipeline.queues import MessageQueue
from analytics_pipeline.store import EventStore, PartitionedStoreWriter, partition_key_for


def make_event(ts="2025-10-21T14:00:00Z", **overrides):
    fields = {
        "eventType": "page_view",
        "timestampUtc": ts,
        "userId": "u1",
        "sessionId": "s1",
        "url": "/home",
    }
    fields.update(overrides)
    return Event.model_validate(fields)


@pytest.fixture
def store(tmp_path):
    store = EventStore(str(tmp_path / "store.db"))
    asyncio.run(store.initialize())
    return store


def test_partition_key_is_utc_date_of_client_timestamp():
    assert partition_key_for(make_event("2025-10-21T14:00:00Z")) == "20251021"
    assert partition_key_for(make_event("2025-10-21T23:30:00-02:00")) == "20251022"


def test_partition_key_falls_back_to_server_timestamp():
    event = make_event(None, serverTimestamp="2025-03-01T08:00:00Z")
    assert partition_key_for(event) == "20250301"


def test_save_assigns_keys(store):
    writer = PartitionedStoreWriter(store)
    event = make_event()
    asyncio.run(writer.save(event))

    assert event.partition_key == "20251021"
    assert event.row_key
    assert asyncio.run(store.count()) == 1


def test_save_without_row_key_creates_new_rows(store):
    writer = PartitionedStoreWriter(store)
    first, second = make_event(), make_event()

    async def scenario():
        await writer.save(first)
        await writer.save(second)

    asyncio.run(scenario())
    assert first.row_key != second.row_key
    assert asyncio.run(store.count()) == 2


def test_save_with_same_key_overwrites(store):
    writer = PartitionedStoreWriter(store)

    async def scenario():
        await writer.save(make_event(city=None), row_key="row-1")
        await writer.save(make_event(city="Seattle"), row_key="row-1")
        return await store.scan_from("20251021")

    events = asyncio.run(scenario())
    assert len(events) == 1
    assert events[0].row_key == "row-1"
    assert events[0].city == "Seattle"


def test_scan_from_is_inclusive_with_no_upper_bound(store):
    writer = PartitionedStoreWriter(store)

    async def scenario():
        await writer.save(make_event("2025-10-13T12:00:00Z", userId="too-old"))
        await writer.save(make_event("2025-10-14T00:00:00Z", userId="boundary"))
        await writer.save(make_event("2025-10-21T12:00:00Z", userId="today"))
        await writer.save(make_event("2026-01-01T12:00:00Z", userId="future"))
        return await store.scan_from("20251014")

    events = asyncio.run(scenario())
    assert [e.user_id for e in events] == ["boundary", "today", "future"]


def test_scan_from_respects_limit(store):
    writer = PartitionedStoreWriter(store)

    async def scenario():
        for _ in range(5):
            await writer.save(make_event())
        return await store.scan_from("20251021", limit=3)

    assert len(asyncio.run(scenario())) == 3


class BrokenStore:
    async def upsert(self, event):
        raise sqlite3.OperationalError("database is locked")


def test_store_failure_becomes_persistence_error():
    writer = PartitionedStoreWriter(BrokenStore())
    with pytest.raises(PersistenceError):
        asyncio.run(writer.save(make_event()))


@pytest.fixture
def queue_path(tmp_path):
    return str(tmp_path / "queues.db")


def test_queue_send_receive_delete(queue_path):
    queue = MessageQueue(queue_path, "mainqueue")

    async def scenario():
        await queue.initialize()
        await queue.send("first")
        await queue.send("second")
        message = await queue.receive()
        await queue.delete(message.message_id)
        return message, await queue.count()

    message, remaining = asyncio.run(scenario())
    assert message.body == "first"
    assert message.dequeue_count == 1
    assert remaining == 1


def test_received_message_is_hidden_until_released(queue_path):
    queue = MessageQueue(queue_path, "mainqueue", visibility_timeout=30)

    async def scenario():
        await queue.initialize()
        await queue.send("only")
        first = await queue.receive()
        hidden = await queue.receive()
        await queue.release(first.message_id)
        again = await queue.receive()
        return first, hidden, again

    first, hidden, again = asyncio.run(scenario())
    assert hidden is None
    assert again.message_id == first.message_id
    assert again.dequeue_count == 2


def test_queues_are_isolated_by_name(queue_path):
    main = MessageQueue(queue_path, "mainqueue")
    backup = MessageQueue(queue_path, "backupqueue")

    async def scenario():
        await main.initialize()
        await backup.initialize()
        await main.send("a")
        await backup.send("b")
        await backup.send("c")
        return await main.peek(), await backup.peek()

    assert asyncio.run(scenario()) == (["a"], ["b", "c"])
