import asyncio
import httpx

import publisher


def test_wait_for_collector_polls_without_blocking(monkeypatch):
    statuses = iter([503, 503, 200])
    transport = httpx.MockTransport(lambda request: httpx.Response(next(statuses)))
    real_client = httpx.AsyncClient
    monkeypatch.setattr(publisher.httpx, "AsyncClient", lambda: real_client(transport=transport))

    sleeps = []

    async def fake_sleep(seconds):
        sleeps.append(seconds)

    monkeypatch.setattr(publisher.asyncio, "sleep", fake_sleep)
    asyncio.run(publisher.wait_for_collector())
    assert sleeps == [1, 1]


def test_make_event_is_a_valid_payload():
    users = [("anon-1", "sess-1")]
    event = publisher.make_event(users, publisher.datetime.now(publisher.timezone.utc))
    assert event["userId"] == "anon-1"
    assert event["sessionId"] == "sess-1"
    assert event["eventType"]
