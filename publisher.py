import httpx
import asyncio
import random
import uuid
from datetime import datetime, timedelta, timezone


COLLECTOR_URL = "http://localhost:8080"

PAGES = ["/", "/home", "/pricing", "/docs", "/blog", "/signup", "/contact"]
BROWSERS = ["Chrome 120", "Firefox 121", "Safari 17", "Edge 120"]
DEVICES = ["Desktop", "Mobile", "Tablet"]
EVENT_TYPES = ["page_view", "page_view", "page_view", "button_click", "form_submit"]
LOCATIONS = [(47.6062, -122.3321), (51.5072, -0.1276), (48.8566, 2.3522), None]


async def wait_for_collector():
    async with httpx.AsyncClient() as client:
        for _ in range(30):
            try:
                resp = await client.get(f"{COLLECTOR_URL}/health")
                if resp.status_code == 200:
                    print("Collector is ready!")
                    return
            except Exception:
                pass
            print("Waiting for collector...")
            await asyncio.sleep(1)
        raise RuntimeError("Collector not available after waiting.")


def make_event(users, now):
    user_id, session_id = random.choice(users)
    event = {
        "eventType": random.choice(EVENT_TYPES),
        "timestampUtc": (now - timedelta(minutes=random.randint(0, 3 * 24 * 60))).isoformat(),
        "userId": user_id,
        "sessionId": session_id,
        "url": random.choice(PAGES),
        "referrer": random.choice([None, "https://www.google.com/", "https://news.ycombinator.com/"]),
        "browser": random.choice(BROWSERS),
        "device": random.choice(DEVICES),
        "screenSize": random.choice(["1920x1080", "1440x900", "390x844"]),
    }
    location = random.choice(LOCATIONS)
    if location is not None:
        event["latitude"], event["longitude"] = location
    return event


async def publish_events(total_events=500, user_count=40):
    users = [(f"anon-{uuid.uuid4().hex[:8]}", f"sess-{uuid.uuid4().hex[:8]}") for _ in range(user_count)]
    now = datetime.now(timezone.utc)
    rejected = 0

    async with httpx.AsyncClient() as client:
        for _ in range(total_events):
            resp = await client.post(f"{COLLECTOR_URL}/api/events", json=make_event(users, now))
            if resp.status_code != 200:
                rejected += 1
            await asyncio.sleep(0.001)

    print(f"Sent {total_events} events, {rejected} rejected")


if __name__ == "__main__":
    async def main():
        await wait_for_collector()
        await publish_events()
    asyncio.run(main())
