import aiosqlite
import asyncio
import logging
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from .codec import decode_event, encode_event
from .errors import PersistenceError
from .models import Event

logger = logging.getLogger(__name__)

PARTITION_FORMAT = "%Y%m%d"


class EventStore:
    """Events keyed by (partition_key, row_key), range-scannable by partition."""

    def __init__(self, db_path: str = "data/analytics.db"):
        self.db_path = db_path
        self.lock = asyncio.Lock()

    async def initialize(self):
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS analytics_events (
                    partition_key TEXT,
                    row_key TEXT,
                    event_type TEXT,
                    user_id TEXT,
                    session_id TEXT,
                    timestamp_utc TEXT,
                    body TEXT,
                    PRIMARY KEY (partition_key, row_key)
                )
                """
            )
            await db.commit()
        logger.info(f"EventStore initialized at {self.db_path}")

    async def upsert(self, event: Event):
        async with self.lock:
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute(
                    """
                    INSERT OR REPLACE INTO analytics_events
                        (partition_key, row_key, event_type, user_id, session_id, timestamp_utc, body)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        event.partition_key,
                        event.row_key,
                        event.event_type,
                        event.user_id,
                        event.session_id,
                        event.timestamp_utc.isoformat() if event.timestamp_utc else None,
                        encode_event(event)
                    )
                )
                await db.commit()

    async def scan_from(self, start_partition: str, limit: Optional[int] = None) -> List[Event]:
        query = "SELECT body FROM analytics_events WHERE partition_key >= ? ORDER BY partition_key, row_key"
        params = [start_partition]
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(query, params)
            rows = await cursor.fetchall()
            return [decode_event(row[0]) for row in rows]

    async def count(self) -> int:
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute("SELECT COUNT(*) FROM analytics_events")
            return (await cursor.fetchone())[0]


def partition_key_for(event: Event) -> str:
    when = event.event_time or datetime.now(timezone.utc)
    return when.astimezone(timezone.utc).strftime(PARTITION_FORMAT)


class PartitionedStoreWriter:
    def __init__(self, store: EventStore):
        self.store = store

    async def save(self, event: Event, row_key: Optional[str] = None):
        """Key the event and upsert it.

        ``row_key`` is used when the caller has a key that must stay stable
        across redelivery; otherwise a fresh one is generated.
        """
        event.partition_key = partition_key_for(event)
        event.row_key = row_key or str(uuid.uuid4())
        try:
            await self.store.upsert(event)
        except (sqlite3.Error, OSError) as e:
            raise PersistenceError(
                f"Failed to save event {event.partition_key}/{event.row_key}: {e}"
            ) from e
