import aiosqlite
import asyncio
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from .models import QueueMessage

logger = logging.getLogger(__name__)


class MessageQueue:
    """Durable FIFO queue kept in a sqlite table shared by every queue name.

    A received message stays hidden for ``visibility_timeout`` seconds. If it
    is neither deleted nor released in that time it becomes visible again,
    which gives at-least-once delivery.
    """

    def __init__(self, db_path: str, name: str, visibility_timeout: float = 30.0):
        self.db_path = db_path
        self.name = name
        self.visibility_timeout = visibility_timeout
        self.lock = asyncio.Lock()

    async def initialize(self):
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS queue_messages (
                    message_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    queue_name TEXT NOT NULL,
                    body TEXT NOT NULL,
                    enqueued_at TEXT,
                    dequeue_count INTEGER NOT NULL DEFAULT 0,
                    visible_at REAL NOT NULL
                )
                """
            )
            await db.execute(
                "CREATE INDEX IF NOT EXISTS idx_queue_visible ON queue_messages (queue_name, visible_at)"
            )
            await db.commit()
        logger.info(f"Queue '{self.name}' initialized at {self.db_path}")

    async def send(self, body: str) -> int:
        async with self.lock:
            async with aiosqlite.connect(self.db_path) as db:
                cursor = await db.execute(
                    "INSERT INTO queue_messages (queue_name, body, enqueued_at, visible_at) VALUES (?, ?, ?, ?)",
                    (self.name, body, datetime.now(timezone.utc).isoformat(), time.time())
                )
                await db.commit()
                return cursor.lastrowid

    async def receive(self) -> Optional[QueueMessage]:
        async with self.lock:
            async with aiosqlite.connect(self.db_path) as db:
                # take the write lock up front so the select and update cannot interleave
                await db.execute("BEGIN IMMEDIATE")
                now = time.time()
                cursor = await db.execute(
                    """
                    SELECT message_id, body, dequeue_count FROM queue_messages
                    WHERE queue_name = ? AND visible_at <= ?
                    ORDER BY message_id LIMIT 1
                    """,
                    (self.name, now)
                )
                row = await cursor.fetchone()
                if row is None:
                    await db.rollback()
                    return None
                await db.execute(
                    "UPDATE queue_messages SET dequeue_count = dequeue_count + 1, visible_at = ? WHERE message_id = ?",
                    (now + self.visibility_timeout, row[0])
                )
                await db.commit()
                return QueueMessage(message_id=row[0], body=row[1], dequeue_count=row[2] + 1)

    async def delete(self, message_id: int):
        async with self.lock:
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute(
                    "DELETE FROM queue_messages WHERE queue_name = ? AND message_id = ?",
                    (self.name, message_id)
                )
                await db.commit()

    async def release(self, message_id: int, delay: float = 0.0):
        async with self.lock:
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute(
                    "UPDATE queue_messages SET visible_at = ? WHERE queue_name = ? AND message_id = ?",
                    (time.time() + delay, self.name, message_id)
                )
                await db.commit()

    async def count(self) -> int:
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                "SELECT COUNT(*) FROM queue_messages WHERE queue_name = ?",
                (self.name,)
            )
            return (await cursor.fetchone())[0]

    async def peek(self, limit: int = 32) -> List[str]:
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                "SELECT body FROM queue_messages WHERE queue_name = ? ORDER BY message_id LIMIT ?",
                (self.name, limit)
            )
            rows = await cursor.fetchall()
            return [row[0] for row in rows]
