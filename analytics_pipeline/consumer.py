import asyncio
import logging
from typing import Optional

from .errors import FatalMessageError, PersistenceError
from .models import QueueMessage

logger = logging.getLogger(__name__)

MAX_RETRY_DELAY = 60.0

COMPLETED = "completed"
RETRYING = "retrying"
DEAD_LETTERED = "dead_lettered"


class QueueConsumer:
    """Feeds primary-queue messages to the processor one at a time.

    Fatal messages go straight to the dead-letter sink. Any other failure
    releases the message back to the queue with backoff until it has been
    dequeued ``max_dequeue_count`` times, then dead-letters it too.
    """

    def __init__(
        self,
        queue,
        processor,
        dead_letter,
        max_dequeue_count: int = 5,
        retry_delay: float = 1.0,
        poll_interval: float = 1.0,
    ):
        self.queue = queue
        self.processor = processor
        self.dead_letter = dead_letter
        self.max_dequeue_count = max_dequeue_count
        self.retry_delay = retry_delay
        self.poll_interval = poll_interval

    async def handle(self, message: QueueMessage) -> str:
        try:
            await self.processor.process(message.body)
        except FatalMessageError as e:
            await self._dead_letter(message, f"fatal: {e}")
            return DEAD_LETTERED
        except PersistenceError as e:
            return await self._retry_or_give_up(message, "Persistence failed", e)
        except Exception as e:
            return await self._retry_or_give_up(message, f"Unexpected {type(e).__name__}", e)

        await self.queue.delete(message.message_id)
        return COMPLETED

    async def _retry_or_give_up(self, message: QueueMessage, what: str, error: Exception) -> str:
        if message.dequeue_count >= self.max_dequeue_count:
            logger.error(
                f"Giving up on message {message.message_id} after "
                f"{message.dequeue_count} attempts: {what}: {error}"
            )
            await self._dead_letter(message, f"retries exhausted: {error}")
            return DEAD_LETTERED
        delay = min(self.retry_delay * 2 ** (message.dequeue_count - 1), MAX_RETRY_DELAY)
        logger.warning(
            f"{what} for message {message.message_id} "
            f"(attempt {message.dequeue_count}), redelivering in {delay:.1f}s: {error}"
        )
        await self.queue.release(message.message_id, delay=delay)
        return RETRYING

    async def _dead_letter(self, message: QueueMessage, reason: str):
        # delete before forwarding so a failed delete cannot poison the body twice
        await self.queue.delete(message.message_id)
        try:
            await self.dead_letter.send(message.body)
        except Exception:
            logger.error(f"Dead-letter send failed for message {message.message_id}, requeueing")
            await self.queue.send(message.body)
            raise
        logger.warning(f"DEAD-LETTERED: message {message.message_id} ({reason})")

    async def run_once(self) -> Optional[str]:
        message = await self.queue.receive()
        if message is None:
            return None
        return await self.handle(message)

    async def drain(self) -> int:
        handled = 0
        while await self.run_once() is not None:
            handled += 1
        return handled

    async def run(self):
        logger.info("Consumer worker started")
        while True:
            try:
                if await self.run_once() is None:
                    await asyncio.sleep(self.poll_interval)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # message reappears once its visibility timeout lapses
                logger.error(f"Consumer error: {e}")
                await asyncio.sleep(self.poll_interval)


async def replay_backup(backup, primary, limit: Optional[int] = None) -> int:
    """Move messages from the backup queue onto the primary queue."""
    moved = 0
    while limit is None or moved < limit:
        message = await backup.receive()
        if message is None:
            break
        await primary.send(message.body)
        await backup.delete(message.message_id)
        moved += 1
    logger.info(f"Replayed {moved} message(s) from backup to primary")
    return moved
