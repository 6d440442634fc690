import logging
import uuid
from datetime import datetime, timezone

from .codec import decode_event
from .errors import DecodeError, FatalMessageError
from .validator import missing_fields

logger = logging.getLogger(__name__)

ROW_KEY_NAMESPACE = uuid.UUID("6f1c1a8e-3b0e-4d55-9a57-2f0b8c4d7e11")


def derive_row_key(raw_message: str) -> str:
    """Row key that stays the same for every delivery of the same message body."""
    return str(uuid.uuid5(ROW_KEY_NAMESPACE, raw_message))


class BatchProcessor:
    def __init__(self, enricher, writer):
        self.enricher = enricher
        self.writer = writer

    async def process(self, raw_message: str):
        """Decode, validate, stamp, enrich and persist one dequeued message.

        Raises FatalMessageError for messages that can never succeed and lets
        PersistenceError through so the consumer can redeliver.
        """
        try:
            event = decode_event(raw_message)
        except DecodeError as e:
            logger.warning(f"Undecodable queue message, routing to dead-letter: {e}")
            raise FatalMessageError(str(e)) from e

        missing = missing_fields(event)
        if missing:
            logger.warning(f"Invalid queue message (missing {', '.join(missing)}), routing to dead-letter")
            raise FatalMessageError(f"Invalid event payload in queue message: missing {', '.join(missing)}")

        event.batch_id = str(uuid.uuid4())
        event.processed_timestamp = datetime.now(timezone.utc)

        await self.enricher.enrich(event)
        await self.writer.save(event, row_key=derive_row_key(raw_message))

        logger.info(
            f"PROCESSED: event_type={event.event_type}, user={event.user_id}, "
            f"partition={event.partition_key}, batch={event.batch_id}"
        )
        return event
