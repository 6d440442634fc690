import asyncio
import logging

from .codec import encode_event
from .models import Event, PublishResult

logger = logging.getLogger(__name__)


class DualSinkPublisher:
    """Fans one validated event out to a primary and a backup queue.

    Both sends are always attempted. A failed sink is reported in the result,
    never raised.
    """

    def __init__(self, primary, backup):
        self.primary = primary
        self.backup = backup

    async def publish(self, event: Event) -> PublishResult:
        body = encode_event(event)
        primary_result, backup_result = await asyncio.gather(
            self.primary.send(body),
            self.backup.send(body),
            return_exceptions=True
        )

        result = PublishResult(
            primary_ok=not isinstance(primary_result, BaseException),
            backup_ok=not isinstance(backup_result, BaseException),
            primary_error=_describe(primary_result),
            backup_error=_describe(backup_result),
        )
        if not result.all_succeeded:
            logger.warning(
                f"Partial publish for {event.event_type} (user {event.user_id}): "
                f"primary={result.primary_error or 'ok'}, backup={result.backup_error or 'ok'}"
            )
        return result


def _describe(outcome):
    if isinstance(outcome, BaseException):
        return f"{type(outcome).__name__}: {outcome}"
    return None
