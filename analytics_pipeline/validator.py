from typing import List

from .errors import EventValidationError
from .models import Event

REQUIRED_FIELDS = ("event_type", "user_id", "session_id")


def missing_fields(event: Event) -> List[str]:
    return [name for name in REQUIRED_FIELDS if not getattr(event, name)]


def validate_event(event: Event) -> bool:
    return not missing_fields(event)


def ensure_valid(event: Event) -> Event:
    missing = missing_fields(event)
    if missing:
        raise EventValidationError(missing)
    return event
