import json
from typing import Dict, Union

from pydantic import ValidationError

from .errors import DecodeError
from .models import Event


def _build_field_lookup() -> Dict[str, str]:
    lookup = {}
    for name, field in Event.model_fields.items():
        alias = field.alias or name
        lookup[name.lower()] = alias
        lookup[alias.lower()] = alias
    return lookup


# lowercased field name or alias -> canonical alias
_FIELD_LOOKUP = _build_field_lookup()


def decode_event(raw: Union[str, bytes]) -> Event:
    """Decode a JSON object into an Event.

    Field names match case-insensitively, unknown fields are dropped and
    missing fields stay None. Required fields are the validator's business.
    """
    try:
        data = json.loads(raw)
    except (ValueError, TypeError, RecursionError) as e:
        raise DecodeError(f"Malformed JSON: {e}") from e

    if not isinstance(data, dict):
        raise DecodeError(f"Expected a JSON object, got {type(data).__name__}")

    canonical = {}
    for key, value in data.items():
        alias = _FIELD_LOOKUP.get(str(key).lower())
        if alias is not None:
            canonical[alias] = value

    try:
        return Event.model_validate(canonical)
    except ValidationError as e:
        raise DecodeError(f"Invalid field values: {e.error_count()} error(s)") from e


def encode_event(event: Event) -> str:
    return event.model_dump_json(by_alias=True)
