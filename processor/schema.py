"""Structural validation for the events.json document."""
from typing import Any

from dateutil.parser import isoparse

REQUIRED_DOC_KEYS = ('events', 'lastUpdated')
REQUIRED_EVENT_KEYS = ('id', 'title', 'description', 'dateTime', 'duration', 'venue')
VENUE_STRING_KEYS = ('name', 'address', 'city', 'state')


def _is_iso_timestamp(value: Any) -> bool:
    if not isinstance(value, str) or not value:
        return False
    try:
        isoparse(value)
    except (ValueError, OverflowError):
        return False
    return True


def validate_events_document(doc: Any) -> None:
    """
    Validate an events document dict.

    Args:
        doc: Parsed events.json content

    Raises:
        ValueError: If the document does not match the persisted shape
    """
    if not isinstance(doc, dict):
        raise ValueError("Document must be an object")
    for key in REQUIRED_DOC_KEYS:
        if key not in doc:
            raise ValueError(f"Document missing '{key}'")
    if not isinstance(doc['events'], list):
        raise ValueError("Document.events must be a list")
    if not _is_iso_timestamp(doc['lastUpdated']):
        raise ValueError("Document.lastUpdated must be an ISO-8601 timestamp")
    if 'note' in doc and not isinstance(doc['note'], str):
        raise ValueError("Document.note must be a string")

    for index, event in enumerate(doc['events']):
        _validate_event(index, event)


def _validate_event(index: int, event: Any) -> None:
    if not isinstance(event, dict):
        raise ValueError(f"events[{index}] must be an object")
    for key in REQUIRED_EVENT_KEYS:
        if key not in event:
            raise ValueError(f"events[{index}] missing '{key}'")
    for key in ('id', 'title'):
        if not isinstance(event[key], str) or not event[key].strip():
            raise ValueError(f"events[{index}].{key} must be a non-empty string")
    if not isinstance(event['description'], str):
        raise ValueError(f"events[{index}].description must be a string")
    if not _is_iso_timestamp(event['dateTime']):
        raise ValueError(f"events[{index}].dateTime must be an ISO-8601 timestamp")

    duration = event['duration']
    if isinstance(duration, bool) or not isinstance(duration, int) or duration <= 0:
        raise ValueError(f"events[{index}].duration must be a positive integer")

    if 'link' in event and not isinstance(event['link'], str):
        raise ValueError(f"events[{index}].link must be a string")

    venue = event['venue']
    if venue is None:
        return
    if not isinstance(venue, dict):
        raise ValueError(f"events[{index}].venue must be an object or null")
    for key in VENUE_STRING_KEYS:
        if not isinstance(venue.get(key), str):
            raise ValueError(f"events[{index}].venue.{key} must be a string")
    if 'postalCode' in venue and not isinstance(venue['postalCode'], str):
        raise ValueError(f"events[{index}].venue.postalCode must be a string")
    for key in ('lat', 'lng'):
        value = venue.get(key)
        if value is not None and (isinstance(value, bool) or not isinstance(value, (int, float))):
            raise ValueError(f"events[{index}].venue.{key} must be a number or null")
