"""Event processor for filtering and normalizing Meetup events."""
import logging
from datetime import datetime, timezone
from typing import Any, List, Optional

from dateutil.parser import isoparse

from processor.models import Event, RawEvent, RawEventSet, Venue
from processor.venues import VenueResolver, extract_location

logger = logging.getLogger(__name__)


class EventProcessor:
    """Processor for filtering and normalizing raw Meetup events."""

    DEFAULT_DURATION_MINUTES = 120
    ACTIVE_STATUSES = frozenset({'ACTIVE'})

    def __init__(self, venue_resolver: Optional[VenueResolver] = None):
        """
        Initialize the event processor.

        Args:
            venue_resolver: Resolver for venue names found in titles
        """
        self.venue_resolver = venue_resolver or VenueResolver()

    def normalize(self, raw_event_set: RawEventSet, now: datetime) -> List[Event]:
        """
        Keep future, active events and map them to canonical Events.

        Order follows the upstream response. Records that cannot be
        normalized are skipped with a warning.

        Args:
            raw_event_set: Result of the events query
            now: Timezone-aware reference instant

        Returns:
            List of canonical Event objects
        """
        if now.tzinfo is None:
            raise ValueError("now must be timezone-aware")

        events = []
        for raw_event in raw_event_set.events:
            try:
                event = self._process_single_event(raw_event, now)
            except (AttributeError, TypeError, ValueError) as e:
                logger.warning(f"Failed to process event '{raw_event.id}': {e}")
                continue
            if event:
                events.append(event)

        logger.info(
            f"Kept {len(events)} upcoming events out of "
            f"{len(raw_event_set.events)} total events"
        )
        return events

    def _process_single_event(self, raw_event: RawEvent, now: datetime) -> Optional[Event]:
        """
        Process a single raw event.

        Returns:
            Event, or None if the event is filtered out or invalid
        """
        # Validate required fields
        if not self._validate_required_fields(raw_event):
            return None

        # Parse start time
        start = self._parse_timestamp(raw_event.date_time)
        if start is None:
            logger.warning(
                f"Invalid dateTime for event '{raw_event.id}': {raw_event.date_time}"
            )
            return None

        # Filter out past events
        if start <= now:
            logger.debug(f"Skipping past event '{raw_event.id}'")
            return None

        # Filter out cancelled, draft and other inactive events
        if not self.is_active(raw_event.status):
            logger.debug(
                f"Skipping event '{raw_event.id}' with status {raw_event.status!r}"
            )
            return None

        # Map to the canonical event
        return Event(
            id=str(raw_event.id),
            title=raw_event.title.strip(),
            description=raw_event.description or '',
            date_time=raw_event.date_time,
            duration=self._calculate_duration(raw_event, start),
            venue=self._resolve_venue(raw_event),
            link=raw_event.event_url or None
        )

    def _validate_required_fields(self, raw_event: RawEvent) -> bool:
        if not raw_event.id or not str(raw_event.id).strip():
            logger.warning("Event missing required field: id")
            return False

        if not raw_event.title or not raw_event.title.strip():
            logger.warning(f"Event '{raw_event.id}' missing required field: title")
            return False

        if not raw_event.date_time:
            logger.warning(f"Event '{raw_event.id}' missing required field: dateTime")
            return False

        return True

    def is_active(self, status: Optional[str]) -> bool:
        """Return True when the upstream status marks the event active."""
        return bool(status) and status.upper() in self.ACTIVE_STATUSES

    @staticmethod
    def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
        """
        Parse an ISO-8601 timestamp, treating naive values as UTC.

        Returns:
            Aware datetime, or None if value is missing or unparseable
        """
        if not value:
            return None
        try:
            parsed = isoparse(value)
        except (ValueError, OverflowError):
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed

    def _calculate_duration(self, raw_event: RawEvent, start: datetime) -> int:
        """
        Duration in minutes from start/end, then upstream duration, then default.
        """
        # Prefer the difference between start and end
        end = self._parse_timestamp(raw_event.end_time)
        if end is not None:
            minutes = round((end - start).total_seconds() / 60)
            if minutes > 0:
                return minutes
            logger.warning(
                f"Event '{raw_event.id}' ends before it starts, ignoring endTime"
            )

        # Then an upstream duration in minutes
        minutes = self._coerce_minutes(raw_event.duration)
        if minutes:
            return minutes

        return self.DEFAULT_DURATION_MINUTES

    @staticmethod
    def _coerce_minutes(value: Any) -> Optional[int]:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        minutes = round(value)
        return minutes if minutes > 0 else None

    def _resolve_venue(self, raw_event: RawEvent) -> Optional[Venue]:
        """
        Use a structured upstream venue when present, else parse the title.
        """
        # Structured venue from the API
        upstream = raw_event.venue
        if isinstance(upstream, dict) and upstream.get('name'):
            return Venue(
                name=upstream.get('name') or '',
                address=upstream.get('address') or '',
                city=upstream.get('city') or '',
                state=upstream.get('state') or '',
                postal_code=upstream.get('postalCode') or ''
            )

        # Otherwise parse "... at <venue>" from the title
        location = extract_location(raw_event.title)
        if location is None:
            return None
        return self.venue_resolver.resolve(location)
