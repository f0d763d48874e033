"""Data models for event processing."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


@dataclass
class RawEvent:
    """Event node as returned by the Meetup GraphQL API."""
    id: Optional[str]
    title: Optional[str]
    description: Optional[str] = None
    event_url: Optional[str] = None
    date_time: Optional[str] = None
    end_time: Optional[str] = None
    status: Optional[str] = None
    duration: Optional[Any] = None
    venue: Optional[Dict[str, Any]] = None

    @classmethod
    def from_node(cls, node: Dict[str, Any]) -> 'RawEvent':
        """Build a RawEvent from a GraphQL edge node."""
        return cls(
            id=node.get('id'),
            title=node.get('title'),
            description=node.get('description'),
            event_url=node.get('eventUrl'),
            date_time=node.get('dateTime'),
            end_time=node.get('endTime'),
            status=node.get('status'),
            duration=node.get('duration'),
            venue=node.get('venue')
        )


@dataclass
class RawEventSet:
    """Result of a single group events query."""
    group_id: Optional[str]
    group_name: Optional[str]
    events: List[RawEvent] = field(default_factory=list)


@dataclass
class Venue:
    """Location of an event, possibly partial."""
    name: str
    address: str = ''
    city: str = ''
    state: str = ''
    postal_code: str = ''
    lat: Optional[float] = None
    lng: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'address': self.address,
            'city': self.city,
            'state': self.state,
            'postalCode': self.postal_code,
            'lat': self.lat,
            'lng': self.lng
        }


@dataclass
class Event:
    """Canonical event persisted to events.json."""
    id: str
    title: str
    description: str
    date_time: str
    duration: int
    venue: Optional[Venue] = None
    link: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize with the persisted key order; link is omitted when absent."""
        data = {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'dateTime': self.date_time,
            'duration': self.duration,
            'venue': self.venue.to_dict() if self.venue else None
        }
        if self.link:
            data['link'] = self.link
        return data


@dataclass
class EventsDocument:
    """The events.json artifact."""
    events: List[Event]
    last_updated: str
    note: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'events': [event.to_dict() for event in self.events],
            'lastUpdated': self.last_updated
        }
        if self.note is not None:
            data['note'] = self.note
        return data


class PipelineState(str, Enum):
    """States of a single pipeline run."""
    START = 'START'
    AUTHENTICATING = 'AUTHENTICATING'
    FETCHING = 'FETCHING'
    NORMALIZING = 'NORMALIZING'
    WRITING = 'WRITING'
    FALLBACK = 'FALLBACK'
    DONE = 'DONE'


@dataclass
class RunResult:
    """Outcome of a pipeline run."""
    status: str
    events_written: int
    states: List[PipelineState]
    output_file: str
    raw_events_fetched: int = 0
    note: Optional[str] = None
    error_type: Optional[str] = None

    @property
    def fell_back(self) -> bool:
        return self.status == 'fallback'
