"""Curated venue lookup and title-based venue extraction."""
import logging
import re
from dataclasses import replace
from typing import Optional, Tuple

from processor.models import Venue

logger = logging.getLogger(__name__)

# Meetup's GraphQL API does not expose venue details for this group, so known
# venues are maintained by hand. Declaration order is the substring tie-break.
KNOWN_VENUES: Tuple[Venue, ...] = (
    Venue(
        name='Lenexa Public Market',
        address='8750 Penrose Ln',
        city='Lenexa',
        state='KS',
        postal_code='66219',
        lat=38.9539,
        lng=-94.7336
    ),
    Venue(
        name='Keystone CoLAB',
        address='5015 Main St',
        city='Kansas City',
        state='MO',
        postal_code='64112',
        lat=39.0403,
        lng=-94.5897
    ),
)

# Non-greedy prefix so capture starts at the first " at "; any trailing
# text is left for the substring pass of the resolver.
_TRAILING_AT_PATTERN = re.compile(r'^.*?\s+at\s+(.+?)\s*$', re.IGNORECASE)


def extract_location(title: Optional[str]) -> Optional[str]:
    """
    Extract the location from a title of the form "<something> at <location>".

    Args:
        title: Event title

    Returns:
        Location string, or None when the title has no trailing "at" clause
    """
    if not title:
        return None
    match = _TRAILING_AT_PATTERN.match(title.strip())
    if not match:
        return None
    location = match.group(1).strip()
    return location or None


class VenueResolver:
    """Resolves free-text venue names against the curated venue table."""

    def __init__(self, venues: Tuple[Venue, ...] = KNOWN_VENUES):
        self.venues = tuple(venues)

    def resolve(self, name: Optional[str]) -> Optional[Venue]:
        """
        Look up venue details by name.

        Tries an exact match, then a case-insensitive substring match in
        either direction (first entry in table order wins), and finally
        returns a venue carrying only the given name.

        Args:
            name: Venue name, typically extracted from an event title

        Returns:
            Venue, or None when name is empty
        """
        # Empty input has no venue
        if not name or not name.strip():
            return None
        name = name.strip()

        # Exact match first
        for venue in self.venues:
            if venue.name == name:
                return replace(venue)

        # Then case-insensitive partial match, in table order
        lowered = name.lower()
        for venue in self.venues:
            key = venue.name.lower()
            if lowered in key or key in lowered:
                logger.debug(f"Venue '{name}' matched known venue '{venue.name}'")
                return replace(venue)

        # Unknown venue, keep the name only
        logger.info(f"Venue '{name}' not in venue table, using name only")
        return Venue(name=name)
