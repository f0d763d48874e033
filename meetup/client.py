"""Meetup GraphQL client for group events."""
import json
import logging

import requests

from processor.errors import FetchError
from processor.models import RawEvent, RawEventSet

logger = logging.getLogger(__name__)

EVENTS_QUERY = """
query ($urlname: String!) {
  groupByUrlname(urlname: $urlname) {
    id
    name
    events {
      edges {
        node {
          id
          title
          description
          eventUrl
          dateTime
          endTime
          status
        }
      }
    }
  }
}
"""


class MeetupEventFetcher:
    """Fetches the raw event list for a Meetup group."""

    GRAPHQL_URL = "https://api.meetup.com/gql-ext"

    def __init__(self, timeout: int = 30):
        """
        Initialize the event fetcher.

        Args:
            timeout: HTTP request timeout in seconds (default: 30)
        """
        self.timeout = timeout

    def fetch_events(self, access_token: str, group_urlname: str) -> RawEventSet:
        """
        Query the events of a Meetup group. A single attempt is made.

        Args:
            access_token: Bearer token from the token provider
            group_urlname: URL name of the Meetup group

        Returns:
            RawEventSet in upstream order

        Raises:
            FetchError: On HTTP failure, GraphQL errors, or a malformed response
        """
        logger.info(f"Fetching events for group: {group_urlname}")
        data = self._post_query(access_token, group_urlname)

        # GraphQL reports query errors with a 200 status
        if data.get('errors'):
            raise FetchError(f"GraphQL errors: {json.dumps(data['errors'])}")

        group = (data.get('data') or {}).get('groupByUrlname')
        if not isinstance(group, dict):
            raise FetchError("Invalid response structure from Meetup API: group missing")

        # A group without events has a null connection
        connection = group.get('events')
        if connection is None:
            connection = {}
        edges = connection.get('edges', []) if isinstance(connection, dict) else None
        if not isinstance(edges, list):
            raise FetchError("Invalid response structure from Meetup API: edges is not a list")

        events = [
            RawEvent.from_node(edge['node'])
            for edge in edges
            if isinstance(edge, dict) and isinstance(edge.get('node'), dict)
        ]

        logger.info(f"Successfully fetched {len(events)} events")
        return RawEventSet(
            group_id=group.get('id'),
            group_name=group.get('name'),
            events=events
        )

    def _post_query(self, access_token: str, group_urlname: str) -> dict:
        """
        POST the events query.

        Returns:
            Parsed JSON response body
        """
        try:
            response = requests.post(
                self.GRAPHQL_URL,
                json={'query': EVENTS_QUERY, 'variables': {'urlname': group_urlname}},
                headers={'Authorization': f'Bearer {access_token}'},
                timeout=self.timeout
            )
        except requests.RequestException as e:
            raise FetchError(f"GraphQL request failed: {e}") from e

        if not response.ok:
            raise FetchError(
                f"GraphQL query failed: {response.status_code} - {response.text}",
                status_code=response.status_code,
                body=response.text
            )

        try:
            data = response.json()
        except ValueError as e:
            raise FetchError(
                "GraphQL response was not JSON",
                status_code=response.status_code,
                body=response.text
            ) from e

        if not isinstance(data, dict):
            raise FetchError(
                "GraphQL response was not an object",
                status_code=response.status_code,
                body=response.text
            )
        return data
