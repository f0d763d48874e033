"""Persistence of the events.json document."""
import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union

from processor.errors import WriteError
from processor.models import EventsDocument
from processor.schema import validate_events_document

logger = logging.getLogger(__name__)

FALLBACK_NOTE = 'No events available - API fetch failed or returned no data'


def utc_timestamp(moment: Optional[datetime] = None) -> str:
    """
    Format an instant as ISO-8601 UTC with millisecond precision.

    Args:
        moment: Instant to format (default: now)

    Returns:
        Timestamp such as 2025-01-15T18:30:00.000Z
    """
    moment = moment or datetime.now(timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.isoformat(timespec='milliseconds').replace('+00:00', 'Z')


class EventsWriter:
    """Writes the events document as a whole-file snapshot."""

    def __init__(self, output_file: Union[str, Path]):
        """
        Initialize the writer.

        Args:
            output_file: Target path of events.json
        """
        self.output_file = Path(output_file)

    def write(self, document: EventsDocument) -> None:
        """
        Validate and write the events document.

        Raises:
            WriteError: If the document is invalid or the file cannot be written
        """
        # Never persist a document the website cannot read
        data = document.to_dict()
        try:
            validate_events_document(data)
        except ValueError as e:
            raise WriteError(f"Refusing to write invalid events document: {e}") from e

        self._write_json(data)
        logger.info(f"Wrote {len(document.events)} events to {self.output_file}")

    def write_fallback(self, reason: str) -> EventsDocument:
        """
        Write an empty events document carrying a diagnostic note.

        Args:
            reason: Name of the failure class, e.g. "FetchError"

        Returns:
            The document that was written

        Raises:
            WriteError: If the file cannot be written
        """
        note = f"{FALLBACK_NOTE} ({reason})" if reason else FALLBACK_NOTE
        document = EventsDocument(events=[], last_updated=utc_timestamp(), note=note)
        self._write_json(document.to_dict())
        logger.warning(f"Wrote fallback events document to {self.output_file}")
        return document

    def _write_json(self, data: Dict[str, Any]) -> None:
        """Serialize to a temp file in the target directory, then replace the target."""
        tmp_name = None
        try:
            # Ensure the output directory exists
            self.output_file.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                'w',
                encoding='utf-8',
                dir=self.output_file.parent,
                prefix=f'.{self.output_file.name}.',
                suffix='.tmp',
                delete=False
            ) as tmp:
                # Write the full document next to the target first
                tmp_name = tmp.name
                json.dump(data, tmp, indent=2, ensure_ascii=False)
                tmp.write('\n')
            # Swap it into place so readers never see a partial file
            os.replace(tmp_name, self.output_file)
        except OSError as e:
            # Remove the partial temp file
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            logger.error(f"Failed to write {self.output_file}: {e}")
            raise WriteError(f"Failed to write {self.output_file}: {e}") from e


def load_events_document(path: Union[str, Path]) -> Dict[str, Any]:
    """
    Read and validate events.json the way the website consumes it.

    Args:
        path: Location of events.json

    Returns:
        The parsed document

    Raises:
        OSError: If the file cannot be read
        ValueError: If the content is not a valid events document
    """
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    validate_events_document(data)
    return data
