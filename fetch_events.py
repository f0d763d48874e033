"""Build-time sync of Meetup events into events.json."""
import json
import logging
import os
import sys
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional

from botocore.exceptions import BotoCoreError

from meetup.auth import MeetupTokenProvider
from meetup.client import MeetupEventFetcher
from processor.errors import AuthError, ConfigError, WriteError
from processor.event_processor import EventProcessor
from processor.models import EventsDocument, PipelineState, RunResult
from settings import DEFAULT_OUTPUT_FILE, Settings
from storage.events_writer import EventsWriter, utc_timestamp

logger = logging.getLogger(__name__)


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # Create new handler with JSON formatter
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    # Set log level
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


class EventsPipeline:
    """
    Runs one authenticate, fetch, normalize and write pass.

    Any failure before the document is written ends in a fallback write of
    an empty document; only a failed fallback write escapes as WriteError.
    The caller must not run two pipelines against the same token store at
    the same time.
    """

    def __init__(
        self,
        token_provider: MeetupTokenProvider,
        fetcher: MeetupEventFetcher,
        processor: EventProcessor,
        writer: EventsWriter,
        group_urlname: str,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.token_provider = token_provider
        self.fetcher = fetcher
        self.processor = processor
        self.writer = writer
        self.group_urlname = group_urlname
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.states = []

    def _enter(self, state: PipelineState) -> None:
        self.states.append(state)
        logger.info(f"Pipeline state: {state.value}")

    def run(self) -> RunResult:
        """
        Execute the pipeline.

        Returns:
            RunResult with status 'success' or 'fallback'

        Raises:
            WriteError: If even the fallback document cannot be written
        """
        self.states = []
        raw_count = 0
        self._enter(PipelineState.START)

        try:
            # Exchange the refresh token for an access token
            self._enter(PipelineState.AUTHENTICATING)
            access_token = self.token_provider.get_access_token()
            if not access_token:
                raise AuthError("Token provider returned an empty access token")

            # Fetch raw events from Meetup
            self._enter(PipelineState.FETCHING)
            raw_event_set = self.fetcher.fetch_events(access_token, self.group_urlname)
            raw_count = len(raw_event_set.events)
            logger.info(f"Fetched {raw_count} raw events from Meetup")

            # Keep upcoming active events in canonical form
            self._enter(PipelineState.NORMALIZING)
            now = self.clock()
            events = self.processor.normalize(raw_event_set, now)

            # Replace events.json with the fresh snapshot
            self._enter(PipelineState.WRITING)
            document = EventsDocument(events=events, last_updated=utc_timestamp(now))
            self.writer.write(document)
        except Exception as e:
            # Any failure ends in an empty fallback document
            return self._fall_back(e, raw_count)

        self._enter(PipelineState.DONE)
        return RunResult(
            status='success',
            events_written=len(events),
            states=list(self.states),
            output_file=str(self.writer.output_file),
            raw_events_fetched=raw_count
        )

    def _fall_back(self, error: Exception, raw_count: int) -> RunResult:
        logger.error(
            f"Pipeline failed, writing fallback document: {error}",
            extra={'error_type': type(error).__name__},
            exc_info=True
        )
        self._enter(PipelineState.FALLBACK)
        # Only the error class goes into the public note; details stay in the log
        document = self.writer.write_fallback(type(error).__name__)
        self._enter(PipelineState.DONE)
        return RunResult(
            status='fallback',
            events_written=0,
            states=list(self.states),
            output_file=str(self.writer.output_file),
            raw_events_fetched=raw_count,
            note=document.note,
            error_type=type(error).__name__
        )


def build_pipeline(settings: Settings, token_store=None) -> EventsPipeline:
    """
    Wire the pipeline components from settings.

    Args:
        settings: Pipeline configuration
        token_store: Refresh-token store; built from settings when omitted
    """
    if token_store is None:
        token_store = settings.build_token_store()

    token_provider = MeetupTokenProvider(
        client_id=settings.client_id,
        client_secret=settings.client_secret,
        token_store=token_store,
        refresh_token=settings.refresh_token,
        timeout=settings.timeout_seconds
    )
    return EventsPipeline(
        token_provider=token_provider,
        fetcher=MeetupEventFetcher(timeout=settings.timeout_seconds),
        processor=EventProcessor(),
        writer=EventsWriter(settings.output_file),
        group_urlname=settings.group_urlname
    )


def run_from_env(
    environ: Optional[Mapping[str, str]] = None,
    token_store=None
) -> RunResult:
    """
    Load settings from the environment and run the pipeline.

    Configuration errors are handled like any other upstream failure: a
    fallback document is written.
    """
    env = os.environ if environ is None else environ

    # Settings and token store errors still produce a fallback document
    try:
        settings = Settings.from_env(env)
        pipeline = build_pipeline(settings, token_store=token_store)
    except (ConfigError, BotoCoreError) as e:
        output_file = env.get('EVENTS_OUTPUT_FILE') or DEFAULT_OUTPUT_FILE
        logger.error(
            f"Invalid configuration, writing fallback document: {e}",
            extra={'error_type': type(e).__name__}
        )
        document = EventsWriter(output_file).write_fallback(type(e).__name__)
        return RunResult(
            status='fallback',
            events_written=0,
            states=[PipelineState.START, PipelineState.FALLBACK, PipelineState.DONE],
            output_file=output_file,
            note=document.note,
            error_type=type(e).__name__
        )

    logger.info(
        "Events sync started",
        extra={
            'group_urlname': settings.group_urlname,
            'output_file': settings.output_file,
            'credential_mode': settings.credential_mode()
        }
    )
    return pipeline.run()


def main() -> int:
    """
    Command-line entry point.

    Returns:
        0 when a document was written (fresh or fallback), 1 when nothing could be written
    """
    setup_logging(os.environ.get('LOG_LEVEL', 'INFO'))
    start_time = time.time()

    try:
        result = run_from_env()
    except WriteError as e:
        logger.error(f"Events sync failed, no document written: {e}", exc_info=True)
        return 1

    duration = round(time.time() - start_time, 2)
    if result.fell_back:
        logger.warning(
            f"Events sync completed with fallback document: {result.note}",
            extra={'duration_seconds': duration, 'error_type': result.error_type}
        )
    else:
        logger.info(
            f"Events sync completed successfully: {result.events_written} events written",
            extra={'duration_seconds': duration}
        )
    return 0


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    AWS Lambda entry point for scheduled syncs.

    Args:
        event: EventBridge event payload
        context: Lambda context object

    Returns:
        Response dict with statusCode and run summary
    """
    setup_logging(os.environ.get('LOG_LEVEL', 'INFO'))
    start_time = time.time()

    try:
        result = run_from_env()
    except WriteError as e:
        logger.error(f"Events sync failed: {e}", exc_info=True)
        return {
            'statusCode': 500,
            'body': json.dumps({
                'message': 'Failed to write events document',
                'error': str(e),
                'error_type': type(e).__name__,
                'duration_seconds': round(time.time() - start_time, 2)
            })
        }

    body = {
        'message': 'Sync completed with fallback' if result.fell_back else 'Sync completed successfully',
        'statistics': {
            'raw_events_fetched': result.raw_events_fetched,
            'events_written': result.events_written,
            'duration_seconds': round(time.time() - start_time, 2)
        },
        'states': [state.value for state in result.states]
    }
    if result.fell_back:
        body['note'] = result.note
        body['error_type'] = result.error_type

    return {'statusCode': 200, 'body': json.dumps(body)}


if __name__ == '__main__':
    sys.exit(main())
