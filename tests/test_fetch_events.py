"""Integration tests for the events pipeline."""
import json
import logging
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock, patch

import pytest
import responses

from fetch_events import (
    EventsPipeline,
    lambda_handler,
    main,
    run_from_env,
    setup_logging,
)
from meetup.auth import MeetupTokenProvider
from meetup.client import MeetupEventFetcher
from processor.errors import AuthError, FetchError, MissingCredentialsError, WriteError
from processor.event_processor import EventProcessor
from processor.models import Event, PipelineState, RawEvent, RawEventSet
from processor.schema import validate_events_document
from storage.events_writer import FALLBACK_NOTE, EventsWriter
from storage.token_store import FileTokenStore

TOKEN_URL = "https://secure.meetup.com/oauth2/access"
GRAPHQL_URL = "https://api.meetup.com/gql-ext"
NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def output_file(tmp_path):
    return tmp_path / 'public' / 'data' / 'events.json'


@pytest.fixture
def sample_raw_event_set():
    """Create a raw event set with one upcoming event."""
    return RawEventSet(
        group_id='36720731',
        group_name='Code and Coffee KC',
        events=[
            RawEvent(
                id='305',
                title='Demo Night at Keystone CoLAB',
                description='Show what you built',
                event_url='https://www.meetup.com/code-and-coffee-kc/events/305/',
                date_time='2025-03-05T18:00:00-06:00',
                end_time='2025-03-05T20:00:00-06:00',
                status='ACTIVE'
            )
        ]
    )


def make_pipeline(output_file, token_provider=None, fetcher=None, processor=None):
    if token_provider is None:
        token_provider = Mock()
        token_provider.get_access_token.return_value = 'access-token'
    return EventsPipeline(
        token_provider=token_provider,
        fetcher=fetcher or Mock(),
        processor=processor or EventProcessor(),
        writer=EventsWriter(output_file),
        group_urlname='code-and-coffee-kc',
        clock=lambda: NOW
    )


def read_json(path):
    return json.loads(path.read_text(encoding='utf-8'))


class TestEventsPipeline:
    """Test cases for the pipeline state machine."""

    def test_successful_run(self, output_file, sample_raw_event_set):
        fetcher = Mock()
        fetcher.fetch_events.return_value = sample_raw_event_set
        pipeline = make_pipeline(output_file, fetcher=fetcher)

        result = pipeline.run()

        assert result.status == 'success'
        assert result.events_written == 1
        assert result.raw_events_fetched == 1
        assert result.states == [
            PipelineState.START,
            PipelineState.AUTHENTICATING,
            PipelineState.FETCHING,
            PipelineState.NORMALIZING,
            PipelineState.WRITING,
            PipelineState.DONE
        ]
        fetcher.fetch_events.assert_called_once_with('access-token', 'code-and-coffee-kc')

        data = read_json(output_file)
        assert data['lastUpdated'] == '2025-03-01T12:00:00.000Z'
        assert 'note' not in data
        assert data['events'][0]['venue']['state'] == 'MO'

    def test_auth_failure_writes_fallback(self, output_file):
        token_provider = Mock()
        token_provider.get_access_token.side_effect = AuthError(
            'Token exchange failed: 401 - invalid_grant', status_code=401, body='invalid_grant'
        )
        fetcher = Mock()
        pipeline = make_pipeline(output_file, token_provider=token_provider, fetcher=fetcher)

        result = pipeline.run()

        assert result.status == 'fallback'
        assert result.fell_back
        assert result.error_type == 'AuthError'
        assert result.states == [
            PipelineState.START,
            PipelineState.AUTHENTICATING,
            PipelineState.FALLBACK,
            PipelineState.DONE
        ]
        fetcher.fetch_events.assert_not_called()

        data = read_json(output_file)
        assert data['events'] == []
        assert 'AuthError' in data['note']
        validate_events_document(data)

    def test_empty_access_token_is_an_auth_failure(self, output_file):
        token_provider = Mock()
        token_provider.get_access_token.return_value = ''
        fetcher = Mock()
        pipeline = make_pipeline(output_file, token_provider=token_provider, fetcher=fetcher)

        result = pipeline.run()

        assert result.error_type == 'AuthError'
        fetcher.fetch_events.assert_not_called()

    def test_fetch_failure_writes_fallback(self, output_file):
        fetcher = Mock()
        fetcher.fetch_events.side_effect = FetchError('GraphQL errors: [...]')
        pipeline = make_pipeline(output_file, fetcher=fetcher)

        result = pipeline.run()

        assert result.error_type == 'FetchError'
        assert PipelineState.FETCHING in result.states
        assert PipelineState.NORMALIZING not in result.states
        data = read_json(output_file)
        assert data['events'] == []
        assert 'FetchError' in data['note']

    def test_fallback_replaces_previous_document(self, output_file, sample_raw_event_set):
        fetcher = Mock()
        fetcher.fetch_events.return_value = sample_raw_event_set
        make_pipeline(output_file, fetcher=fetcher).run()

        fetcher.fetch_events.side_effect = FetchError('boom')
        make_pipeline(output_file, fetcher=fetcher).run()

        assert read_json(output_file)['events'] == []

    def test_invalid_document_falls_back(self, output_file, sample_raw_event_set):
        fetcher = Mock()
        fetcher.fetch_events.return_value = sample_raw_event_set
        processor = Mock()
        processor.normalize.return_value = [
            Event(id='1', title='Broken', description='', date_time='soon', duration=0)
        ]
        pipeline = make_pipeline(output_file, fetcher=fetcher, processor=processor)

        result = pipeline.run()

        assert result.error_type == 'WriteError'
        assert PipelineState.WRITING in result.states
        assert read_json(output_file)['events'] == []

    def test_failed_fallback_write_raises(self, tmp_path):
        blocker = tmp_path / 'public'
        blocker.write_text('not a directory')
        token_provider = Mock()
        token_provider.get_access_token.side_effect = AuthError('rejected')
        pipeline = make_pipeline(blocker / 'events.json', token_provider=token_provider)

        with pytest.raises(WriteError):
            pipeline.run()

    @responses.activate
    def test_fallback_note_omits_upstream_auth_body(self, output_file, tmp_path):
        large_body = '<html>' + 'x' * 5000 + ' internal-trace-id=abc</html>'
        responses.add(responses.POST, TOKEN_URL, body=large_body, status=502)
        token_store = FileTokenStore(tmp_path / 'token')
        token_store.write('refresh-1')
        token_provider = MeetupTokenProvider(
            client_id='client-id',
            client_secret='client-secret',
            token_store=token_store
        )
        pipeline = make_pipeline(output_file, token_provider=token_provider)

        result = pipeline.run()

        note = read_json(output_file)['note']
        assert note == f'{FALLBACK_NOTE} (AuthError)'
        assert result.note == note
        assert 'internal-trace-id' not in note
        assert len(note) < 200

    @responses.activate
    def test_fallback_note_omits_upstream_graphql_body(self, output_file):
        large_body = '<html>' + 'y' * 5000 + ' internal-trace-id=abc</html>'
        responses.add(responses.POST, GRAPHQL_URL, body=large_body, status=502)
        pipeline = make_pipeline(output_file, fetcher=MeetupEventFetcher(timeout=5))

        result = pipeline.run()

        note = read_json(output_file)['note']
        assert result.error_type == 'FetchError'
        assert note == f'{FALLBACK_NOTE} (FetchError)'
        assert 'internal-trace-id' not in note


class TestRunFromEnv:
    """End-to-end runs against mocked Meetup endpoints."""

    @responses.activate
    def test_end_to_end_example(self, tmp_path, output_file):
        now = datetime.now(timezone.utc)
        yesterday = (now - timedelta(days=1)).isoformat()
        tomorrow = now + timedelta(days=1)
        store = FileTokenStore(tmp_path / 'refresh-token')
        store.write('stored-refresh')

        responses.add(
            responses.POST,
            TOKEN_URL,
            json={
                'access_token': 'access-token',
                'refresh_token': 'rotated-refresh',
                'expires_in': 3600
            },
            status=200
        )
        responses.add(
            responses.POST,
            GRAPHQL_URL,
            json={'data': {'groupByUrlname': {
                'id': '36720731',
                'name': 'Code and Coffee KC',
                'events': {'edges': [
                    {'node': {
                        'id': '300',
                        'title': 'Last Week at Lenexa Public Market',
                        'description': 'Already happened',
                        'eventUrl': 'https://www.meetup.com/code-and-coffee-kc/events/300/',
                        'dateTime': yesterday,
                        'endTime': None,
                        'status': 'ACTIVE'
                    }},
                    {'node': {
                        'id': '305',
                        'title': 'Demo Night at Keystone CoLAB',
                        'description': None,
                        'eventUrl': 'https://www.meetup.com/code-and-coffee-kc/events/305/',
                        'dateTime': tomorrow.isoformat(),
                        'endTime': (tomorrow + timedelta(minutes=150)).isoformat(),
                        'status': 'ACTIVE'
                    }},
                ]}
            }}},
            status=200
        )
        environ = {
            'MEETUP_CLIENT_ID': 'client-id',
            'MEETUP_CLIENT_SECRET': 'client-secret',
            'MEETUP_REFRESH_TOKEN_FILE': str(tmp_path / 'refresh-token'),
            'EVENTS_OUTPUT_FILE': str(output_file)
        }

        result = run_from_env(environ)

        assert result.status == 'success'
        assert store.read() == 'rotated-refresh'
        data = read_json(output_file)
        validate_events_document(data)
        assert len(data['events']) == 1
        event = data['events'][0]
        assert event['id'] == '305'
        assert event['title'] == 'Demo Night at Keystone CoLAB'
        assert event['description'] == ''
        assert event['duration'] == 150
        assert event['venue']['name'] == 'Keystone CoLAB'
        assert event['venue']['city'] == 'Kansas City'
        assert event['venue']['state'] == 'MO'
        assert event['link'] == 'https://www.meetup.com/code-and-coffee-kc/events/305/'

    @responses.activate
    def test_missing_credentials_write_fallback_without_network(self, tmp_path, output_file):
        environ = {
            'MEETUP_REFRESH_TOKEN_FILE': str(tmp_path / 'absent'),
            'EVENTS_OUTPUT_FILE': str(output_file)
        }

        result = run_from_env(environ)

        assert result.error_type == 'MissingCredentialsError'
        assert len(responses.calls) == 0
        data = read_json(output_file)
        assert data['events'] == []
        assert 'MissingCredentialsError' in data['note']

    @responses.activate
    def test_injected_token_store_is_used(self, tmp_path, output_file):
        store = Mock()
        store.read.return_value = None
        environ = {
            'MEETUP_CLIENT_ID': 'client-id',
            'MEETUP_CLIENT_SECRET': 'client-secret',
            'EVENTS_OUTPUT_FILE': str(output_file)
        }

        result = run_from_env(environ, token_store=store)

        assert result.error_type == 'MissingCredentialsError'
        store.read.assert_called_once()

    def test_invalid_config_writes_fallback(self, output_file):
        environ = {
            'TIMEOUT_SECONDS': 'soon',
            'EVENTS_OUTPUT_FILE': str(output_file)
        }

        result = run_from_env(environ)

        assert result.error_type == 'ConfigError'
        assert read_json(output_file)['events'] == []


class TestEntryPoints:
    """Test cases for the CLI and Lambda entry points."""

    @patch('fetch_events.run_from_env')
    def test_main_exits_zero_on_fallback(self, mock_run):
        mock_run.return_value = Mock(
            fell_back=True, note='No events available', error_type='FetchError'
        )

        assert main() == 0

    @patch('fetch_events.run_from_env')
    def test_main_exits_one_when_nothing_written(self, mock_run):
        mock_run.side_effect = WriteError('read-only file system')

        assert main() == 1

    @patch('fetch_events.run_from_env')
    def test_lambda_handler_reports_fallback(self, mock_run):
        mock_run.return_value = Mock(
            fell_back=True,
            note='No events available (AuthError: rejected)',
            error_type='AuthError',
            raw_events_fetched=0,
            events_written=0,
            states=[PipelineState.START, PipelineState.AUTHENTICATING,
                    PipelineState.FALLBACK, PipelineState.DONE]
        )

        response = lambda_handler({}, Mock())

        assert response['statusCode'] == 200
        body = json.loads(response['body'])
        assert body['message'] == 'Sync completed with fallback'
        assert body['error_type'] == 'AuthError'
        assert body['states'][-2:] == ['FALLBACK', 'DONE']

    @patch('fetch_events.run_from_env')
    def test_lambda_handler_write_failure(self, mock_run):
        mock_run.side_effect = WriteError('read-only file system')

        response = lambda_handler({}, Mock())

        assert response['statusCode'] == 500
        body = json.loads(response['body'])
        assert body['error_type'] == 'WriteError'

    def test_missing_credentials_error_is_auth_error(self):
        assert issubclass(MissingCredentialsError, AuthError)


class TestSetupLogging:
    """Test cases for logging setup."""

    def test_setup_logging_default_level(self):
        setup_logging()
        assert logging.getLogger().level == logging.INFO

    def test_setup_logging_debug_level(self):
        setup_logging('DEBUG')
        assert logging.getLogger().level == logging.DEBUG

    def test_json_formatter_output(self):
        setup_logging('INFO')
        formatter = logging.getLogger().handlers[0].formatter
        record = logging.LogRecord('fetch_events', logging.INFO, __file__, 1, 'hello', None, None)

        data = json.loads(formatter.format(record))

        assert data['message'] == 'hello'
        assert data['level'] == 'INFO'
        assert data['logger'] == 'fetch_events'
