"""Unit tests for Settings."""
import pytest
from moto import mock_aws

from processor.errors import ConfigError
from settings import DEFAULT_GROUP_URLNAME, DEFAULT_OUTPUT_FILE, Settings
from storage.token_store import FileTokenStore, SSMTokenStore


class TestSettings:
    """Test cases for Settings class."""

    def test_defaults(self):
        settings = Settings.from_env({})

        assert settings.client_id is None
        assert settings.client_secret is None
        assert settings.group_urlname == DEFAULT_GROUP_URLNAME
        assert settings.output_file == DEFAULT_OUTPUT_FILE
        assert settings.timeout_seconds == 30
        assert settings.credential_mode() == 'file'

    def test_reads_environment(self):
        settings = Settings.from_env({
            'MEETUP_CLIENT_ID': 'client-id',
            'MEETUP_CLIENT_SECRET': 'client-secret',
            'MEETUP_GROUP_URLNAME': 'another-group',
            'EVENTS_OUTPUT_FILE': 'dist/events.json',
            'TIMEOUT_SECONDS': '10',
            'LOG_LEVEL': 'DEBUG'
        })

        assert settings.client_id == 'client-id'
        assert settings.client_secret == 'client-secret'
        assert settings.group_urlname == 'another-group'
        assert settings.output_file == 'dist/events.json'
        assert settings.timeout_seconds == 10
        assert settings.log_level == 'DEBUG'

    def test_direct_refresh_token_mode(self):
        settings = Settings.from_env({
            'MEETUP_REFRESH_TOKEN': 'direct',
            'MEETUP_REFRESH_TOKEN_PARAMETER': '/events-sync/token'
        })

        assert settings.credential_mode() == 'direct'

    def test_file_store(self, tmp_path):
        settings = Settings.from_env({'MEETUP_REFRESH_TOKEN_FILE': str(tmp_path / 'token')})

        store = settings.build_token_store()

        assert isinstance(store, FileTokenStore)
        assert store.path == tmp_path / 'token'

    def test_ssm_store(self, monkeypatch):
        monkeypatch.setenv('AWS_DEFAULT_REGION', 'us-east-1')
        settings = Settings.from_env({'MEETUP_REFRESH_TOKEN_PARAMETER': '/events-sync/token'})

        with mock_aws():
            store = settings.build_token_store()

        assert settings.credential_mode() == 'ssm'
        assert isinstance(store, SSMTokenStore)
        assert store.parameter_name == '/events-sync/token'

    @pytest.mark.parametrize('value', ['soon', '0', '-5'])
    def test_invalid_timeout(self, value):
        with pytest.raises(ConfigError, match='TIMEOUT_SECONDS'):
            Settings.from_env({'TIMEOUT_SECONDS': value})
