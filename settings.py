"""Environment-supplied configuration for the events pipeline."""
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from processor.errors import ConfigError
from storage.token_store import FileTokenStore, SSMTokenStore

DEFAULT_GROUP_URLNAME = 'code-and-coffee-kc'
DEFAULT_OUTPUT_FILE = os.path.join('public', 'data', 'events.json')
DEFAULT_REFRESH_TOKEN_FILE = '.meetup-refresh-token'


@dataclass
class Settings:
    """Pipeline configuration."""
    client_id: Optional[str]
    client_secret: Optional[str]
    refresh_token: Optional[str] = None
    refresh_token_file: str = DEFAULT_REFRESH_TOKEN_FILE
    refresh_token_parameter: Optional[str] = None
    group_urlname: str = DEFAULT_GROUP_URLNAME
    output_file: str = DEFAULT_OUTPUT_FILE
    log_level: str = 'INFO'
    timeout_seconds: int = 30

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'Settings':
        """
        Read configuration from environment variables.

        Raises:
            ConfigError: If a value is present but invalid
        """
        env = os.environ if environ is None else environ

        timeout_raw = env.get('TIMEOUT_SECONDS', '30')
        try:
            timeout_seconds = int(timeout_raw)
        except ValueError:
            raise ConfigError(f"TIMEOUT_SECONDS must be an integer, got {timeout_raw!r}")
        if timeout_seconds <= 0:
            raise ConfigError("TIMEOUT_SECONDS must be positive")

        return cls(
            client_id=env.get('MEETUP_CLIENT_ID') or None,
            client_secret=env.get('MEETUP_CLIENT_SECRET') or None,
            refresh_token=env.get('MEETUP_REFRESH_TOKEN') or None,
            refresh_token_file=env.get('MEETUP_REFRESH_TOKEN_FILE') or DEFAULT_REFRESH_TOKEN_FILE,
            refresh_token_parameter=env.get('MEETUP_REFRESH_TOKEN_PARAMETER') or None,
            group_urlname=env.get('MEETUP_GROUP_URLNAME') or DEFAULT_GROUP_URLNAME,
            output_file=env.get('EVENTS_OUTPUT_FILE') or DEFAULT_OUTPUT_FILE,
            log_level=env.get('LOG_LEVEL') or 'INFO',
            timeout_seconds=timeout_seconds
        )

    def credential_mode(self) -> str:
        """Name of the refresh-token source: 'direct', 'ssm' or 'file'."""
        if self.refresh_token:
            return 'direct'
        if self.refresh_token_parameter:
            return 'ssm'
        return 'file'

    def build_token_store(self):
        """Create the store rotated refresh tokens are written to."""
        if self.refresh_token_parameter:
            return SSMTokenStore(self.refresh_token_parameter)
        return FileTokenStore(self.refresh_token_file)

