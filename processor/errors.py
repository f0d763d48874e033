"""Exception hierarchy for the events pipeline."""
from typing import Optional


class PipelineError(Exception):
    """Base class for all pipeline failures."""


class ConfigError(PipelineError):
    """Required configuration is absent or invalid."""


class _HttpFailure(PipelineError):
    """Failure that may carry the upstream HTTP status and body."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None
    ):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class AuthError(_HttpFailure):
    """Token exchange failed or was rejected."""


class MissingCredentialsError(ConfigError, AuthError):
    """Client credentials or a refresh token could not be found."""

    def __init__(self, message: str):
        AuthError.__init__(self, message)


class FetchError(_HttpFailure):
    """Event query failed, returned errors, or was malformed."""


class WriteError(PipelineError):
    """The events document could not be persisted."""
