"""OAuth refresh-token exchange for the Meetup API."""
import logging
from typing import Optional

import requests
from botocore.exceptions import BotoCoreError, ClientError

from processor.errors import AuthError, MissingCredentialsError

logger = logging.getLogger(__name__)


class MeetupTokenProvider:
    """Exchanges a refresh token for a short-lived Meetup access token."""

    TOKEN_URL = "https://secure.meetup.com/oauth2/access"

    def __init__(
        self,
        client_id: Optional[str],
        client_secret: Optional[str],
        token_store,
        refresh_token: Optional[str] = None,
        timeout: int = 30
    ):
        """
        Initialize the token provider.

        Args:
            client_id: OAuth client identifier
            client_secret: OAuth client secret
            token_store: Store with read() and write(token); receives rotated tokens
            refresh_token: Refresh token supplied by the caller; when absent
                the token is read from token_store
            timeout: HTTP request timeout in seconds (default: 30)
        """
        self.client_id = client_id
        self.client_secret = client_secret
        self.token_store = token_store
        self.refresh_token = refresh_token
        self.timeout = timeout

    def get_access_token(self) -> str:
        """
        Exchange the current refresh token for an access token.

        A rotated refresh token in the response is persisted to the token
        store before the access token is returned.

        Returns:
            Access token string

        Raises:
            MissingCredentialsError: If client credentials or a refresh token are missing
            AuthError: If the exchange fails or the rotated token cannot be stored
        """
        if not self.client_id or not self.client_secret:
            raise MissingCredentialsError(
                "MEETUP_CLIENT_ID and MEETUP_CLIENT_SECRET are required"
            )

        # Caller-supplied token first, then the configured store
        refresh_token = self._current_refresh_token()
        if not refresh_token:
            raise MissingCredentialsError(
                "No refresh token supplied and none found in the token store"
            )

        payload = self._exchange(refresh_token)

        access_token = payload.get('access_token')
        if not access_token:
            raise AuthError("Token response did not include an access_token")

        # Persist a rotated refresh token before handing out the access token
        rotated = payload.get('refresh_token')
        if rotated and rotated != refresh_token:
            self._store_rotated_token(rotated)

        logger.info(
            "Obtained Meetup access token",
            extra={'expires_in': payload.get('expires_in')}
        )
        return access_token

    def _current_refresh_token(self) -> Optional[str]:
        if self.refresh_token and self.refresh_token.strip():
            return self.refresh_token.strip()
        try:
            return self.token_store.read()
        except (OSError, BotoCoreError, ClientError) as e:
            raise AuthError(f"Could not read refresh token from store: {e}") from e

    def _exchange(self, refresh_token: str) -> dict:
        """
        POST the refresh-token grant to the token endpoint.

        Returns:
            Parsed JSON response body
        """
        data = {
            'client_id': self.client_id,
            'client_secret': self.client_secret,
            'grant_type': 'refresh_token',
            'refresh_token': refresh_token
        }

        logger.info("Exchanging refresh token for access token")
        try:
            response = requests.post(
                self.TOKEN_URL,
                data=data,
                headers={'Content-Type': 'application/x-www-form-urlencoded'},
                timeout=self.timeout
            )
        except requests.RequestException as e:
            raise AuthError(f"Token exchange request failed: {e}") from e

        if not response.ok:
            logger.error(f"Token exchange failed with status {response.status_code}")
            raise AuthError(
                f"Token exchange failed: {response.status_code} - {response.text}",
                status_code=response.status_code,
                body=response.text
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise AuthError(
                "Token exchange returned a non-JSON body",
                status_code=response.status_code,
                body=response.text
            ) from e

        if not isinstance(payload, dict):
            raise AuthError(
                "Token exchange returned an unexpected body",
                status_code=response.status_code,
                body=response.text
            )
        return payload

    def _store_rotated_token(self, token: str) -> None:
        try:
            self.token_store.write(token)
        except (OSError, BotoCoreError, ClientError) as e:
            raise AuthError(f"Could not persist rotated refresh token: {e}") from e
        self.refresh_token = token
        logger.info("Refresh token rotated")
