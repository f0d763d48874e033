"""Refresh-token stores used by the Meetup token provider."""
import logging
import os
from pathlib import Path
from typing import Optional, Union

import boto3
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)


class FileTokenStore:
    """Refresh token kept as a single line in a local text file."""

    def __init__(self, path: Union[str, Path]):
        """
        Initialize the file store.

        Args:
            path: Location of the refresh-token file
        """
        self.path = Path(path)

    def read(self) -> Optional[str]:
        """
        Read the stored refresh token.

        Returns:
            Token string, or None if the file is missing or empty
        """
        if not self.path.exists():
            logger.info(f"Refresh token file not found: {self.path}")
            return None
        token = self.path.read_text(encoding='utf-8').strip()
        return token or None

    def write(self, token: str) -> None:
        """
        Replace the stored refresh token.

        The new value is written to a sibling temp file readable only by the
        owner and moved into place.

        Raises:
            OSError: If the token cannot be written
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + '.tmp')
        try:
            # Owner-only permissions from the moment the file exists
            fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                f.write(token.strip() + '\n')
            os.replace(tmp_path, self.path)
        except OSError as e:
            # Never leave a stray copy of the secret behind
            if tmp_path.exists():
                tmp_path.unlink()
            logger.error(f"Failed to store refresh token in {self.path}: {e}")
            raise
        logger.info(f"Stored rotated refresh token in {self.path}")


class SSMTokenStore:
    """Refresh token kept in an AWS Systems Manager SecureString parameter."""

    def __init__(self, parameter_name: str, client=None):
        """
        Initialize the SSM store.

        Args:
            parameter_name: Name of the SSM parameter holding the token
            client: Optional boto3 SSM client
        """
        self.parameter_name = parameter_name
        self.client = client or boto3.client('ssm')

    def read(self) -> Optional[str]:
        try:
            response = self.client.get_parameter(
                Name=self.parameter_name,
                WithDecryption=True
            )
        except ClientError as e:
            if e.response.get('Error', {}).get('Code') == 'ParameterNotFound':
                logger.info(f"Refresh token parameter not found: {self.parameter_name}")
                return None
            logger.error(f"Error reading SSM parameter {self.parameter_name}: {e}")
            raise
        token = response['Parameter']['Value'].strip()
        return token or None

    def write(self, token: str) -> None:
        try:
            self.client.put_parameter(
                Name=self.parameter_name,
                Value=token.strip(),
                Type='SecureString',
                Overwrite=True
            )
        except ClientError as e:
            logger.error(f"Error writing SSM parameter {self.parameter_name}: {e}")
            raise
        logger.info(f"Stored rotated refresh token in {self.parameter_name}")
