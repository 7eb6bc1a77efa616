"""Bearer token persistence.

The token is the only durable state the client owns. It lives in a single
file readable by the current user only.
"""

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

_TOKEN_FILE_MODE = 0o600
_TOKEN_DIRECTORY_MODE = 0o700


class TokenStore:
    """File-backed store for the session's bearer token."""

    def __init__(self, path: Path) -> None:
        """Initialize the token store.

        Args:
            path: File that holds the token.
        """
        self._path = path
        self._token: str | None = None
        self._loaded = False

    @property
    def path(self) -> Path:
        """Return the token file location."""
        return self._path

    @property
    def token(self) -> str | None:
        """Return the current token, reading the file on first access."""
        if not self._loaded:
            self.load()
        return self._token

    def load(self) -> str | None:
        """Read the token from disk.

        Returns:
            The stored token, or None if nothing is stored.
        """
        self._loaded = True
        try:
            content = self._path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            self._token = None
            return None
        except OSError:
            logger.exception("Failed to read token file %s", self._path)
            self._token = None
            return None

        self._token = content or None
        return self._token

    def save(self, token: str) -> None:
        """Persist a new token, replacing any previous one.

        Args:
            token: Bearer token returned by the registry.

        Raises:
            ValueError: If the token is blank.
        """
        token = token.strip()
        if not token:
            raise ValueError("Refusing to store an empty token")

        self._path.parent.mkdir(mode=_TOKEN_DIRECTORY_MODE, parents=True, exist_ok=True)
        file_descriptor = os.open(
            self._path,
            os.O_WRONLY | os.O_CREAT | os.O_TRUNC,
            _TOKEN_FILE_MODE,
        )
        with os.fdopen(file_descriptor, "w", encoding="utf-8") as token_file:
            token_file.write(token)

        self._token = token
        self._loaded = True
        logger.debug("Stored bearer token at %s", self._path)

    def clear(self) -> None:
        """Forget the token in memory and on disk. Safe to call repeatedly."""
        self._token = None
        self._loaded = True
        try:
            self._path.unlink()
        except FileNotFoundError:
            return
        logger.info("Cleared stored bearer token")
