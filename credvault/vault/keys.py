"""
SessionKeyManager — holds the vault key in session-scoped storage.

The key is stored as raw bytes (a list of ints, as the browser side writes
it). It is never derived, re-derived or persisted to durable storage here;
the unlock flow hands it in, logout removes it.
"""
import logging
from typing import Optional

from ..conf import SESSION_KEY_NAME
from ..exceptions import MissingKey
from ..models import KEY_LENGTH
from ..storage import KeyValueStore

logger = logging.getLogger("credvault.vault")


class SessionKeyManager:
    """Access to the session's vault key."""

    def __init__(self, session_store: KeyValueStore):
        self._session = session_store

    async def get_key(self) -> Optional[bytes]:
        """Return the vault key, or None when the session is locked.

        Raises:
            MissingKey: If the stored key is not 32 bytes.
        """
        raw = await self._session.get(SESSION_KEY_NAME)
        if not raw:
            return None
        if len(raw) != KEY_LENGTH:
            raise MissingKey(
                f"Session key is malformed: expected {KEY_LENGTH} bytes, "
                f"got {len(raw)}"
            )
        return bytes(raw)

    async def require_key(self) -> bytes:
        """Return the vault key.

        Raises:
            MissingKey: If no key has been established for this session.
        """
        key = await self.get_key()
        if key is None:
            raise MissingKey("No key in session")
        return key

    async def set_key(self, key: bytes) -> None:
        """Store the vault key for this session.

        Raises:
            ValueError: If key is not exactly 32 bytes.
        """
        if len(key) != KEY_LENGTH:
            raise ValueError(
                f"vault key must be {KEY_LENGTH} bytes, got {len(key)}"
            )
        await self._session.set(SESSION_KEY_NAME, list(key))
        logger.debug("Vault key established for session")

    async def clear(self) -> None:
        await self._session.remove(SESSION_KEY_NAME)
        logger.debug("Vault key removed from session")
