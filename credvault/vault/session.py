"""
VaultSession — the explicit session context.

Built at unlock, torn down at logout. Every component that needs the vault
key or the cached vault reaches it through one VaultSession instead of
through ambient global storage.
"""
import logging
from typing import Optional

from .keys import SessionKeyManager
from .store import VaultStore
from ..conf import VaultConfig
from ..share import Clipboard, Presenter, ShareTokenIssuer
from ..storage import KeyValueStore

logger = logging.getLogger("credvault.vault")


class VaultSession:
    """One unlocked session: key manager, vault store and share issuer."""

    def __init__(
        self,
        session_store: KeyValueStore,
        durable_store: KeyValueStore,
        config: Optional[VaultConfig] = None,
        clipboard: Optional[Clipboard] = None,
        presenter: Optional[Presenter] = None,
    ):
        self.config = config or VaultConfig()
        self.keys = SessionKeyManager(session_store)
        self.store = VaultStore(
            session_store, durable_store, keys=self.keys,
            cipher_backend=self.config.cipher_backend,
        )
        self.issuer = ShareTokenIssuer(
            self.config, clipboard=clipboard, presenter=presenter,
        )

    def __repr__(self) -> str:
        return f'<VaultSession share_origin={self.config.share_origin!r}>'

    @classmethod
    async def unlock(
        cls,
        key: bytes,
        session_store: KeyValueStore,
        durable_store: KeyValueStore,
        **kwargs,
    ) -> "VaultSession":
        """Establish the vault key for a session.

        Args:
            key: Raw 32-byte vault key produced by the login flow.
            session_store: Session-scoped key-value store.
            durable_store: Durable key-value store.
            **kwargs: Passed to the constructor (config, clipboard, presenter).

        Returns:
            Ready VaultSession.
        """
        session = cls(session_store, durable_store, **kwargs)
        await session.keys.set_key(key)
        logger.info("Vault session unlocked")
        return session

    async def is_unlocked(self) -> bool:
        return await self.keys.get_key() is not None

    async def lock(self) -> None:
        """Drop the cached vault and the key, then notify observers."""
        await self.store.clear_cache()
        await self.keys.clear()
        logger.info("Vault session locked")
        await self.store.notify()
