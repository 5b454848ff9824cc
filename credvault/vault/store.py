"""
VaultStore — session cache and durable persistence for the credential vault.

Provides:
- ``load()`` — session cache → durable ciphertext + session key → None
- ``save(vault)`` — re-encrypt, persist to both scopes, then notify observers
- ``create()`` — persist an empty vault for a freshly unlocked account
- ``add_folder()`` / ``add_credential()`` — load, mutate, save
- ``subscribe()`` / ``unsubscribe()`` — "vault changed" observers

Concurrency Note:
    Saves through one VaultStore are serialized. Two stores sharing the same
    session scope (e.g. two open windows) are not coordinated: the last
    durable write wins and the earlier mutation is lost.

Security Note:
    Never log plaintext or ciphertext values. Only folder names and sizes.
"""
import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Optional, Union

from pydantic import ValidationError

from .crypto import (
    CIPHER_CLS,
    cipher_for,
    decrypt_vault,
    encrypt_vault,
    parse_vault,
    serialize_value,
)
from .keys import SessionKeyManager
from ..conf import DURABLE_VAULT_NAME, SESSION_CACHE_NAME
from ..exceptions import DecodeFailure, LockedError
from ..models import Credential, EncryptedBlob, Vault
from ..storage import KeyValueStore

logger = logging.getLogger("credvault.vault")

Observer = Callable[[], Union[None, Awaitable[None]]]


class VaultStore:
    """Load/save orchestration for one session's vault.

    Lookup order for ``load()``: session cache → durable blob decrypted with
    the session key → None (locked, or no vault yet).
    """

    def __init__(
        self,
        session_store: KeyValueStore,
        durable_store: KeyValueStore,
        keys: Optional[SessionKeyManager] = None,
        cipher_backend: Optional[str] = None,
    ):
        self._session = session_store
        self._durable = durable_store
        self._keys = keys or SessionKeyManager(session_store)
        self._cipher = cipher_for(cipher_backend) if cipher_backend else CIPHER_CLS
        self._observers: list[Observer] = []
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Session cache helpers
    # ------------------------------------------------------------------

    async def _cache_get(self) -> Optional[Vault]:
        cached = await self._session.get(SESSION_CACHE_NAME)
        if not cached:
            return None
        return parse_vault(cached)

    async def _cache_set(self, vault: Vault) -> None:
        await self._session.set(
            SESSION_CACHE_NAME, serialize_value(vault).decode("utf-8"),
        )

    async def clear_cache(self) -> None:
        """Drop the decrypted vault from session scope."""
        await self._session.remove(SESSION_CACHE_NAME)

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def subscribe(self, callback: Observer) -> None:
        """Register a no-argument callback run after every persisted change."""
        if callback not in self._observers:
            self._observers.append(callback)

    def unsubscribe(self, callback: Observer) -> None:
        if callback in self._observers:
            self._observers.remove(callback)

    async def notify(self) -> None:
        """Tell every observer that derived state is stale.

        An observer failure is logged and does not stop the others.
        """
        for callback in list(self._observers):
            try:
                result = callback()
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Vault observer %r failed", callback)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def load(self) -> Optional[Vault]:
        """Return the decrypted vault, or None when locked or absent.

        Raises:
            AuthenticationFailure: If the durable blob does not verify.
            DecodeFailure: If the cache or decrypted blob is malformed.
        """
        vault = await self._cache_get()
        if vault is not None:
            return vault

        key = await self._keys.get_key()
        if key is None:
            logger.debug("Vault load: locked (no key in session)")
            return None

        stored = await self._durable.get(DURABLE_VAULT_NAME)
        if not stored:
            logger.debug("Vault load: no durable vault")
            return None
        try:
            blob = EncryptedBlob.from_storage(stored)
        except ValidationError as err:
            raise DecodeFailure(f"malformed durable vault blob: {err}") from err

        vault = decrypt_vault(blob, key, self._cipher)
        await self._cache_set(vault)
        logger.debug("Vault load: decrypted %d folder(s)", len(vault.folders))
        return vault

    async def save(self, vault: Vault) -> None:
        """Encrypt and persist a vault, then notify observers.

        Raises:
            MissingKey: If the session holds no key. Neither scope is
                modified in that case.
            Exception: Whatever the durable store raises; the session
                cache is restored to its previous value first.
        """
        async with self._lock:
            key = await self._keys.require_key()
            previous = await self._session.get(SESSION_CACHE_NAME)
            await self._cache_set(vault)
            try:
                blob = encrypt_vault(vault, key, self._cipher)
                await self._durable.set(DURABLE_VAULT_NAME, blob.to_storage())
            except Exception:
                # the cache must never hold a vault that was not persisted
                if previous is None:
                    await self.clear_cache()
                else:
                    await self._session.set(SESSION_CACHE_NAME, previous)
                raise
        logger.debug("Vault saved: %d folder(s)", len(vault.folders))
        await self.notify()

    async def create(self) -> Vault:
        """Return the existing vault, or persist and return an empty one.

        Raises:
            MissingKey: If the session holds no key.
        """
        vault = await self.load()
        if vault is None:
            vault = Vault()
            await self.save(vault)
            logger.info("Created empty vault")
        return vault

    async def _require_vault(self) -> Vault:
        vault = await self.load()
        if vault is None:
            raise LockedError("Vault is locked")
        return vault

    async def add_folder(self, name: str) -> Vault:
        """Create (or reset) a folder and persist the vault.

        Raises:
            LockedError: If no vault can be loaded.
            ValueError: If name is empty.
        """
        vault = await self._require_vault()
        vault.add_folder(name)
        await self.save(vault)
        return vault

    async def add_credential(self, folder: str, credential: Credential) -> Vault:
        """Append a credential to a folder and persist the vault.

        Raises:
            LockedError: If no vault can be loaded.
        """
        vault = await self._require_vault()
        vault.add_credential(folder, credential)
        await self.save(vault)
        return vault
