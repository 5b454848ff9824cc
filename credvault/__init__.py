"""Credvault.

Local credential vault: folders of login entries encrypted at rest,
decrypted only into session scope, and shareable one entry at a time
through self-contained capability URLs.
"""
from .version import __version__
from .conf import VaultConfig
from .exceptions import (
    VaultError,
    LockedError,
    MissingKey,
    AuthenticationFailure,
    DecodeFailure,
    DeliveryFailure,
)
from .models import Credential, Vault, EncryptedBlob, SharePayload, ShareToken
from .storage import KeyValueStore, MemoryStore
from .vault import SessionKeyManager, VaultStore
from .vault.session import VaultSession
from .share import ShareTokenIssuer, open_share_url, parse_share_url

__all__ = [
    "__version__",
    "VaultConfig",
    "VaultError",
    "LockedError",
    "MissingKey",
    "AuthenticationFailure",
    "DecodeFailure",
    "DeliveryFailure",
    "Credential",
    "Vault",
    "EncryptedBlob",
    "SharePayload",
    "ShareToken",
    "KeyValueStore",
    "MemoryStore",
    "SessionKeyManager",
    "VaultStore",
    "VaultSession",
    "ShareTokenIssuer",
    "open_share_url",
    "parse_share_url",
]
