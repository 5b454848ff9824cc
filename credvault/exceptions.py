"""Credvault exceptions.

A locked vault (no key or no stored vault) is not an error for ``load()``,
which returns ``None``; ``LockedError`` is only raised by helpers that
cannot proceed without a vault.
"""


class VaultError(Exception):
    """Base class for all credvault errors."""


class LockedError(VaultError):
    """No vault key or no vault is available; the user must unlock first."""


class MissingKey(VaultError):
    """An encryption was attempted with no session key available."""


class AuthenticationFailure(VaultError):
    """AEAD tag verification failed (wrong key, wrong nonce or tampering)."""


class DecodeFailure(VaultError):
    """Decrypted bytes, or a share URL, are not a well-formed encoding."""


class DeliveryFailure(VaultError):
    """A share link could not be handed to the user by any delivery path."""
