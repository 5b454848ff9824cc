"""Vault — session key, vault codec and vault persistence.

Security Note (Threat Model):
    The decrypted vault and the vault key live in session-scoped storage for
    as long as the session is unlocked. Anything able to read that scope can
    read every credential. Only ciphertext reaches durable storage.
"""

from .crypto import encrypt_vault, decrypt_vault, generate_key
from .keys import SessionKeyManager
from .store import VaultStore

__all__ = [
    "encrypt_vault",
    "decrypt_vault",
    "generate_key",
    "SessionKeyManager",
    "VaultStore",
]
