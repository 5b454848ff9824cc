"""
Vault Crypto Core — Key generation, vault encryption/decryption, and serialization.

Two kinds of key pass through this module:
- Vault key: handed in by the unlock flow, protects the whole vault.
- Share key: generated per share link, travels inside the link itself.

Security Note:
    Never log plaintext, ciphertext or key values.
    Nonces are random 96-bit, drawn fresh for every encryption; collision
    probability is negligible under normal usage.
"""
import os
import base64
import binascii
import secrets
import logging
from typing import Any, Optional

import orjson
from pydantic import ValidationError
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM, ChaCha20Poly1305

from ..conf import get_cipher_backend
from ..exceptions import AuthenticationFailure, DecodeFailure
from ..models import NONCE_SIZE, KEY_LENGTH, EncryptedBlob, Vault

logger = logging.getLogger("credvault.vault")

TAG_SIZE = 16


def cipher_for(backend: str) -> type:
    """Return the AEAD cipher class for a backend name (aesgcm, chacha20)."""
    if backend.lower() == "chacha20":
        return ChaCha20Poly1305
    return AESGCM


def _get_cipher_cls() -> type:
    """Return the vault AEAD cipher class based on CREDVAULT_CIPHER_BACKEND."""
    return cipher_for(get_cipher_backend())


# Resolve cipher once at module load to prevent encrypt/decrypt mismatch
# if the env var changes mid-process.
CIPHER_CLS = _get_cipher_cls()


# ---------------------------------------------------------------------------
# Random material
# ---------------------------------------------------------------------------

def generate_key() -> bytes:
    """Return a fresh random 256-bit key."""
    return secrets.token_bytes(KEY_LENGTH)


def generate_nonce() -> bytes:
    """Return a fresh random 96-bit nonce."""
    return os.urandom(NONCE_SIZE)


# ---------------------------------------------------------------------------
# AEAD primitives
# ---------------------------------------------------------------------------

def aead_encrypt(
    plaintext: bytes, key: bytes, cipher_cls: Optional[type] = None
) -> tuple[bytes, bytes]:
    """Encrypt plaintext under a fresh nonce.

    Args:
        plaintext: Data to encrypt.
        key: Raw 32-byte key.
        cipher_cls: AEAD class, defaults to the configured vault cipher.

    Returns:
        Tuple of (ciphertext including tag, nonce).
    """
    cipher = (cipher_cls or CIPHER_CLS)(key)
    nonce = generate_nonce()
    return cipher.encrypt(nonce, plaintext, None), nonce


def aead_decrypt(
    ciphertext: bytes, nonce: bytes, key: bytes, cipher_cls: Optional[type] = None
) -> bytes:
    """Decrypt and verify ciphertext.

    Raises:
        AuthenticationFailure: If the tag does not verify, or the key,
            nonce or ciphertext are malformed.
    """
    if len(ciphertext) < TAG_SIZE:
        raise AuthenticationFailure(
            f"ciphertext too short: {len(ciphertext)} bytes "
            f"(minimum {TAG_SIZE})"
        )
    try:
        cipher = (cipher_cls or CIPHER_CLS)(key)
        return cipher.decrypt(nonce, ciphertext, None)
    except InvalidTag as err:
        raise AuthenticationFailure(
            "integrity check failed: wrong key or tampered data"
        ) from err
    except ValueError as err:
        # bad key or nonce length
        raise AuthenticationFailure(str(err)) from err


# ---------------------------------------------------------------------------
# Value serialization
# ---------------------------------------------------------------------------

def serialize_value(value: Any) -> bytes:
    """Serialize a value (or pydantic model, by wire alias) with orjson."""
    if hasattr(value, "to_wire"):
        value = value.to_wire()
    return orjson.dumps(value)


def deserialize_value(data: bytes | str) -> Any:
    """Parse orjson/JSON bytes.

    Raises:
        DecodeFailure: If data is not valid JSON.
    """
    try:
        return orjson.loads(data)
    except orjson.JSONDecodeError as err:
        raise DecodeFailure(f"not a valid JSON document: {err}") from err


def parse_vault(data: bytes | str) -> Vault:
    """Decode a serialized vault, normalizing a missing folders mapping.

    Raises:
        DecodeFailure: If data is not JSON or not shaped like a vault.
    """
    parsed = deserialize_value(data)
    if not isinstance(parsed, dict):
        raise DecodeFailure(
            f"vault must be a JSON object, got {type(parsed).__name__}"
        )
    try:
        return Vault.model_validate(parsed)
    except ValidationError as err:
        raise DecodeFailure(f"malformed vault: {err}") from err


def b64encode(data: bytes) -> str:
    """Standard base64, as produced by ``btoa`` on the browser side."""
    return base64.b64encode(data).decode("ascii")


def b64decode(data: str) -> bytes:
    """Decode standard or URL-safe base64, with or without padding.

    Raises:
        DecodeFailure: If data is not base64.
    """
    # a raw "+" in a query string arrives as a space
    normalized = data.replace(" ", "+").strip("\r\n\t")
    normalized = normalized.replace("-", "+").replace("_", "/")
    normalized += "=" * (-len(normalized) % 4)
    try:
        return base64.b64decode(normalized, validate=True)
    except (binascii.Error, ValueError) as err:
        raise DecodeFailure(f"invalid base64: {err}") from err


# ---------------------------------------------------------------------------
# Vault codec
# ---------------------------------------------------------------------------

def encrypt_vault(
    vault: Vault, key: bytes, cipher_cls: Optional[type] = None
) -> EncryptedBlob:
    """Encrypt a vault for durable storage.

    Args:
        vault: Plaintext vault.
        key: Raw 32-byte vault key.
        cipher_cls: AEAD class, defaults to the configured vault cipher.

    Returns:
        EncryptedBlob holding ciphertext (tag included) and its fresh nonce.
    """
    ct, nonce = aead_encrypt(serialize_value(vault), key, cipher_cls)
    return EncryptedBlob(cipher=ct, iv=nonce)


def decrypt_vault(
    blob: EncryptedBlob, key: bytes, cipher_cls: Optional[type] = None
) -> Vault:
    """Decrypt a durable vault blob.

    Raises:
        AuthenticationFailure: If the tag does not verify.
        DecodeFailure: If the plaintext is not a well-formed vault.
    """
    plaintext = aead_decrypt(blob.cipher, blob.iv, key, cipher_cls)
    return parse_vault(plaintext)
