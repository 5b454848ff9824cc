"""
Share links — one credential packed into a self-decrypting capability URL.

Every link gets its own random key and nonce, independent of the vault key,
and carries both in its query string:

    <origin>/share.html?token=<16 hex>&data=<b64 ct>&iv=<b64 iv>&key=<b64 key>

Anyone holding the URL can read the credential. ``token`` is only a label
for recognizing an issuance; nothing here records issued tokens, so
"one-time" is not enforced, and ``expires`` is advisory payload data that a
redeemer may check with ``SharePayload.is_expired``.

Security Note:
    Never log the URL, the key or the payload. Token ids may be logged.
"""
import inspect
import logging
import secrets
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, Optional, Protocol, Union
from urllib.parse import parse_qs, urlsplit

from pydantic import ValidationError
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .conf import VaultConfig
from .exceptions import DecodeFailure, DeliveryFailure
from .models import TOKEN_ID_BYTES, Credential, SharePayload, ShareToken, now_ms
from .vault.crypto import (
    aead_decrypt,
    aead_encrypt,
    b64decode,
    deserialize_value,
    generate_key,
    serialize_value,
)

logger = logging.getLogger("credvault.share")

# Share links are always AES-256-GCM, whatever the vault cipher is, so that
# the browser-side redeemer can open them with WebCrypto.
SHARE_CIPHER = AESGCM

_URL_PARAMS = ("token", "data", "iv", "key")


class Clipboard(Protocol):
    async def write_text(self, text: str) -> None:
        ...


# (message, url) -> show the link for manual copying
Presenter = Callable[[str, str], Union[None, Awaitable[None]]]


def generate_token_id() -> str:
    """8 random bytes, hex-encoded to 16 characters."""
    return secrets.token_hex(TOKEN_ID_BYTES)


def build_share_url(token: ShareToken, base_url: str) -> str:
    """Compose the capability URL for a token."""
    return token.url(base_url)


def parse_share_url(url: str) -> ShareToken:
    """Split a capability URL back into its token parts.

    Raises:
        DecodeFailure: If a parameter is missing or malformed.
    """
    params = parse_qs(urlsplit(url).query)
    missing = [name for name in _URL_PARAMS if not params.get(name)]
    if missing:
        raise DecodeFailure(
            f"share URL is missing parameter(s): {', '.join(missing)}"
        )
    try:
        return ShareToken(
            token_id=params["token"][0],
            cipher=b64decode(params["data"][0]),
            iv=b64decode(params["iv"][0]),
            key=b64decode(params["key"][0]),
        )
    except ValidationError as err:
        raise DecodeFailure(f"malformed share URL: {err}") from err


def open_share_url(url: str) -> SharePayload:
    """Decrypt the credential carried by a share URL.

    Expiry is not checked; see ``SharePayload.is_expired``.

    Raises:
        DecodeFailure: If the URL or the decrypted payload is malformed.
        AuthenticationFailure: If the ciphertext does not verify.
    """
    token = parse_share_url(url)
    plaintext = aead_decrypt(
        token.cipher, token.iv, token.key, cipher_cls=SHARE_CIPHER,
    )
    try:
        return SharePayload.model_validate(deserialize_value(plaintext))
    except ValidationError as err:
        raise DecodeFailure(f"malformed share payload: {err}") from err


class ShareTokenIssuer:
    """Mints share links and hands them to the user.

    The issuer keeps no record of what it has issued.
    """

    def __init__(
        self,
        config: Optional[VaultConfig] = None,
        clipboard: Optional[Clipboard] = None,
        presenter: Optional[Presenter] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self._config = config or VaultConfig()
        self._clipboard = clipboard
        self._presenter = presenter
        self._clock = clock

    def mint(
        self, entry: Union[Credential, Mapping[str, Any]], ttl_seconds: int
    ) -> ShareToken:
        """Encrypt one credential under a fresh share key.

        Raises:
            ValueError: If ttl_seconds is not positive.
        """
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")
        if not isinstance(entry, Credential):
            entry = Credential.model_validate(entry)

        token_id = generate_token_id()
        key = generate_key()
        created = self._clock()
        payload = SharePayload(
            login_url=entry.login_url or "",
            username=entry.username,
            password=entry.password,
            created=created,
            expires=created + ttl_seconds * 1000,
        )
        ct, iv = aead_encrypt(
            serialize_value(payload), key, cipher_cls=SHARE_CIPHER,
        )
        return ShareToken(token_id=token_id, cipher=ct, iv=iv, key=key)

    async def issue(
        self,
        entry: Union[Credential, Mapping[str, Any]],
        ttl_seconds: Optional[int] = None,
    ) -> str:
        """Mint a share link, deliver it, and return it.

        Args:
            entry: Credential to share.
            ttl_seconds: Link lifetime; defaults to the configured share TTL.

        Returns:
            The capability URL.

        Raises:
            DeliveryFailure: If every configured delivery path failed.
        """
        ttl = self._config.share_ttl if ttl_seconds is None else ttl_seconds
        token = self.mint(entry, ttl)
        url = build_share_url(token, self._config.share_base_url)
        logger.info("Issued share token %s (ttl=%ds)", token.token_id, ttl)
        await self._deliver(url, token.token_id)
        return url

    async def _deliver(self, url: str, token_id: str) -> None:
        if self._clipboard is not None:
            try:
                await self._clipboard.write_text(url)
                logger.debug("Share token %s copied to clipboard", token_id)
                return
            except Exception as err:
                logger.warning(
                    "Clipboard write failed for share token %s, "
                    "falling back to manual copy: %s", token_id, err,
                )
        if self._presenter is None:
            if self._clipboard is not None:
                raise DeliveryFailure(
                    "Clipboard write failed and no manual-copy fallback is set"
                )
            return
        try:
            result = self._presenter("Copy your one-time login link:", url)
            if inspect.isawaitable(result):
                await result
        except Exception as err:
            raise DeliveryFailure(
                f"Could not present share token {token_id}: {err}"
            ) from err
