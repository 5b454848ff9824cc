"""
Credvault Configuration — validated settings loaded from the environment.

Reads:
    CREDVAULT_SHARE_ORIGIN = <origin serving share.html, e.g. chrome-extension://<id>>
    CREDVAULT_SHARE_TTL = <default share lifetime in seconds>
    CREDVAULT_CIPHER_BACKEND = aesgcm | chacha20

Security Note:
    Key material is never part of configuration. The vault key is handed
    to the session at unlock time and lives only in session scope.
"""
import os
import logging

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger("credvault.conf")

# Storage keys, shared with the browser side of the extension.
SESSION_KEY_NAME = "vaultKey"
SESSION_CACHE_NAME = "vaultCache"
DURABLE_VAULT_NAME = "vault"

SHARE_PATH = "share.html"
DEFAULT_SHARE_ORIGIN = "chrome-extension://credvault"
DEFAULT_SHARE_TTL = 300  # 5 minutes

CIPHER_BACKENDS = ("aesgcm", "chacha20")


def get_cipher_backend() -> str:
    """Return the configured vault AEAD backend name (lowercased)."""
    return os.environ.get("CREDVAULT_CIPHER_BACKEND", "aesgcm").lower()


class VaultConfig(BaseModel):
    """Validated credvault configuration."""

    share_origin: str = Field(default=DEFAULT_SHARE_ORIGIN)
    share_ttl: int = Field(default=DEFAULT_SHARE_TTL, ge=1)
    cipher_backend: str = Field(default_factory=get_cipher_backend)

    @field_validator("share_origin")
    @classmethod
    def validate_origin(cls, v: str) -> str:
        """Require a scheme and drop any trailing slash."""
        if "://" not in v:
            raise ValueError(f"share_origin must include a scheme: {v!r}")
        return v.rstrip("/")

    @field_validator("cipher_backend")
    @classmethod
    def validate_cipher(cls, v: str) -> str:
        """Validate cipher backend is supported."""
        v = v.lower()
        if v not in CIPHER_BACKENDS:
            raise ValueError(f"Unsupported cipher backend: {v}")
        return v

    @property
    def share_base_url(self) -> str:
        """Fixed, well-known location of the share redemption page."""
        return f"{self.share_origin}/{SHARE_PATH}"

    @classmethod
    def from_env(cls) -> "VaultConfig":
        """Create VaultConfig by loading values from environment.

        Returns:
            Populated VaultConfig instance.
        """
        config = cls(
            share_origin=os.environ.get(
                "CREDVAULT_SHARE_ORIGIN", DEFAULT_SHARE_ORIGIN
            ),
            share_ttl=int(
                os.environ.get("CREDVAULT_SHARE_TTL", DEFAULT_SHARE_TTL)
            ),
            cipher_backend=get_cipher_backend(),
        )
        logger.debug(
            "Loaded config: origin=%s ttl=%d cipher=%s",
            config.share_origin, config.share_ttl, config.cipher_backend,
        )
        return config
