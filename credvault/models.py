"""
Credvault data model.

Wire names (``loginUrl``, ``tokenId``) are kept as aliases so that vaults
written by the browser side of the extension decode unchanged; Python code
uses the snake_case attribute names.
"""
import base64
import time
from typing import Any, Optional
from urllib.parse import urlencode

from pydantic import BaseModel, ConfigDict, Field, field_validator

NONCE_SIZE = 12  # 96-bit nonce
KEY_LENGTH = 32  # AES-256
TOKEN_ID_BYTES = 8


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


def _coerce_bytes(value: Any) -> Any:
    """Accept the storage form of a byte string (a list of ints 0-255)."""
    if isinstance(value, (list, tuple)):
        try:
            return bytes(value)
        except (TypeError, ValueError) as err:
            raise ValueError(f"not a byte sequence: {err}") from err
    return value


class Credential(BaseModel):
    """A single login entry."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    login_url: Optional[str] = Field(default=None, alias="loginUrl")
    username: str = ""
    password: str = ""


class Vault(BaseModel):
    """Folder name -> ordered credential entries.

    Legacy or freshly created vaults without a ``folders`` mapping are
    normalized to an empty mapping.
    """

    model_config = ConfigDict(extra="allow")

    folders: dict[str, list[Credential]] = Field(default_factory=dict)

    @field_validator("folders", mode="before")
    @classmethod
    def normalize_folders(cls, v: Any) -> Any:
        if v is None:
            return {}
        if isinstance(v, dict):
            return {name: entries or [] for name, entries in v.items()}
        return v

    def add_folder(self, name: str) -> list[Credential]:
        """Create (or reset) a folder and return its entry list."""
        if not name:
            raise ValueError("Folder name cannot be empty")
        self.folders[name] = []
        return self.folders[name]

    def add_credential(self, folder: str, credential: Credential) -> None:
        """Append a credential, creating the folder when missing."""
        self.folders.setdefault(folder, []).append(credential)

    def entries(self, folder: str) -> list[Credential]:
        return self.folders.get(folder, [])

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True)


class EncryptedBlob(BaseModel):
    """Vault ciphertext (tag included) plus the nonce used to produce it.

    This is the only vault representation written to durable storage.
    """

    cipher: bytes
    iv: bytes

    @field_validator("cipher", "iv", mode="before")
    @classmethod
    def coerce_bytes(cls, v: Any) -> Any:
        return _coerce_bytes(v)

    @field_validator("iv")
    @classmethod
    def validate_iv(cls, v: bytes) -> bytes:
        if len(v) != NONCE_SIZE:
            raise ValueError(f"iv must be {NONCE_SIZE} bytes, got {len(v)}")
        return v

    def to_storage(self) -> dict:
        """Durable form: ``{"cipher": [int, ...], "iv": [int x 12]}``."""
        return {"cipher": list(self.cipher), "iv": list(self.iv)}

    @classmethod
    def from_storage(cls, data: dict) -> "EncryptedBlob":
        return cls.model_validate(data)


class SharePayload(BaseModel):
    """Plaintext carried inside a share link."""

    model_config = ConfigDict(populate_by_name=True)

    login_url: str = Field(default="", alias="loginUrl")
    username: str
    password: str
    created: int
    expires: int

    def is_expired(self, at: Optional[int] = None) -> bool:
        """Advisory check; nothing in credvault enforces expiry."""
        return (now_ms() if at is None else at) >= self.expires

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True)


class ShareToken(BaseModel):
    """Everything a share link carries: label, ciphertext, nonce and key."""

    model_config = ConfigDict(populate_by_name=True)

    token_id: str = Field(alias="tokenId", pattern=r"^[0-9a-f]{16}$")
    cipher: bytes
    iv: bytes
    key: bytes

    @field_validator("iv")
    @classmethod
    def validate_iv(cls, v: bytes) -> bytes:
        if len(v) != NONCE_SIZE:
            raise ValueError(f"iv must be {NONCE_SIZE} bytes, got {len(v)}")
        return v

    @field_validator("key")
    @classmethod
    def validate_key(cls, v: bytes) -> bytes:
        if len(v) != KEY_LENGTH:
            raise ValueError(f"key must be {KEY_LENGTH} bytes, got {len(v)}")
        return v

    def url(self, base_url: str) -> str:
        """Compose the capability URL; each byte field is standard base64."""
        query = urlencode({
            "token": self.token_id,
            "data": base64.b64encode(self.cipher).decode("ascii"),
            "iv": base64.b64encode(self.iv).decode("ascii"),
            "key": base64.b64encode(self.key).decode("ascii"),
        })
        return f"{base_url}?{query}"
