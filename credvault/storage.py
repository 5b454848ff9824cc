"""
Key-value storage collaborators.

Credvault never talks to a concrete storage backend. It is handed two
asynchronous key-value stores: a *session* store, cleared when the browsing
session ends, and a *durable* store, which survives restarts. Only the vault
key and the decrypted cache go to the session store; only ciphertext goes to
the durable store.
"""
import copy
from typing import Any, Optional, Protocol, runtime_checkable


@runtime_checkable
class KeyValueStore(Protocol):
    """Opaque asynchronous get/set/remove store keyed by string."""

    async def get(self, key: str) -> Optional[Any]:
        ...

    async def set(self, key: str, value: Any) -> None:
        ...

    async def remove(self, key: str) -> None:
        ...


class MemoryStore:
    """In-process KeyValueStore.

    Values are deep-copied on the way in and out, the way a structured-clone
    storage area behaves, so callers never share mutable state with the store.
    """

    def __init__(self, initial: Optional[dict[str, Any]] = None):
        self._data: dict[str, Any] = copy.deepcopy(initial) if initial else {}

    async def get(self, key: str) -> Optional[Any]:
        return copy.deepcopy(self._data.get(key))

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f'<MemoryStore keys={sorted(self._data.keys())}>'
