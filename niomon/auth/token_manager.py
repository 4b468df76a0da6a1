"""Client-scoped token storage on top of a key-value store."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Protocol

from niomon.auth.storage import KeyValueStore, resolve_storage


class TokenManager(Protocol):
    async def add(self, key: str, token: str | dict[str, Any]) -> None: ...

    async def add_object(self, key: str, token: dict[str, Any]) -> None: ...

    async def get(self, key: str) -> str | None: ...

    async def get_object(self, key: str) -> dict[str, Any] | None: ...

    async def remove(self, key: str) -> None: ...

    async def clear(self) -> None: ...


class StoreTokenManager:
    """
    Token manager whose keys live under ``authcore.tokenManager.<clientId>.``.

    Several clients may share one store without colliding.
    """

    def __init__(
        self,
        client_id: str,
        storage: str | KeyValueStore | None = None,
        *,
        directory: Path | None = None,
    ):
        if not isinstance(client_id, str) or not client_id:
            raise ValueError("clientId is required")
        if storage is None:
            storage = "localStorage"
        self.storage: KeyValueStore = (
            resolve_storage(storage, directory=directory) if isinstance(storage, str) else storage
        )
        self.key_prefix = f"authcore.tokenManager.{client_id}."

    async def add(self, key: str, token: str | dict[str, Any]) -> None:
        if isinstance(token, dict):
            await self.add_object(key, token)
            return
        self.storage.set(self.key_prefix + key, token)

    async def add_object(self, key: str, token: dict[str, Any]) -> None:
        self.storage.set(self.key_prefix + key, json.dumps(token))

    async def get(self, key: str) -> str | None:
        return self.storage.get(self.key_prefix + key)

    async def get_object(self, key: str) -> dict[str, Any] | None:
        """Raises ValueError when the stored value is not a JSON object."""
        value = self.storage.get(self.key_prefix + key)
        if not value:
            return None
        decoded = json.loads(value)
        if not isinstance(decoded, dict):
            raise ValueError(f"stored {key} is not an object")
        return decoded

    async def remove(self, key: str) -> None:
        self.storage.remove(self.key_prefix + key)

    async def clear(self) -> None:
        """Remove every token of this client."""
        for key in [k for k in self.storage.keys() if k.startswith(self.key_prefix)]:
            self.storage.remove(key)
