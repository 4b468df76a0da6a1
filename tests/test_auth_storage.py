import json

import pytest

from niomon.auth.storage import (
    JsonFileStore,
    MemoryStore,
    is_storage_supported,
    local_store,
    resolve_storage,
    session_store,
)
from niomon.auth.token_manager import StoreTokenManager


def test_resolve_storage_is_case_insensitive(tmp_path):
    assert resolve_storage("sessionStorage") is session_store()
    assert resolve_storage("SESSIONSTORAGE") is session_store()
    assert resolve_storage("localStorage", directory=tmp_path) is local_store(tmp_path)


def test_resolve_storage_rejects_unknown_name():
    with pytest.raises(ValueError, match="storage cookieStorage is not available"):
        resolve_storage("cookieStorage")


def test_json_file_store_persists_across_instances(tmp_path):
    path = tmp_path / "storage.json"
    store = JsonFileStore(path)
    store.set("a", "1")
    store.set("b", "2")
    store.remove("a")

    reopened = JsonFileStore(path)
    assert reopened.get("a") is None
    assert reopened.get("b") == "2"
    assert json.loads(path.read_text()) == {"b": "2"}
    assert (path.stat().st_mode & 0o777) == 0o600


def test_json_file_store_ignores_corrupt_file(tmp_path):
    path = tmp_path / "storage.json"
    path.write_text("[1, 2")
    store = JsonFileStore(path)
    assert store.keys() == []
    store.set("k", "v")
    assert JsonFileStore(path).get("k") == "v"


def test_local_store_is_cached_per_directory(tmp_path):
    assert local_store(tmp_path) is local_store(tmp_path)
    assert local_store(tmp_path) is not local_store(tmp_path / "other")


def test_storage_probe():
    store = MemoryStore()
    assert is_storage_supported(store)
    assert store.keys() == []


def test_token_manager_requires_client_id():
    with pytest.raises(ValueError, match="clientId is required"):
        StoreTokenManager("", MemoryStore())


@pytest.mark.asyncio
async def test_token_manager_scopes_keys_by_client():
    store = MemoryStore()
    first = StoreTokenManager("client-a", store)
    second = StoreTokenManager("client-b", store)

    await first.add("access_token", "aaa")
    await second.add("access_token", "bbb")
    await first.add("token_response", {"access_token": "aaa", "expires_in": 3600})

    assert await first.get("access_token") == "aaa"
    assert await second.get("access_token") == "bbb"
    assert store.get("authcore.tokenManager.client-a.access_token") == "aaa"
    assert await first.get_object("token_response") == {"access_token": "aaa", "expires_in": 3600}

    await first.clear()
    assert await first.get("access_token") is None
    assert await first.get_object("token_response") is None
    assert await second.get("access_token") == "bbb"


@pytest.mark.asyncio
async def test_token_manager_get_object_rejects_non_objects():
    store = MemoryStore()
    manager = StoreTokenManager("client-a", store)
    await manager.add("token_response", "[1, 2]")
    with pytest.raises(ValueError):
        await manager.get_object("token_response")

    await manager.add("token_response", "{broken")
    with pytest.raises(ValueError):
        await manager.get_object("token_response")


@pytest.mark.asyncio
async def test_token_manager_resolves_named_storage(tmp_path):
    manager = StoreTokenManager("client-a", "localStorage", directory=tmp_path)
    await manager.add("access_token", "persisted")

    reloaded = JsonFileStore(tmp_path / "storage.json")
    assert reloaded.get("authcore.tokenManager.client-a.access_token") == "persisted"
