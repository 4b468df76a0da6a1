"""Pytest hooks and fixtures."""

import pytest

from niomon.auth import storage
from niomon.cli.logging_utils import remove_log_sinks
from niomon.config import access
from niomon.provider.registry import ProviderRegistry


@pytest.fixture(autouse=True)
def _isolate_process_state(tmp_path, monkeypatch):
    """Keep every test away from ~/.niomon and from other tests' singletons."""
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.setattr(storage, "_session_store", storage.MemoryStore())
    monkeypatch.setattr(storage, "_file_stores", {})
    access.clear_config_cache()
    ProviderRegistry.reset_instance()
    yield
    ProviderRegistry.reset_instance()
    remove_log_sinks()
    access.clear_config_cache()
