"""Configuration module for niomon."""

from niomon.config.loader import get_config_path, load_config, save_config
from niomon.config.schema import (
    ClientConfig,
    Config,
    ProviderConfig,
    SessionConfig,
    WalletAuthConfig,
)
from niomon.config.access import clear_config_cache, get_config

__all__ = [
    "ClientConfig",
    "Config",
    "ProviderConfig",
    "SessionConfig",
    "WalletAuthConfig",
    "clear_config_cache",
    "get_config",
    "get_config_path",
    "load_config",
    "save_config",
]
