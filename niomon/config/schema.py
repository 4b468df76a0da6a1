"""Configuration schema using Pydantic.

Single data model and defaults for the SDK, persisted to ~/.niomon/config.json.
"""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings

NIOMON_API_BASE_URL = "https://api.ditto.xyz/ditto"


class ClientConfig(BaseModel):
    """OAuth client options for the session manager."""
    base_url: str
    client_id: str
    redirect_uri: str
    storage: str | None = None  # "localStorage" (default) or "sessionStorage"

    @field_validator("base_url")
    @classmethod
    def _normalize_base_url(cls, value: str) -> str:
        # Relative endpoint paths are joined onto the base URL.
        return value if value.endswith("/") else value + "/"


class SessionConfig(BaseModel):
    """Session manager timing and PKCE parameters."""
    refresh_window_seconds: float = 3600.0  # refresh when expiring within this window
    popup_poll_interval: float = 1.0  # seconds between popup-closed checks
    popup_width: int = 766
    popup_height: int = 530
    random_string_length: int = Field(default=20, ge=8)


class ProviderConfig(BaseModel):
    """Ethereum provider façade options."""
    app_id: str
    chain_id: int
    base_url: str = NIOMON_API_BASE_URL
    redirect_uri: str | None = None
    infura_id: str | None = None
    alchemy_id: str | None = None
    rpc: dict[int, str] | str | None = None  # single URL or chainId -> URL
    native: bool = False  # bridge to injected native code instead of an embedded widget
    debug: bool = False
    debug_proxy: bool = False  # wrap the provider in a logging decorator
    use_meta_mask: bool = False  # track an externally injected provider instead
    meta_mask: bool = True  # report isMetaMask

    @field_validator("app_id")
    @classmethod
    def _require_app_id(cls, value: str) -> str:
        if not value:
            raise ValueError("appId cannot be empty")
        return value

    @field_validator("chain_id")
    @classmethod
    def _require_chain_id(cls, value: int) -> int:
        if not value:
            raise ValueError("chainId is required")
        return value


class WalletAuthConfig(BaseModel):
    """Wallet authentication widget options."""
    base_url: str = NIOMON_API_BASE_URL
    tenant: str = ""
    zone: str = ""
    app_id: str = ""


class Config(BaseSettings):
    """Root configuration for niomon."""
    client: ClientConfig | None = None
    session: SessionConfig = Field(default_factory=SessionConfig)
    provider: ProviderConfig | None = None
    wallet_auth: WalletAuthConfig = Field(default_factory=WalletAuthConfig)
    storage_dir: str = "~/.niomon"
    log_level: str = "INFO"

    @property
    def storage_path(self) -> Path:
        """Expanded directory holding long-lived storage files."""
        return Path(self.storage_dir).expanduser()

    model_config = ConfigDict(
        env_prefix="NIOMON_",
        env_nested_delimiter="__"
    )
