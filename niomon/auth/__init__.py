"""Authentication session manager: PKCE login, token storage, backend authn API."""

from niomon.auth.api import NiomonAuthnAPI
from niomon.auth.client import AUTH_STATE_STORAGE_KEY, NiomonClient
from niomon.auth.models import (
    AuthState,
    AuthenticationStatus,
    AuthorizationResponse,
    OpenIdConfiguration,
    TokenResponse,
    UserInfoResponse,
)
from niomon.auth.popup import Navigator, PopupHandle, PopupOpener, popup_features, wait_authorization_response
from niomon.auth.storage import (
    JsonFileStore,
    KeyValueStore,
    MemoryStore,
    is_storage_supported,
    local_store,
    resolve_storage,
    session_store,
)
from niomon.auth.token_manager import StoreTokenManager, TokenManager

__all__ = [
    "AUTH_STATE_STORAGE_KEY",
    "AuthState",
    "AuthenticationStatus",
    "AuthorizationResponse",
    "JsonFileStore",
    "KeyValueStore",
    "MemoryStore",
    "Navigator",
    "NiomonAuthnAPI",
    "NiomonClient",
    "OpenIdConfiguration",
    "PopupHandle",
    "PopupOpener",
    "StoreTokenManager",
    "TokenManager",
    "TokenResponse",
    "UserInfoResponse",
    "is_storage_supported",
    "local_store",
    "popup_features",
    "resolve_storage",
    "session_store",
    "wait_authorization_response",
]
