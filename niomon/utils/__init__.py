"""Utility functions for niomon."""

from niomon.utils.helpers import (
    base64url,
    ensure_dir,
    get_data_path,
    random_string,
    resolve_service_host,
    sha256,
)
from niomon.utils.exceptions import (
    AuthorizationError,
    AuthorizationRequiredError,
    AuthStateMismatchError,
    AuthStateNotFoundError,
    BridgeInitError,
    BridgeRpcError,
    ConfigurationError,
    DecodeError,
    EmptyAccessTokenError,
    ErrorCategory,
    MissingCallbackParamsError,
    NiomonError,
    PopupBlockedError,
    PopupClosedError,
    ProviderRpcError,
    RefreshTokenMissingError,
    SessionError,
    UNSUPPORTED_METHOD_CODE,
    USER_REJECTED_CODE,
    sanitize_error_message,
)

__all__ = [
    "base64url",
    "ensure_dir",
    "get_data_path",
    "random_string",
    "resolve_service_host",
    "sha256",
    "AuthorizationError",
    "AuthorizationRequiredError",
    "AuthStateMismatchError",
    "AuthStateNotFoundError",
    "BridgeInitError",
    "BridgeRpcError",
    "ConfigurationError",
    "DecodeError",
    "EmptyAccessTokenError",
    "ErrorCategory",
    "MissingCallbackParamsError",
    "NiomonError",
    "PopupBlockedError",
    "PopupClosedError",
    "ProviderRpcError",
    "RefreshTokenMissingError",
    "SessionError",
    "UNSUPPORTED_METHOD_CODE",
    "USER_REJECTED_CODE",
    "sanitize_error_message",
]
