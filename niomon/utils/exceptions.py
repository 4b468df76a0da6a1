"""
Exception hierarchy and error handling utilities for niomon.

Provides:
- Custom exception classes with error codes
- Error categorization (session, rpc, validation, ...)
- Safe error message formatting (no token leak)
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any


class ErrorCategory(Enum):
    """Error categories for classification."""
    SESSION = "session"
    RPC = "rpc"
    USER_REJECTED = "user_rejected"
    VALIDATION = "validation"
    CONFIGURATION = "configuration"
    FATAL = "fatal"


USER_REJECTED_CODE = 4001
UNSUPPORTED_METHOD_CODE = 4200


class NiomonError(Exception):
    """Base exception for all niomon errors."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        category: ErrorCategory = ErrorCategory.FATAL,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "category": self.category.value,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class BridgeRpcError(NiomonError):
    """Error object returned verbatim by the remote side of a bridge."""

    def __init__(self, code: int, message: str, data: Any = None, payload: dict[str, Any] | None = None):
        super().__init__(message, code="BRIDGE_RPC_ERROR", category=ErrorCategory.RPC)
        self.code = code
        self.data = data
        self.payload = payload if payload is not None else {"code": code, "message": message}

    @classmethod
    def from_payload(cls, error: Any) -> "BridgeRpcError":
        row = error if isinstance(error, dict) else {}
        raw_code = row.get("code")
        code = raw_code if isinstance(raw_code, int) and not isinstance(raw_code, bool) else -32603
        message = row.get("message")
        return cls(
            code=code,
            message=message if isinstance(message, str) else str(error),
            data=row.get("data"),
            payload=row if row else {"code": code, "message": str(error)},
        )

    def to_dict(self) -> dict[str, Any]:
        return dict(self.payload)

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class ProviderRpcError(NiomonError):
    """EIP-1193 style error surfaced by the provider façade."""

    def __init__(self, code: int, message: str, data: Any = None):
        category = ErrorCategory.USER_REJECTED if code == USER_REJECTED_CODE else ErrorCategory.RPC
        super().__init__(message, code="PROVIDER_RPC_ERROR", category=category)
        self.code = code
        self.data = data

    @classmethod
    def user_rejected(cls, message: str = "rejected by user") -> "ProviderRpcError":
        return cls(USER_REJECTED_CODE, message)

    @classmethod
    def unsupported_method(cls, method: str) -> "ProviderRpcError":
        return cls(UNSUPPORTED_METHOD_CODE, f"unsupported method: {method}")

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            out["data"] = self.data
        return out

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class BridgeInitError(NiomonError):
    """The widget refused to initialise a session for the current token."""

    def __init__(self, message: str = "failed to init Ditto Bridge"):
        super().__init__(message, code="BRIDGE_INIT_ERROR", category=ErrorCategory.RPC)


class DecodeError(NiomonError):
    """A value crossing a trust boundary failed validation."""

    def __init__(self, message: str, source: str | None = None):
        details = {"source": source} if source else {}
        super().__init__(message, code="DECODE_ERROR", category=ErrorCategory.VALIDATION, details=details)


class ConfigurationError(NiomonError):
    """Invalid client or provider options."""

    def __init__(self, message: str, field: str | None = None):
        details = {"field": field} if field else {}
        super().__init__(message, code="CONFIGURATION_ERROR", category=ErrorCategory.CONFIGURATION, details=details)


class SessionError(NiomonError):
    """Base class for login/session failures raised by the session manager."""

    def __init__(self, message: str, code: str = "SESSION_ERROR", details: dict[str, Any] | None = None):
        super().__init__(message, code=code, category=ErrorCategory.SESSION, details=details)


class AuthStateNotFoundError(SessionError):
    def __init__(self) -> None:
        super().__init__("auth state cannot be found", code="AUTH_STATE_NOT_FOUND")


class AuthStateMismatchError(SessionError):
    def __init__(self) -> None:
        super().__init__("auth state does not match the callback state", code="AUTH_STATE_MISMATCH")


class AuthorizationError(SessionError):
    """The authorization server answered with an ``error`` parameter."""

    def __init__(self, error: Any):
        super().__init__(f"error: {error}", code="AUTHORIZATION_ERROR", details={"error": error})
        self.error = error


class MissingCallbackParamsError(SessionError):
    def __init__(self) -> None:
        super().__init__("Request missing required parameters", code="MISSING_CALLBACK_PARAMS")


class RefreshTokenMissingError(SessionError):
    def __init__(self) -> None:
        super().__init__("No refresh token", code="REFRESH_TOKEN_MISSING")


class PopupBlockedError(SessionError):
    def __init__(self) -> None:
        super().__init__("Popup blocked", code="POPUP_BLOCKED")


class PopupClosedError(SessionError):
    def __init__(self) -> None:
        super().__init__("canceled by user", code="POPUP_CLOSED")


class AuthorizationRequiredError(SessionError):
    def __init__(self) -> None:
        super().__init__("authorization is required", code="AUTHORIZATION_REQUIRED")


class EmptyAccessTokenError(SessionError):
    def __init__(self) -> None:
        super().__init__(
            "exchange token request succeed but access_token is empty",
            code="EMPTY_ACCESS_TOKEN",
        )


_SENSITIVE_PATTERNS = [
    re.compile(r"(access_token|refresh_token|id_token|code_verifier|token|secret)[=:]\s*['\"]?([^\s'\"&]+)['\"]?", re.IGNORECASE),
    re.compile(r"bearer\s+[a-zA-Z0-9\-._~+/]+=*", re.IGNORECASE),
]


def sanitize_error_message(message: str, replacement: str = "[REDACTED]") -> str:
    """Remove tokens and secrets from error messages."""
    sanitized = message
    for pattern in _SENSITIVE_PATTERNS:
        sanitized = pattern.sub(replacement, sanitized)
    return sanitized
