"""Shared message protocol models for the cross-context widget bridge."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

JSONRPC_VERSION = "2.0"
ETH_SUBSCRIPTION = "eth_subscription"


@dataclass(frozen=True, slots=True)
class BridgeFamily:
    """Tag vocabulary of one bridge protocol family (``ditto``, ``wallet_auth``)."""

    name: str

    @property
    def channel_type(self) -> str:
        return f"{self.name}_message"

    @property
    def request_method(self) -> str:
        """Envelope method of messages that expect a response."""
        return f"{self.name}_request"

    @property
    def ready(self) -> str:
        return f"{self.name}_ready"

    @property
    def mode(self) -> str:
        return f"{self.name}_mode"

    @property
    def event(self) -> str:
        return f"{self.name}_event"

    @property
    def did_logout(self) -> str:
        return f"{self.name}_did_logout"

    @property
    def logout(self) -> str:
        return f"{self.name}_logout"


DITTO = BridgeFamily("ditto")
WALLET_AUTH = BridgeFamily("wallet_auth")


@dataclass(slots=True)
class RpcPayload:
    """JSON-RPC 2.0 body of a bridge message.

    ``has_result``/``has_error`` record key presence, so a ``null`` result still
    counts as a response.
    """

    method: str | None = None
    params: Any = None
    id: int | None = None
    result: Any = None
    error: Any = None
    has_result: bool = False
    has_error: bool = False

    @property
    def is_response(self) -> bool:
        return self.has_result or self.has_error

    @property
    def positional_params(self) -> list[Any]:
        return list(self.params) if isinstance(self.params, list) else []


@dataclass(slots=True)
class MessageEnvelope:
    """Outer frame of every bridge message."""

    channel_type: str
    method: str | None = None
    payload: RpcPayload | None = None
    raw: dict[str, Any] = field(default_factory=dict)
