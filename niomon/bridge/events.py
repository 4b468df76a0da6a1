"""Typed events emitted by bridges and provider backends.

Each variant knows the EIP-1193 event name and positional arguments it is fanned
out with at the provider layer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable

from niomon.bridge.protocol import ETH_SUBSCRIPTION


class BridgeEvent:
    """Base class for event variants."""

    @property
    def name(self) -> str:
        raise NotImplementedError

    @property
    def args(self) -> tuple[Any, ...]:
        return ()


@dataclass(frozen=True)
class Connected(BridgeEvent):
    chain_id: str  # hex, e.g. "0x1"

    @property
    def name(self) -> str:
        return "connect"

    @property
    def args(self) -> tuple[Any, ...]:
        return ({"chainId": self.chain_id},)


@dataclass(frozen=True)
class AccountsChanged(BridgeEvent):
    accounts: list[str] = field(default_factory=list)

    @property
    def name(self) -> str:
        return "accountsChanged"

    @property
    def args(self) -> tuple[Any, ...]:
        return (list(self.accounts),)


@dataclass(frozen=True)
class ChainChanged(BridgeEvent):
    chain_id: str

    @property
    def name(self) -> str:
        return "chainChanged"

    @property
    def args(self) -> tuple[Any, ...]:
        return (self.chain_id,)


@dataclass(frozen=True)
class Message(BridgeEvent):
    """Subscription push (``eth_subscription``)."""

    data: Any = None
    type: str = ETH_SUBSCRIPTION

    @property
    def name(self) -> str:
        return "message"

    @property
    def args(self) -> tuple[Any, ...]:
        return ({"type": self.type, "data": self.data},)


@dataclass(frozen=True)
class Close(BridgeEvent):
    @property
    def name(self) -> str:
        return "close"


@dataclass(frozen=True)
class Ready(BridgeEvent):
    family: str

    @property
    def name(self) -> str:
        return f"{self.family}_ready"


@dataclass(frozen=True)
class DidLogout(BridgeEvent):
    family: str

    @property
    def name(self) -> str:
        return f"{self.family}_did_logout"


@dataclass(frozen=True)
class RemoteEvent(BridgeEvent):
    """Arbitrary named event relayed through the generic ``*_event`` notification."""

    event_name: str
    payload: tuple[Any, ...] = ()

    @property
    def name(self) -> str:
        return self.event_name

    @property
    def args(self) -> tuple[Any, ...]:
        return self.payload


EventHandler = Callable[[BridgeEvent], None]


def event_from_remote(name: str, args: list[Any] | tuple[Any, ...]) -> BridgeEvent:
    """Map a remote ``(name, *args)`` pair onto a typed variant when the shape is known."""
    first = args[0] if args else None
    if name == "connect" and isinstance(first, dict) and isinstance(first.get("chainId"), str):
        return Connected(chain_id=first["chainId"])
    if name == "accountsChanged" and isinstance(first, list):
        return AccountsChanged(accounts=[str(x) for x in first])
    if name == "chainChanged" and isinstance(first, str):
        return ChainChanged(chain_id=first)
    if name == "close" and not args:
        return Close()
    return RemoteEvent(event_name=name, payload=tuple(args))
