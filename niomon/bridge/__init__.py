"""Cross-context widget bridge: envelope codec, correlation, lifecycle and bridges."""

from niomon.bridge.backend import ExternalProviderBridge, ProviderBackend, WebMessageBridge, WidgetBridge
from niomon.bridge.channel import LocalWindow, MessageEvent, NullRenderer, WidgetMode, Window
from niomon.bridge.correlation import PendingRequests
from niomon.bridge.events import (
    AccountsChanged,
    BridgeEvent,
    ChainChanged,
    Close,
    Connected,
    DidLogout,
    Message,
    Ready,
    RemoteEvent,
)
from niomon.bridge.protocol import DITTO, WALLET_AUTH, BridgeFamily
from niomon.bridge.wallet_auth import WalletAuthWidget
from niomon.bridge.widget import WidgetContainer, ditto_widget_url

__all__ = [
    "AccountsChanged",
    "BridgeEvent",
    "BridgeFamily",
    "ChainChanged",
    "Close",
    "Connected",
    "DITTO",
    "DidLogout",
    "ExternalProviderBridge",
    "LocalWindow",
    "Message",
    "MessageEvent",
    "NullRenderer",
    "PendingRequests",
    "ProviderBackend",
    "Ready",
    "RemoteEvent",
    "WALLET_AUTH",
    "WalletAuthWidget",
    "WebMessageBridge",
    "WidgetBridge",
    "WidgetContainer",
    "WidgetMode",
    "Window",
    "ditto_widget_url",
]
