"""EIP-1193 provider façade over the Ditto widget bridge."""

from niomon.provider.backend import BRIDGED_METHODS, BridgeState, BrowserProviderBackend
from niomon.provider.provider import EthereumProvider, MetaMaskHelper, build_backend
from niomon.provider.registry import DebugProvider, ProviderRegistry, inject_ethereum_provider, native_log_sink
from niomon.provider.rpc import NETWORK_NAMES, JsonRpcEndpoint, build_rpc_endpoint, resolve_rpc_url

__all__ = [
    "BRIDGED_METHODS",
    "BridgeState",
    "BrowserProviderBackend",
    "DebugProvider",
    "EthereumProvider",
    "JsonRpcEndpoint",
    "MetaMaskHelper",
    "NETWORK_NAMES",
    "ProviderRegistry",
    "build_backend",
    "build_rpc_endpoint",
    "inject_ethereum_provider",
    "native_log_sink",
    "resolve_rpc_url",
]
