"""
Process-wide provider registry, debug decorator and provider injection.

Hosts read the active provider through the registry instead of a global property;
assignments from outside (an extension injecting its own provider later) are
announced to subscribers.
"""

from __future__ import annotations

import json
import threading
from typing import Any, Callable, Optional

from loguru import logger

from niomon.bridge.channel import Window
from niomon.config.schema import ProviderConfig
from niomon.provider.backend import parse_provider_config
from niomon.provider.provider import EthereumProvider, JsonRpcCallback, Listener

Subscriber = Callable[[Any], None]

_NATIVE_LEVELS = {
    "TRACE": "trace",
    "DEBUG": "debug",
    "INFO": "info",
    "SUCCESS": "info",
    "WARNING": "warn",
    "ERROR": "error",
    "CRITICAL": "error",
}


class ProviderRegistry:
    """
    Holds the single active provider.

    Usage:
        registry = ProviderRegistry.get_instance()
        registry.install(provider)
        registry.get()
    """

    _instance: Optional["ProviderRegistry"] = None
    _lock = threading.Lock()

    def __init__(self) -> None:
        self._current: Any = None
        self._subscribers: list[Subscriber] = []
        self.external: Any = None
        self.native_sink_id: int | None = None

    @classmethod
    def get_instance(cls) -> "ProviderRegistry":
        with cls._lock:
            if cls._instance is None:
                cls._instance = cls()
            return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        with cls._lock:
            instance, cls._instance = cls._instance, None
        if instance is not None and instance.native_sink_id is not None:
            logger.remove(instance.native_sink_id)

    def get(self) -> Any:
        logger.debug("ethereum provider read")
        return self._current

    def set(self, provider: Any) -> None:
        """External assignment: subscribers decide what becomes current."""
        logger.debug("ethereum provider set")
        for subscriber in list(self._subscribers):
            subscriber(provider)

    def install(self, provider: Any) -> None:
        self._current = provider

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        self._subscribers.append(subscriber)

        def unsubscribe() -> None:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

        return unsubscribe


class DebugProvider:
    """Logging decorator exposing the same surface as EthereumProvider."""

    def __init__(self, inner: Any, log: Callable[[str], None] | None = None):
        self.inner = inner
        self._log = log or (lambda message: logger.info(message))
        inner.on("connect", lambda info=None: self._log(f"Debug: connect fired: {info}"))

    def _called(self, name: str, *args: Any) -> None:
        self._log(f"Debug: ethereum.{name} called {list(args)}")

    def _returned(self, name: str, value: Any, is_async: bool = False) -> Any:
        suffix = " (async)" if is_async else ""
        self._log(f"Debug: ethereum.{name} returned{suffix}: {value!r}")
        return value

    def _read(self, name: str, value: Any) -> Any:
        self._log(f"Debug: ethereum.{name} read: {value!r}")
        return value

    @property
    def is_ditto(self) -> bool:
        return self._read("isDitto", self.inner.is_ditto)

    @property
    def is_meta_mask(self) -> bool:
        return self._read("isMetaMask", self.inner.is_meta_mask)

    async def request(self, method: str, params: Any = None) -> Any:
        self._called("request", method, params)
        return self._returned("request", await self.inner.request(method, params), is_async=True)

    def on(self, event_name: str, listener: Listener) -> None:
        self._called("on", event_name)
        self.inner.on(event_name, listener)

    def remove_listener(self, event_name: str, listener: Listener) -> None:
        self._called("removeListener", event_name)
        self.inner.remove_listener(event_name, listener)

    def is_connected(self) -> bool:
        self._called("isConnected")
        return self._returned("isConnected", self.inner.is_connected())

    def chain_id(self) -> str:
        self._called("chainId")
        return self._returned("chainId", self.inner.chain_id())

    def network_version(self) -> str:
        self._called("networkVersion")
        return self._returned("networkVersion", self.inner.network_version())

    def selected_address(self) -> str | None:
        self._called("selectedAddress")
        return self._returned("selectedAddress", self.inner.selected_address())

    async def enable(self) -> Any:
        self._called("enable")
        return self._returned("enable", await self.inner.enable(), is_async=True)

    def send(self, method_or_payload: Any, params_or_callback: Any = None) -> Any:
        self._called("send", method_or_payload)
        return self.inner.send(method_or_payload, params_or_callback)

    def send_async(self, payload: dict[str, Any], callback: JsonRpcCallback) -> Any:
        self._called("sendAsync", payload)
        return self.inner.send_async(payload, callback)

    async def close(self) -> None:
        self._called("close")
        await self.inner.close()


def native_log_sink(post: Callable[[str], None]) -> Callable[[Any], None]:
    """Loguru sink forwarding records to a native host as ``logger`` messages."""

    def sink(message: Any) -> None:
        record = message.record
        post(json.dumps({
            "method": "logger",
            "lvl": _NATIVE_LEVELS.get(record["level"].name, "info"),
            "data": [record["message"]],
        }, ensure_ascii=False))

    return sink


def _wrap(debug_proxy: bool, provider: Any) -> Any:
    if debug_proxy:
        logger.debug("Debug: Full debug proxy enabled")
        return DebugProvider(provider)
    return provider


def inject_ethereum_provider(
    options: ProviderConfig | dict[str, Any],
    *,
    window: Window | None = None,
    registry: ProviderRegistry | None = None,
    **provider_kwargs: Any,
) -> Any:
    """
    Install the active provider.

    Native hosts (a window exposing ``native_post``) get a native bridge and a log
    sink forwarding to the host. With ``use_meta_mask`` the externally injected
    provider (``registry.external``) is tracked instead, including later assignments
    through ``registry.set``. Returns the installed provider, or None.
    """
    opts = parse_provider_config(options)
    registry = registry or ProviderRegistry.get_instance()
    native_post = getattr(window, "native_post", None)
    is_native = callable(native_post)

    if is_native and registry.native_sink_id is None:
        registry.native_sink_id = logger.add(native_log_sink(native_post), level="DEBUG")

    logger.debug("Installing ditto provider")
    logger.debug("Debug flag: {}", opts.debug)

    if opts.use_meta_mask:
        logger.debug("Debug: Intercept MetaMask")
        provider = registry.external

        def updater(new_provider: Any) -> None:
            logger.debug("Debug: Updating MetaMask reference")
            registry.external = new_provider
            registry.install(_wrap(opts.debug_proxy, new_provider))

        registry.subscribe(updater)
    else:
        provider = EthereumProvider(
            opts.model_copy(update={"native": is_native, "meta_mask": True}),
            window=window,
            **provider_kwargs,
        )

    if provider is not None:
        registry.install(_wrap(opts.debug_proxy, provider))
    return registry.get()
