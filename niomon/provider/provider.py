"""EIP-1193 Ethereum provider backed by the Ditto widget or a native host."""

from __future__ import annotations

import asyncio
import os
from typing import Any, Callable

import httpx
from loguru import logger

from niomon.bridge.backend import ExternalProviderBridge, ProviderBackend
from niomon.bridge.channel import ContextFactory, Window
from niomon.bridge.events import BridgeEvent
from niomon.config.schema import ProviderConfig
from niomon.provider.backend import BrowserProviderBackend, parse_provider_config
from niomon.utils.exceptions import ConfigurationError, NiomonError, ProviderRpcError

Listener = Callable[..., Any]
JsonRpcCallback = Callable[[Any, dict[str, Any]], Any]


class MetaMaskHelper:
    """Experimental ``_metamask`` surface."""

    def __init__(self, provider: EthereumProvider):
        self._provider = provider

    def is_unlocked(self) -> bool:
        return self._provider.is_connected()

    def request_batch(self, requests: list[dict[str, Any]]) -> Any:
        raise ProviderRpcError.unsupported_method("requestBatch")


def build_backend(
    options: ProviderConfig,
    *,
    window: Window | None = None,
    context_factory: ContextFactory | None = None,
    **backend_kwargs: Any,
) -> ProviderBackend:
    """Native hosts talk to injected code through the window; others embed the widget."""
    if window is None:
        raise ConfigurationError("a host window is required", field="window")
    if options.native:
        return ExternalProviderBridge(window, "*")
    if context_factory is None:
        raise ConfigurationError("embedding the widget requires a context factory", field="context_factory")
    return BrowserProviderBackend(options, window=window, context_factory=context_factory, **backend_kwargs)


class EthereumProvider:
    """
    EIP-1193 provider with the MetaMask legacy surface.

    Backend events are fanned out to every listener registered with ``on``. The
    provider itself follows ``connect`` and ``accountsChanged`` to keep ``chain_id``
    and ``selected_address`` current.
    """

    def __init__(
        self,
        options: ProviderConfig | dict[str, Any],
        *,
        backend: ProviderBackend | None = None,
        window: Window | None = None,
        context_factory: ContextFactory | None = None,
        **backend_kwargs: Any,
    ):
        self.options = parse_provider_config(options)
        self._chain_id = self.options.chain_id
        self.debug = bool(os.environ.get("DEBUG")) or self.options.debug
        self._is_meta_mask = self.options.meta_mask
        self._accounts: list[str] = []
        self._listeners: dict[str, list[Listener]] = {}
        self.backend: ProviderBackend = backend or build_backend(
            self.options, window=window, context_factory=context_factory, **backend_kwargs
        )
        self.on("connect", self._on_connect)
        self.on("accountsChanged", self._on_accounts_changed)
        self.backend.on_event(self._on_event)

    @property
    def is_ditto(self) -> bool:
        return True

    @property
    def is_meta_mask(self) -> bool:
        return bool(self._is_meta_mask)

    async def request(self, method: str, params: Any = None) -> Any:
        return await self.backend.request(method, params)

    def on(self, event_name: str, listener: Listener) -> None:
        self._listeners.setdefault(event_name, []).append(listener)

    def remove_listener(self, event_name: str, listener: Listener) -> None:
        listeners = self._listeners.get(event_name)
        if listeners and listener in listeners:
            listeners.remove(listener)

    def emit(self, event_name: str, *args: Any) -> bool:
        listeners = list(self._listeners.get(event_name, ()))
        for listener in listeners:
            try:
                listener(*args)
            except Exception:
                logger.exception("Ditto Provider: {} listener failed", event_name)
        return bool(listeners)

    def is_connected(self) -> bool:
        return True

    @property
    def metamask(self) -> MetaMaskHelper | None:
        if self.is_meta_mask:
            return MetaMaskHelper(self)
        logger.error("Ditto Provider: _metamask property called but isMetaMask is false")
        return None

    def chain_id(self) -> str:
        return hex(self._chain_id)

    def network_version(self) -> str:
        return str(self._chain_id)

    def selected_address(self) -> str | None:
        return self._accounts[0] if self._accounts else None

    async def enable(self) -> Any:
        return await self.request("eth_requestAccounts")

    def send(
        self,
        method_or_payload: str | dict[str, Any],
        params_or_callback: list[Any] | JsonRpcCallback | None = None,
    ) -> Any:
        """
        Legacy ``send``.

        With a method name, returns an awaitable of the normalized response. With a
        payload dict, the callback receives ``(error, response)`` and the scheduled
        task is returned.
        """
        if isinstance(method_or_payload, str):
            return self._send_normalized(method_or_payload, params_or_callback)
        if not callable(params_or_callback):
            raise TypeError("a callback is required when sending a payload")
        return asyncio.ensure_future(self._send_with_callback(method_or_payload, params_or_callback))

    def send_async(self, payload: dict[str, Any], callback: JsonRpcCallback) -> Any:
        return self.send(payload, callback)

    async def close(self) -> None:
        await self.backend.logout()

    async def _send_normalized(self, method: str, params: Any) -> dict[str, Any]:
        result = await self.backend.request(method, params)
        return {"id": None, "jsonrpc": "2.0", "method": method, "result": result}

    async def _send_with_callback(self, payload: dict[str, Any], callback: JsonRpcCallback) -> None:
        method = payload.get("method", "")
        try:
            result = await self.backend.request(method, payload.get("params"))
        except (NiomonError, httpx.HTTPError) as e:
            error = e.to_dict() if isinstance(e, NiomonError) else {"message": str(e)}
            callback(e, {"id": payload.get("id"), "jsonrpc": "2.0", "method": method, "error": error})
            return
        callback(None, {"id": None, "jsonrpc": "2.0", "method": method, "result": result})

    def _on_event(self, event: BridgeEvent) -> None:
        self.emit(event.name, *event.args)

    def _on_connect(self, payload: dict[str, Any] | None = None) -> None:
        chain_id = payload.get("chainId") if isinstance(payload, dict) else None
        logger.debug("Ditto Provider: connect fired: {}", chain_id)
        if isinstance(chain_id, str) and chain_id:
            self._chain_id = int(chain_id, 16)

    def _on_accounts_changed(self, accounts: list[str]) -> None:
        logger.debug("Ditto Provider: accountsChanged fired: {}", accounts)
        self._accounts = list(accounts)
