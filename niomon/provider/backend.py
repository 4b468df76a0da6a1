"""
Browser provider backend: routes EIP-1193 calls to the widget bridge or the direct
JSON-RPC endpoint, and gates bridged calls on the OAuth session.
"""

from __future__ import annotations

import asyncio
import time
from enum import Enum
from typing import Any, Callable, Coroutine
from urllib.parse import urlsplit, urlunsplit

import httpx
from loguru import logger
from pydantic import ValidationError

from niomon.auth.client import NiomonClient
from niomon.auth.popup import Navigator, PopupOpener
from niomon.auth.storage import KeyValueStore
from niomon.auth.token_manager import TokenManager
from niomon.bridge.backend import WidgetBridge
from niomon.bridge.channel import ContextFactory, Renderer, Window
from niomon.bridge.events import AccountsChanged, BridgeEvent, Close, Connected, DidLogout, EventHandler, Ready
from niomon.bridge.widget import WidgetContainer, ditto_widget_url
from niomon.config.schema import ClientConfig, ProviderConfig, SessionConfig
from niomon.provider.rpc import JsonRpcEndpoint, build_rpc_endpoint
from niomon.utils.exceptions import (
    BridgeInitError,
    BridgeRpcError,
    ConfigurationError,
    DecodeError,
    NiomonError,
    ProviderRpcError,
    sanitize_error_message,
)
from niomon.utils.helpers import resolve_service_host

ETHEREUM_INIT_METHOD = "ditto_ethereum_init"
# Widget error code meaning its session is gone.
SESSION_GONE_CODE = 1

SIGNING_METHODS = frozenset({"eth_sign", "personal_sign", "eth_sendTransaction", "eth_signTransaction"})
BRIDGED_METHODS = SIGNING_METHODS | {"eth_accounts", "eth_requestAccounts"}


class BridgeState(str, Enum):
    UNSTARTED = "unstarted"
    CONSTRUCTING = "constructing"
    READY = "ready"


def parse_provider_config(options: ProviderConfig | dict[str, Any]) -> ProviderConfig:
    if isinstance(options, ProviderConfig):
        return options
    try:
        return ProviderConfig.model_validate(options)
    except ValidationError as e:
        raise ConfigurationError(f"invalid provider options: {e}") from e


class BrowserProviderBackend:
    """
    Provider backend for hosts embedding the Ditto widget.

    The widget bridge is built on first use; concurrent first callers share one
    construction. Account/signing methods go through the bridge after a session
    init call carrying the access token; everything else hits the JSON-RPC endpoint.
    """

    def __init__(
        self,
        options: ProviderConfig | dict[str, Any],
        *,
        window: Window,
        context_factory: ContextFactory,
        renderer: Renderer | None = None,
        client: NiomonClient | None = None,
        rpc: JsonRpcEndpoint | None = None,
        session: SessionConfig | None = None,
        token_manager: TokenManager | None = None,
        auth_state_store: KeyValueStore | None = None,
        popup_opener: PopupOpener | None = None,
        navigator: Navigator | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.options = parse_provider_config(options)
        self.base_url = self.options.base_url
        self.app_id = self.options.app_id
        self.chain_id = self.options.chain_id
        self.window = window
        self.navigator = navigator
        self._context_factory = context_factory
        self._renderer = renderer
        self.client = client or NiomonClient(
            ClientConfig(
                base_url=self.base_url,
                client_id=self.app_id,
                redirect_uri=self.options.redirect_uri or self._default_redirect_uri(),
            ),
            token_manager,
            session=session,
            transport=transport,
            auth_state_store=auth_state_store,
            window=window,
            popup_opener=popup_opener,
            navigator=navigator,
            clock=clock,
        )
        self.rpc = rpc or build_rpc_endpoint(self.options, transport=transport)
        self.accounts: list[str] | None = None
        self.container: WidgetContainer | None = None
        self._event_handler: EventHandler | None = None
        self._bridge: WidgetBridge | None = None
        self._bridge_task: asyncio.Task[WidgetBridge] | None = None
        self._tasks: set[asyncio.Task[Any]] = set()
        self._pending_connect: Connected | None = Connected(chain_id=hex(self.chain_id))
        try:
            asyncio.get_running_loop().call_soon(self._deliver_connect)
            self._connect_scheduled = True
        except RuntimeError:
            # No loop yet: delivered when a handler registers.
            self._connect_scheduled = False

    @property
    def bridge_state(self) -> BridgeState:
        if self._bridge is not None:
            return BridgeState.READY
        if self._bridge_task is not None:
            return BridgeState.CONSTRUCTING
        return BridgeState.UNSTARTED

    async def request(self, method: str, params: Any = None) -> Any:
        if isinstance(params, list):
            params_list = params
        else:
            params_list = [] if params is None else [params]

        if method == "eth_accounts":
            if self.accounts is not None:
                return list(self.accounts)
            accounts = self._accounts_from(await self._bridge_request("eth_accounts"))
            return self._handle_accounts_changed(accounts)
        if method == "eth_requestAccounts":
            return await self._request_accounts()
        if method in SIGNING_METHODS:
            return await self._bridge_request(method, params_list)
        return await self.rpc.send(method, params_list)

    def on_event(self, handler: EventHandler) -> None:
        self._event_handler = handler
        if not self._connect_scheduled:
            self._flush_connect()

    async def logout(self) -> None:
        bridge = await self._get_bridge()
        await bridge.logout()

    async def aclose(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._bridge is not None:
            self._bridge.close()
        if self.container is not None:
            self.container.close()
        await self.client.aclose()
        await self.rpc.aclose()

    def _default_redirect_uri(self) -> str:
        origin = getattr(self.window, "origin", "")
        if isinstance(origin, str) and origin:
            return origin
        return resolve_service_host(self.base_url, "app")

    def _deliver_connect(self) -> None:
        self._connect_scheduled = False
        self._flush_connect()

    def _flush_connect(self) -> None:
        if self._pending_connect is None or self._event_handler is None:
            return
        event, self._pending_connect = self._pending_connect, None
        self._emit(event)

    def _emit(self, event: BridgeEvent) -> None:
        if self._event_handler is not None:
            self._event_handler(event)

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning("Ditto Provider: background task failed: {}", task.exception())

    @staticmethod
    def _accounts_from(result: Any) -> list[str]:
        if not isinstance(result, list) or not all(isinstance(a, str) for a in result):
            raise DecodeError(f"invalid accounts result: {result!r}", source="eth_accounts")
        return result

    def _handle_accounts_changed(self, accounts: list[str]) -> list[str]:
        if self.accounts != accounts:
            # The first observation after login sets the baseline silently.
            if self.accounts is not None:
                self._emit(AccountsChanged(accounts=list(accounts)))
            self.accounts = list(accounts)
        return accounts

    async def _session_token(self) -> str | None:
        """Access token for bridged calls; an unrecoverable expired session is logged out."""
        status = await self.client.authentication_status()
        if status is None:
            return await self.client.get_token_silently()
        if status.expired:
            logger.info("Ditto Provider: session expired and could not be refreshed, logging out")
            await self.client.logout()
            return None
        return status.access_token

    async def _request_accounts(self) -> list[str]:
        try:
            token = await self._session_token()
            if not token:
                if self.navigator is not None:
                    parts = urlsplit(self.navigator.current_url())
                    self.client.set_redirect_uri(urlunsplit(parts._replace(query="")))
                await self.client.get_token_with_popup()

            accounts = self._accounts_from(await self._bridge_request("eth_accounts"))
            self._handle_accounts_changed(accounts)
            return accounts
        except (NiomonError, httpx.HTTPError) as e:
            message = e.message if isinstance(e, NiomonError) else str(e)
            logger.warning("Ditto Provider: requestAccounts failed: {}", sanitize_error_message(message))
            # Lets host UI drop its "connecting" state.
            self._emit(Close())
            raise ProviderRpcError.user_rejected(message) from e

    async def _bridge_request(self, method: str, params: Any = None) -> Any:
        token = await self._session_token()
        if not token:
            raise ProviderRpcError.user_rejected()

        logger.debug("Ditto Provider: sending request to Ditto Bridge: {}", method)
        try:
            bridge = await self._get_bridge()
            success = await bridge.request(
                ETHEREUM_INIT_METHOD,
                [{"tokens": [token], "dittoToken": token}],
            )
            if not success:
                raise BridgeInitError()
            result = await bridge.request(method, params)
        except NiomonError as e:
            logger.error("Ditto Provider: error occurred: {}: {}", method, e)
            if isinstance(e, BridgeRpcError) and e.code == SESSION_GONE_CODE:
                self._spawn(self.logout())
            raise
        logger.debug("Ditto Provider: {} response received", method)
        return result

    def _on_bridge_event(self, event: BridgeEvent) -> None:
        if isinstance(event, DidLogout):
            self._did_logout()
        elif isinstance(event, AccountsChanged):
            self._handle_accounts_changed(event.accounts)
        elif not isinstance(event, Ready):
            self._emit(event)

    def _did_logout(self) -> None:
        logger.info("Ditto Provider: widget session ended")
        self._spawn(self.client.logout())
        self._handle_accounts_changed([])
        self._emit(Close())

    async def _get_bridge(self) -> WidgetBridge:
        if self._bridge is not None:
            return self._bridge
        if self._bridge_task is None:
            self._bridge_task = asyncio.ensure_future(self._construct_bridge())
        task = self._bridge_task
        try:
            # Shielded: a cancelled caller must not abort the shared construction.
            return await asyncio.shield(task)
        except Exception:
            # Only the first failing waiter resets; a retry may already be underway.
            if self._bridge_task is task:
                self._bridge_task = None
                if self.container is not None:
                    self.container.close()
                    self.container = None
            raise

    async def _construct_bridge(self) -> WidgetBridge:
        if self.container is not None:
            self.container.close()
            self.container = None
        self.container = WidgetContainer(
            self.window,
            ditto_widget_url(self.base_url, self.app_id, self.chain_id),
            context_factory=self._context_factory,
            renderer=self._renderer,
        )
        container = await self.container.on_ready
        content_window = container.content_window
        if content_window is None:
            raise BridgeInitError("widget has no content window")
        bridge = WidgetBridge(content_window, container.origin, host_window=self.window)
        bridge.on_event(self._on_bridge_event)
        self._bridge = bridge
        return bridge
