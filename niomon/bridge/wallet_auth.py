"""Hidden wallet authentication widget with its own request channel."""

from __future__ import annotations

import asyncio
from typing import Any
from urllib.parse import urlencode

from niomon.bridge.backend import WebMessageBridge
from niomon.bridge.channel import ContextFactory, Renderer, WidgetMode, Window
from niomon.bridge.protocol import WALLET_AUTH
from niomon.bridge.widget import WidgetContainer
from niomon.utils.helpers import resolve_service_host

WALLET_AUTH_CONTAINER_ID = "wallet-auth-widget-container"


def wallet_auth_widget_url(base_url: str, tenant: str, zone: str, app_id: str) -> str:
    query = urlencode({"appId": app_id, "tenant": tenant, "zone": zone})
    return f"{resolve_service_host(base_url, 'app')}/#/wallet?{query}"


class WalletAuthWidget(WebMessageBridge):
    """
    Wallet authentication widget: an always-hidden ``wallet_auth`` context.

    Combines the lifecycle controller (readiness) with the shared correlation
    layer; ``on_ready`` resolves with the widget itself so calls can be chained.
    """

    NOTIFICATIONS = ()

    def __init__(
        self,
        target_window: Window,
        base_url: str,
        tenant: str,
        zone: str,
        app_id: str,
        *,
        context_factory: ContextFactory,
        renderer: Renderer | None = None,
    ):
        self.base_url = resolve_service_host(base_url, "app")
        self.container = WidgetContainer(
            target_window,
            wallet_auth_widget_url(base_url, tenant, zone, app_id),
            context_factory=context_factory,
            renderer=renderer,
            family=WALLET_AUTH,
            element_id=WALLET_AUTH_CONTAINER_ID,
            allowed_modes=frozenset({WidgetMode.HIDDEN}),
        )
        super().__init__(
            self.container.content_window,  # type: ignore[arg-type]
            self.container.origin,
            listen_window=target_window,
            family=WALLET_AUTH,
        )
        self._ready: asyncio.Future[WalletAuthWidget] | None = None

    @property
    def origin(self) -> str:
        return self.container.origin

    @property
    def content_window(self) -> Window | None:
        return self.container.content_window

    @property
    def is_ready(self) -> bool:
        return self.container.is_ready

    @property
    def on_ready(self) -> asyncio.Future[WalletAuthWidget]:
        if self._ready is None:
            loop = asyncio.get_running_loop()
            self._ready = loop.create_future()
            self.container.on_ready.add_done_callback(self._settle_ready)
        return self._ready

    def _settle_ready(self, _: asyncio.Future[WidgetContainer]) -> None:
        if self._ready is not None and not self._ready.done():
            self._ready.set_result(self)

    def _expected_source(self) -> Any:
        return self.container.content_window

    def _post_web_message(self, message: dict[str, Any]) -> None:
        window = self.container.content_window
        if window is None:
            raise RuntimeError("wallet auth widget has no content window")
        window.post_message(message, self.origin)

    def close(self) -> None:
        super().close()
        self.container.close()
