"""Lifecycle controller for an embedded widget context."""

from __future__ import annotations

import asyncio
from typing import Any
from urllib.parse import urlencode

from loguru import logger

from niomon.bridge.channel import (
    ContextFactory,
    ContextHandle,
    MessageEvent,
    NullRenderer,
    Renderer,
    WidgetMode,
    Window,
)
from niomon.bridge.protocol import DITTO, BridgeFamily
from niomon.bridge.serialization import decode_envelope
from niomon.utils.helpers import resolve_service_host

WIDGET_CONTAINER_ID = "ditto-widget-container"


def ditto_widget_url(base_url: str, app_id: str, chain_id: int) -> str:
    query = urlencode({"chainId": chain_id, "appId": app_id})
    return f"{resolve_service_host(base_url, 'app')}/#/ditto/widget?{query}"


class WidgetContainer:
    """
    Owns one remote context: its identity, readiness and visibility mode.

    Only messages whose source is the widget's own content window are looked at.
    ``on_ready`` resolves with the container the first time ``<family>_ready``
    arrives and never regresses.
    """

    def __init__(
        self,
        target_window: Window,
        url: str,
        *,
        context_factory: ContextFactory,
        renderer: Renderer | None = None,
        family: BridgeFamily = DITTO,
        element_id: str = WIDGET_CONTAINER_ID,
        allowed_modes: frozenset[WidgetMode] | None = None,
    ):
        self.origin = url
        self.family = family
        self._target_window = target_window
        self._renderer = renderer or NullRenderer()
        self._allowed_modes = allowed_modes or frozenset(WidgetMode)
        self._mode = WidgetMode.HIDDEN
        self._is_ready = False
        self._ready: asyncio.Future[WidgetContainer] | None = None
        self._handle: ContextHandle = context_factory.create_context(target_window, url, element_id)
        target_window.add_message_listener(self._on_message)
        self._render()

    @property
    def content_window(self) -> Window | None:
        return self._handle.content_window

    @property
    def is_ready(self) -> bool:
        return self._is_ready

    @property
    def on_ready(self) -> asyncio.Future[WidgetContainer]:
        """Awaitable resolved with this container once the widget announced readiness."""
        if self._ready is None:
            self._ready = asyncio.get_running_loop().create_future()
            if self._is_ready:
                self._ready.set_result(self)
        return self._ready

    @property
    def mode(self) -> WidgetMode:
        return self._mode

    @mode.setter
    def mode(self, mode: WidgetMode | str) -> None:
        self.set_mode(mode)

    def set_mode(self, mode: Any) -> bool:
        """Apply a mode; unknown values are ignored and leave the current mode in place."""
        try:
            resolved = WidgetMode(mode)
        except (TypeError, ValueError):
            logger.warning("{} widget: ignoring unknown mode {!r}", self.family.name, mode)
            return False
        if resolved not in self._allowed_modes:
            logger.warning("{} widget: mode {} is not supported here", self.family.name, resolved.value)
            return False
        logger.debug("{} widget: set mode: {}", self.family.name, resolved.value)
        self._mode = resolved
        self._render()
        return True

    def close(self) -> None:
        """Stop listening and detach the context."""
        self._target_window.remove_message_listener(self._on_message)
        self._handle.remove()

    def _mark_ready(self) -> None:
        if self._is_ready:
            logger.debug("{} widget: duplicate ready notification ignored", self.family.name)
            return
        self._is_ready = True
        logger.debug("{} widget: ready", self.family.name)
        if self._ready is not None and not self._ready.done():
            self._ready.set_result(self)

    def _on_message(self, event: MessageEvent) -> None:
        if event.source is None or event.source is not self.content_window:
            return
        envelope = decode_envelope(event.data, self.family)
        if envelope is None:
            return
        if envelope.method == self.family.ready:
            self._mark_ready()
            return
        payload = envelope.payload
        if payload is None:
            return
        if payload.method == self.family.ready:
            self._mark_ready()
        elif payload.method == self.family.mode:
            params = payload.positional_params
            if not params:
                logger.warning("{} widget: mode notification without a mode", self.family.name)
                return
            self.set_mode(params[0])

    def _render(self) -> None:
        self._renderer.render(self._handle, self._mode)
        if self._mode == WidgetMode.FOCUSED:
            self._handle.focus()
        else:
            self._handle.blur()
