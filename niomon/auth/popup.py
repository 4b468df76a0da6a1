"""Popup login: open the authorization page and wait for its web message."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Protocol

from loguru import logger
from pydantic import ValidationError

from niomon.auth.models import AuthorizationResponse
from niomon.bridge.channel import MessageEvent, Window
from niomon.utils.exceptions import AuthorizationError, DecodeError, PopupClosedError

AUTHORIZATION_RESPONSE = "authorization_response"


class PopupHandle(Protocol):
    @property
    def closed(self) -> bool: ...

    def close(self) -> None: ...


class PopupOpener(Protocol):
    def open(self, url: str, features: str) -> PopupHandle | None:
        """Open a popup; ``None`` means the host blocked it."""
        ...


class Navigator(Protocol):
    """Top-level location of the host, used by the redirect flow."""

    def current_url(self) -> str: ...

    def assign(self, url: str) -> None: ...


@dataclass(frozen=True)
class Viewport:
    screen_x: float = 0
    screen_y: float = 0
    inner_width: float = 1280
    inner_height: float = 800


def popup_features(width: int, height: int, viewport: Viewport | None = None) -> str:
    """Window features for a popup centred on the host viewport."""
    vp = viewport or Viewport()
    left = vp.screen_x + (vp.inner_width - width) / 2
    top = vp.screen_y + (vp.inner_height - height) / 2
    return f"left={left:g},top={top:g},width={width},height={height},resizable,scrollbars=yes,status=1"


async def wait_authorization_response(
    popup: PopupHandle,
    window: Window,
    origin: str,
    poll_interval: float = 1.0,
) -> AuthorizationResponse:
    """
    Wait for the single ``authorization_response`` message posted by ``popup``.

    Messages from other origins or sources, and messages without a type, are ignored.
    The popup is closed once the response arrives. A poll every ``poll_interval``
    seconds rejects the wait with PopupClosedError if the user closed the popup.
    """
    loop = asyncio.get_running_loop()
    future: asyncio.Future[Any] = loop.create_future()

    def _on_message(event: MessageEvent) -> None:
        if event.origin != origin or event.source is not popup:
            return
        data = event.data
        if not isinstance(data, dict) or not data.get("type"):
            return
        if data["type"] != AUTHORIZATION_RESPONSE or future.done():
            return
        popup.close()
        if data.get("error"):
            future.set_exception(AuthorizationError(data["error"]))
        else:
            future.set_result(data.get("response"))

    async def _poll_closed() -> None:
        while not future.done():
            await asyncio.sleep(poll_interval)
            if popup.closed and not future.done():
                logger.debug("Authorization popup closed before responding")
                future.set_exception(PopupClosedError())

    window.add_message_listener(_on_message)
    poller = asyncio.create_task(_poll_closed())
    try:
        response = await future
    finally:
        window.remove_message_listener(_on_message)
        poller.cancel()

    try:
        return AuthorizationResponse.model_validate(response)
    except ValidationError as e:
        raise DecodeError(f"invalid authorization response: {e}", source=AUTHORIZATION_RESPONSE) from e
