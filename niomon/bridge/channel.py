"""Collaborator interfaces for the isolated context a bridge talks to.

Concrete hosts (a browser shell, a native webview, a test harness) implement these;
the bridge core only depends on the protocols below.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Protocol, runtime_checkable

from loguru import logger


class WidgetMode(str, Enum):
    """Presentation state of the remote context."""

    HIDDEN = "hidden"
    MINIMIZED = "minimized"
    FOCUSED = "focused"


@dataclass(slots=True)
class MessageEvent:
    """One inbound message as seen by the host."""

    data: Any
    origin: str = ""
    source: Any = None


MessageListener = Callable[[MessageEvent], None]


@runtime_checkable
class Window(Protocol):
    """Message-passing endpoint of an execution context."""

    def post_message(self, message: Any, target_origin: str) -> None: ...

    def add_message_listener(self, listener: MessageListener) -> None: ...

    def remove_message_listener(self, listener: MessageListener) -> None: ...


class ContextHandle(Protocol):
    """An attached isolated context (iframe, webview)."""

    @property
    def content_window(self) -> Window | None: ...

    def focus(self) -> None: ...

    def blur(self) -> None: ...

    def remove(self) -> None: ...


class ContextFactory(Protocol):
    def create_context(self, parent: Window, url: str, element_id: str) -> ContextHandle:
        """Attach a context at ``url``, replacing any existing one with ``element_id``."""
        ...


class Renderer(Protocol):
    def render(self, handle: ContextHandle, mode: WidgetMode) -> None: ...


class NullRenderer:
    """Renderer for hosts without a visual surface."""

    def render(self, handle: ContextHandle, mode: WidgetMode) -> None:
        return None


class LocalWindow:
    """
    In-process window.

    ``post_message`` delivers to this window's own listeners with the window as source,
    the same way a page posting to itself behaves. When ``native_post`` is set the
    window fronts a native host that receives JSON strings instead.
    """

    def __init__(self, origin: str = "", native_post: Callable[[str], None] | None = None):
        self.origin = origin
        self.native_post = native_post
        self._listeners: list[MessageListener] = []

    def add_message_listener(self, listener: MessageListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_message_listener(self, listener: MessageListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def post_message(self, message: Any, target_origin: str = "*") -> None:
        if target_origin not in ("*", "/") and self.origin and not target_origin.startswith(self.origin):
            logger.debug("LocalWindow: dropping message for origin {}", target_origin)
            return
        self.dispatch(message, origin=self.origin, source=self)

    def post_native(self, message: Any) -> None:
        if self.native_post is None:
            raise RuntimeError("window has no native host")
        self.native_post(json.dumps(message, ensure_ascii=False))

    def dispatch(self, data: Any, *, origin: str = "", source: Any = None) -> None:
        """Deliver an inbound message to every listener."""
        event = MessageEvent(data=data, origin=origin, source=source)
        for listener in list(self._listeners):
            listener(event)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)
