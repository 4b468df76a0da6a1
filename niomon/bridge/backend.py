"""Request/response + notification bridges over a message-passing window."""

from __future__ import annotations

import json
from typing import Any, Callable, ClassVar, Protocol

from loguru import logger

from niomon.bridge.channel import MessageEvent, Window
from niomon.bridge.correlation import PendingRequests
from niomon.bridge.events import BridgeEvent, DidLogout, EventHandler, Message, Ready, event_from_remote
from niomon.bridge.protocol import DITTO, ETH_SUBSCRIPTION, BridgeFamily, MessageEnvelope, RpcPayload
from niomon.bridge.serialization import decode_envelope, encode_request


class ProviderBackend(Protocol):
    """Request/event surface shared by bridges and the provider façade."""

    async def request(self, method: str, params: Any = None) -> Any: ...

    def on_event(self, handler: EventHandler) -> None: ...

    async def logout(self) -> None: ...


class WebMessageBridge:
    """
    Base bridge: correlation + intake pipeline for one remote context.

    Inbound messages pass, in order: source identity, envelope tag, notification
    dispatch, response dispatch. Each step drops what it does not accept.
    Subclasses choose the transport and the notification vocabulary.
    """

    NOTIFICATIONS: ClassVar[tuple[str, ...]] = ("ready", "event", "subscription")

    def __init__(
        self,
        target_window: Window,
        target_origin: str,
        *,
        listen_window: Window,
        family: BridgeFamily = DITTO,
    ):
        self.target_window = target_window
        self.target_origin = target_origin
        self.family = family
        self._listen_window = listen_window
        self._pending = PendingRequests(label=f"{family.name} bridge")
        self._event_handler: EventHandler | None = None
        self._post: Callable[[dict[str, Any]], None] = self._post_web_message
        listen_window.add_message_listener(self._on_message)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def request(self, method: str, params: Any = None) -> Any:
        """Send a request and wait for its response; rejects with the remote error."""
        request_id = self._pending.next_id()
        future = self._pending.expect(request_id)
        try:
            self._post(encode_request(self.family, request_id, method, params))
        except Exception:
            self._pending.discard(request_id)
            raise
        return await future

    def on_event(self, handler: EventHandler) -> None:
        """Register the single event handler; a new one replaces the previous."""
        self._event_handler = handler

    async def logout(self) -> None:
        logger.debug("{} bridge: logout", self.family.name)
        await self.request(self.family.logout)

    def close(self) -> None:
        self._listen_window.remove_message_listener(self._on_message)

    def _expected_source(self) -> Any:
        return self.target_window

    def _post_web_message(self, message: dict[str, Any]) -> None:
        self.target_window.post_message(message, self.target_origin)

    def _emit(self, event: BridgeEvent) -> None:
        logger.debug("{} bridge: {} emitted: {}", self.family.name, event.name, event.args)
        if self._event_handler is not None:
            self._event_handler(event)

    def _on_message(self, event: MessageEvent) -> None:
        if event.source is None or event.source is not self._expected_source():
            return
        envelope = decode_envelope(event.data, self.family)
        if envelope is None:
            return
        payload = envelope.payload
        if payload is None:
            self._handle_envelope_only(envelope)
            return
        logger.debug("{} bridge: got message {}", self.family.name, payload.method or payload.id)
        self._dispatch_notification(payload)
        if payload.is_response:
            self._pending.resolve(
                payload.id,
                payload.error if payload.has_error else None,
                payload.result,
            )

    def _handle_envelope_only(self, envelope: MessageEnvelope) -> None:
        if envelope.method == self.family.ready and "ready" in self.NOTIFICATIONS:
            self._emit(Ready(family=self.family.name))

    def _dispatch_notification(self, payload: RpcPayload) -> None:
        method = payload.method
        if method is None or payload.is_response:
            return
        vocab = self.NOTIFICATIONS
        if method == self.family.ready and "ready" in vocab:
            self._emit(Ready(family=self.family.name))
        elif method == self.family.did_logout and "did_logout" in vocab:
            self._emit(DidLogout(family=self.family.name))
        elif method == self.family.event and "event" in vocab:
            params = payload.params
            if not isinstance(params, list) or not params or not isinstance(params[0], str):
                logger.warning("{} bridge: received invalid event payload: {}", self.family.name, params)
                return
            name, *args = params
            self._emit(event_from_remote(name, args))
        elif method == ETH_SUBSCRIPTION and "subscription" in vocab:
            self._emit(Message(data=payload.params))


class WidgetBridge(WebMessageBridge):
    """Bridge to an embedded widget; traffic must come from the widget's content window."""

    NOTIFICATIONS = ("ready", "did_logout", "event", "subscription")

    def __init__(
        self,
        content_window: Window,
        origin: str,
        *,
        host_window: Window,
        family: BridgeFamily = DITTO,
    ):
        super().__init__(content_window, origin, listen_window=host_window, family=family)


class ExternalProviderBridge(WebMessageBridge):
    """
    Bridge to an external provider living behind the host window itself.

    The counterpart may be injected native code rather than an embedded document, so
    the expected source is the whole window. Windows exposing a native host receive
    JSON strings through it; otherwise messages are posted to the window.
    """

    NOTIFICATIONS = ("ready", "event", "subscription")

    def __init__(self, window: Window, target_origin: str = "*", *, family: BridgeFamily = DITTO):
        super().__init__(window, target_origin, listen_window=window, family=family)
        native_post = getattr(window, "native_post", None)
        if callable(native_post):
            logger.debug("{} bridge: using native host transport", family.name)
            self._post = lambda message: native_post(json.dumps(message, ensure_ascii=False))
        elif target_origin == "*":
            logger.warning("postMessage targetOrigin should be restricted, the wildcard case is for development only")
