"""Serialization helpers for bridge message envelopes."""

from __future__ import annotations

from typing import Any

from niomon.bridge.protocol import JSONRPC_VERSION, BridgeFamily, MessageEnvelope, RpcPayload
from niomon.utils.exceptions import DecodeError

_LEGACY_TAG_KEY = "type"
_TAG_KEY = "channelType"


def safe_dict(value: Any) -> dict[str, Any]:
    """Return the value when dict-like, otherwise an empty dict."""
    return value if isinstance(value, dict) else {}


def encode_request(family: BridgeFamily, request_id: int, method: str, params: Any = None) -> dict[str, Any]:
    """Encode a request expecting a response into a bridge envelope."""
    return {
        _TAG_KEY: family.channel_type,
        "method": family.request_method,
        "payload": {
            "jsonrpc": JSONRPC_VERSION,
            "method": method,
            "params": params,
            "id": request_id,
        },
    }


def encode_response(
    family: BridgeFamily,
    request_id: int | None,
    *,
    result: Any = None,
    error: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Encode a response envelope (used by remote-side hosts and native shims)."""
    payload: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "id": request_id}
    if error is not None:
        payload["error"] = error
    else:
        payload["result"] = result
    return {_TAG_KEY: family.channel_type, "method": family.request_method, "payload": payload}


def encode_notification(family: BridgeFamily, method: str, params: Any = None) -> dict[str, Any]:
    """Encode a notification; the notification name doubles as envelope method."""
    payload: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "method": method}
    if params is not None:
        payload["params"] = params
    return {_TAG_KEY: family.channel_type, "method": method, "payload": payload}


def _coerce_id(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value if value > 0 else None


def decode_payload(raw: Any) -> RpcPayload:
    """Validate a JSON-RPC 2.0 body; raises DecodeError when malformed."""
    if not isinstance(raw, dict):
        raise DecodeError("payload is not an object", source="bridge")
    if raw.get("jsonrpc") != JSONRPC_VERSION:
        raise DecodeError("payload is not JSON-RPC 2.0", source="bridge")
    method = raw.get("method")
    has_error = raw.get("error") is not None
    # An explicit null result is still a response; a non-null error wins over it.
    has_result = "result" in raw and not has_error
    return RpcPayload(
        method=method if isinstance(method, str) else None,
        params=raw.get("params"),
        id=_coerce_id(raw.get("id")),
        result=raw.get("result"),
        error=raw.get("error"),
        has_result=has_result,
        has_error=has_error,
    )


def decode_envelope(data: Any, family: BridgeFamily) -> MessageEnvelope | None:
    """
    Decode a raw inbound message.

    Returns None for foreign traffic (not an object, or a different tag). A matching
    envelope with a malformed body is returned with ``payload=None``.
    """
    row = safe_dict(data)
    tag = row.get(_TAG_KEY, row.get(_LEGACY_TAG_KEY))
    if tag != family.channel_type:
        return None
    method = row.get("method")
    try:
        payload = decode_payload(row.get("payload"))
    except DecodeError:
        payload = None
    return MessageEnvelope(
        channel_type=tag,
        method=method if isinstance(method, str) else None,
        payload=payload,
        raw=row,
    )
