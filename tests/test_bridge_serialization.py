import pytest

from niomon.bridge.protocol import DITTO, WALLET_AUTH
from niomon.bridge.serialization import (
    decode_envelope,
    decode_payload,
    encode_notification,
    encode_request,
    encode_response,
)
from niomon.utils.exceptions import DecodeError


def test_encode_request_matches_wire_shape():
    assert encode_request(DITTO, 7, "eth_accounts", [1]) == {
        "channelType": "ditto_message",
        "method": "ditto_request",
        "payload": {"jsonrpc": "2.0", "method": "eth_accounts", "params": [1], "id": 7},
    }


def test_family_tags():
    assert WALLET_AUTH.channel_type == "wallet_auth_message"
    assert WALLET_AUTH.request_method == "wallet_auth_request"
    assert DITTO.ready == "ditto_ready"
    assert DITTO.mode == "ditto_mode"
    assert DITTO.did_logout == "ditto_did_logout"
    assert DITTO.logout == "ditto_logout"


def test_decode_envelope_ignores_foreign_traffic():
    assert decode_envelope("hello", DITTO) is None
    assert decode_envelope({"channelType": "wallet_auth_message", "payload": {}}, DITTO) is None
    assert decode_envelope({"payload": {"jsonrpc": "2.0", "id": 1, "result": 1}}, DITTO) is None


def test_decode_envelope_accepts_legacy_type_key():
    envelope = decode_envelope(
        {"type": "ditto_message", "method": "ditto_request", "payload": {"jsonrpc": "2.0", "id": 3, "result": "ok"}},
        DITTO,
    )
    assert envelope is not None
    assert envelope.payload.id == 3
    assert envelope.payload.result == "ok"


def test_decode_envelope_keeps_envelope_when_body_is_malformed():
    envelope = decode_envelope({"channelType": "wallet_auth_message", "method": "wallet_auth_ready"}, WALLET_AUTH)
    assert envelope is not None
    assert envelope.method == "wallet_auth_ready"
    assert envelope.payload is None


def test_null_result_counts_as_response():
    payload = decode_payload({"jsonrpc": "2.0", "id": 2, "result": None})
    assert payload.is_response
    assert payload.has_result and not payload.has_error


def test_error_wins_over_result():
    payload = decode_payload({"jsonrpc": "2.0", "id": 2, "result": None, "error": {"code": 1, "message": "x"}})
    assert payload.has_error and not payload.has_result


def test_request_payload_is_not_a_response():
    payload = decode_payload({"jsonrpc": "2.0", "id": 4, "method": "ping", "params": {}})
    assert not payload.is_response
    assert payload.method == "ping"


@pytest.mark.parametrize("raw_id", [None, 0, -1, True, "1", 1.5])
def test_invalid_ids_decode_as_missing(raw_id):
    payload = decode_payload({"jsonrpc": "2.0", "id": raw_id, "result": 1})
    assert payload.id is None


def test_decode_payload_rejects_non_jsonrpc():
    with pytest.raises(DecodeError):
        decode_payload({"jsonrpc": "1.0", "id": 1})
    with pytest.raises(DecodeError):
        decode_payload(["not", "an", "object"])


def test_encode_notification_and_response():
    note = encode_notification(DITTO, "ditto_mode", ["focused"])
    assert note["method"] == "ditto_mode"
    assert note["payload"] == {"jsonrpc": "2.0", "method": "ditto_mode", "params": ["focused"]}

    err = encode_response(DITTO, 5, error={"code": 4001, "message": "no"})
    assert err["payload"] == {"jsonrpc": "2.0", "id": 5, "error": {"code": 4001, "message": "no"}}
    ok = encode_response(DITTO, 5, result=None)
    assert ok["payload"] == {"jsonrpc": "2.0", "id": 5, "result": None}
