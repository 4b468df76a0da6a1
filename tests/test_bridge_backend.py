import asyncio
import json
import random

import pytest

from niomon.bridge.backend import ExternalProviderBridge, WidgetBridge
from niomon.bridge.channel import LocalWindow
from niomon.bridge.events import AccountsChanged, DidLogout, Message, Ready, RemoteEvent
from niomon.bridge.protocol import DITTO
from niomon.bridge.serialization import encode_notification, encode_response
from niomon.utils.exceptions import BridgeRpcError

ORIGIN = "https://app.niomon.dev"


class _RemoteWindow:
    """Widget side of the channel: records what the host posts, replies into the host."""

    def __init__(self, host: LocalWindow):
        self.host = host
        self.inbox: list[tuple[dict, str]] = []

    def post_message(self, message, target_origin):
        self.inbox.append((message, target_origin))

    def add_message_listener(self, listener):
        pass

    def remove_message_listener(self, listener):
        pass

    def reply(self, data):
        self.host.dispatch(data, origin=ORIGIN, source=self)


class _BrokenWindow(_RemoteWindow):
    def post_message(self, message, target_origin):
        raise RuntimeError("detached")


def _bridge():
    host = LocalWindow(origin="https://host.example")
    remote = _RemoteWindow(host)
    return host, remote, WidgetBridge(remote, ORIGIN, host_window=host)


@pytest.mark.asyncio
async def test_request_ignores_wrong_tag_and_wrong_source_until_real_reply():
    host, remote, bridge = _bridge()
    task = asyncio.create_task(bridge.request("ping", {}))
    await asyncio.sleep(0)

    sent, target = remote.inbox[0]
    assert target == ORIGIN
    assert sent == {
        "channelType": "ditto_message",
        "method": "ditto_request",
        "payload": {"jsonrpc": "2.0", "method": "ping", "params": {}, "id": 1},
    }

    remote.reply({"channelType": "other_message", "payload": {"jsonrpc": "2.0", "id": 1, "result": "nope"}})
    await asyncio.sleep(0)
    assert not task.done()

    host.dispatch(encode_response(DITTO, 1, result="spoofed"), origin=ORIGIN, source=object())
    await asyncio.sleep(0)
    assert not task.done()

    remote.reply(encode_response(DITTO, 1, result="pong"))
    assert await task == "pong"
    assert bridge.pending_count == 0


@pytest.mark.asyncio
async def test_concurrent_requests_resolve_by_id_in_any_reply_order():
    _, remote, bridge = _bridge()
    tasks = [asyncio.create_task(bridge.request(f"method_{i}")) for i in range(6)]
    await asyncio.sleep(0)

    ids = [message["payload"]["id"] for message, _ in remote.inbox]
    assert ids == [1, 2, 3, 4, 5, 6]
    shuffled = ids[:]
    random.Random(7).shuffle(shuffled)
    for request_id in shuffled:
        remote.reply(encode_response(DITTO, request_id, result=f"result-{request_id}"))

    results = await asyncio.gather(*tasks)
    assert results == [f"result-{i}" for i in ids]


@pytest.mark.asyncio
async def test_stale_and_unknown_responses_have_no_effect():
    _, remote, bridge = _bridge()
    first = asyncio.create_task(bridge.request("a"))
    second = asyncio.create_task(bridge.request("b"))
    await asyncio.sleep(0)

    remote.reply(encode_response(DITTO, 1, result="one"))
    assert await first == "one"

    remote.reply(encode_response(DITTO, 1, result="duplicate"))
    remote.reply(encode_response(DITTO, 99, result="unknown"))
    remote.reply({"channelType": "ditto_message", "payload": {"jsonrpc": "2.0", "result": "no id"}})
    await asyncio.sleep(0)
    assert not second.done()
    assert bridge.pending_count == 1

    remote.reply(encode_response(DITTO, 2, result="two"))
    assert await second == "two"


@pytest.mark.asyncio
async def test_remote_error_is_propagated_verbatim():
    _, remote, bridge = _bridge()
    task = asyncio.create_task(bridge.request("eth_sign", ["0xabc", "0x00"]))
    await asyncio.sleep(0)

    error = {"code": 4001, "message": "User rejected the request.", "data": {"origin": "widget"}}
    remote.reply(encode_response(DITTO, 1, error=error))
    with pytest.raises(BridgeRpcError) as exc_info:
        await task
    assert exc_info.value.code == 4001
    assert exc_info.value.to_dict() == error


@pytest.mark.asyncio
async def test_post_failure_does_not_leak_pending_entry():
    host = LocalWindow()
    bridge = WidgetBridge(_BrokenWindow(host), ORIGIN, host_window=host)
    with pytest.raises(RuntimeError):
        await bridge.request("ping")
    assert bridge.pending_count == 0


def test_event_envelope_carries_real_event_name():
    _, remote, bridge = _bridge()
    events = []
    bridge.on_event(events.append)

    remote.reply(encode_notification(DITTO, "ditto_event", ["accountsChanged", ["0xabc"]]))
    remote.reply(encode_notification(DITTO, "ditto_event", ["custom", 1, {"k": "v"}]))
    remote.reply(encode_notification(DITTO, "ditto_event", [42]))
    remote.reply(encode_notification(DITTO, "ditto_event"))

    assert events == [
        AccountsChanged(accounts=["0xabc"]),
        RemoteEvent(event_name="custom", payload=(1, {"k": "v"})),
    ]
    assert events[1].args == (1, {"k": "v"})


def test_lifecycle_notifications_and_subscriptions():
    _, remote, bridge = _bridge()
    events = []
    bridge.on_event(events.append)

    remote.reply(encode_notification(DITTO, "ditto_ready"))
    remote.reply(encode_notification(DITTO, "ditto_did_logout"))
    remote.reply(encode_notification(DITTO, "eth_subscription", {"subscription": "0x1", "result": {}}))

    assert events[0] == Ready(family="ditto")
    assert events[1] == DidLogout(family="ditto")
    assert isinstance(events[2], Message)
    assert events[2].name == "message"
    assert events[2].args == ({"type": "eth_subscription", "data": {"subscription": "0x1", "result": {}}},)


def test_on_event_replaces_previous_handler():
    _, remote, bridge = _bridge()
    first, second = [], []
    bridge.on_event(first.append)
    bridge.on_event(second.append)

    remote.reply(encode_notification(DITTO, "ditto_ready"))
    assert first == []
    assert second == [Ready(family="ditto")]


@pytest.mark.asyncio
async def test_logout_sends_logout_request():
    _, remote, bridge = _bridge()
    task = asyncio.create_task(bridge.logout())
    await asyncio.sleep(0)

    message, _ = remote.inbox[0]
    assert message["payload"]["method"] == "ditto_logout"
    remote.reply(encode_response(DITTO, message["payload"]["id"], result=None))
    assert await task is None


def test_close_stops_listening():
    host, remote, bridge = _bridge()
    events = []
    bridge.on_event(events.append)
    bridge.close()

    remote.reply(encode_notification(DITTO, "ditto_ready"))
    assert events == []
    assert host.listener_count == 0


@pytest.mark.asyncio
async def test_external_provider_bridge_uses_native_host():
    sent: list[str] = []
    window = LocalWindow(native_post=sent.append)
    bridge = ExternalProviderBridge(window)
    events = []
    bridge.on_event(events.append)

    task = asyncio.create_task(bridge.request("eth_chainId"))
    await asyncio.sleep(0)
    message = json.loads(sent[0])
    assert message["channelType"] == "ditto_message"
    assert message["payload"]["method"] == "eth_chainId"

    window.dispatch(encode_response(DITTO, message["payload"]["id"], result="0x1"), source=window)
    assert await task == "0x1"

    # The external variant has no did_logout notification.
    window.dispatch(encode_notification(DITTO, "ditto_did_logout"), source=window)
    assert events == []


@pytest.mark.asyncio
async def test_external_provider_bridge_on_plain_window_ignores_own_requests():
    window = LocalWindow(origin="https://dapp.example")
    bridge = ExternalProviderBridge(window, "*")

    task = asyncio.create_task(bridge.request("eth_blockNumber"))
    await asyncio.sleep(0)
    # The request looped back to our own listener and was not taken as a response.
    assert not task.done()

    window.dispatch(encode_response(DITTO, 1, result="0x10"), source=window)
    assert await task == "0x10"
