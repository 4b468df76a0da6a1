import pytest

from niomon.bridge.correlation import PendingRequests
from niomon.utils.exceptions import BridgeRpcError


def test_ids_start_at_one_and_increase():
    pending = PendingRequests()
    assert [pending.next_id() for _ in range(3)] == [1, 2, 3]


@pytest.mark.asyncio
async def test_resolve_settles_matching_future_once():
    pending = PendingRequests()
    future = pending.expect(pending.next_id())

    assert pending.resolve(1, None, "pong") is True
    assert await future == "pong"
    assert len(pending) == 0
    assert pending.resolve(1, None, "again") is False


@pytest.mark.asyncio
async def test_unknown_or_missing_id_is_dropped():
    pending = PendingRequests()
    future = pending.expect(pending.next_id())

    assert pending.resolve(None, None, "x") is False
    assert pending.resolve(42, None, "x") is False
    assert not future.done()
    assert 1 in pending


@pytest.mark.asyncio
async def test_error_rejects_with_remote_error():
    pending = PendingRequests()
    future = pending.expect(pending.next_id())
    pending.resolve(1, {"code": 4001, "message": "User rejected", "data": {"reason": "closed"}})

    with pytest.raises(BridgeRpcError) as exc_info:
        await future
    assert exc_info.value.code == 4001
    assert exc_info.value.message == "User rejected"
    assert exc_info.value.payload == {"code": 4001, "message": "User rejected", "data": {"reason": "closed"}}


def test_add_rejects_duplicate_ids():
    pending = PendingRequests()
    pending.add(1, lambda error, result: None)
    with pytest.raises(ValueError):
        pending.add(1, lambda error, result: None)
    pending.discard(1)
    assert len(pending) == 0
