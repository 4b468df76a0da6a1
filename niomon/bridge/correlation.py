"""Request/response correlation for one bridge instance."""

from __future__ import annotations

import asyncio
from typing import Any, Callable

from loguru import logger

from niomon.utils.exceptions import BridgeRpcError

ResponseReceiver = Callable[[Any, Any], None]


class PendingRequests:
    """
    Pending request table.

    Ids are plain increments starting at 1 and never reused. Each receiver is
    consumed at most once; a response for an unknown id is logged and dropped.
    Entries whose response never arrives stay for the bridge's lifetime.
    """

    def __init__(self, label: str = "bridge"):
        self.label = label
        self._last_id = 0
        self._receivers: dict[int, ResponseReceiver] = {}

    def __len__(self) -> int:
        return len(self._receivers)

    def __contains__(self, request_id: object) -> bool:
        return request_id in self._receivers

    def next_id(self) -> int:
        self._last_id += 1
        return self._last_id

    def add(self, request_id: int, receiver: ResponseReceiver) -> None:
        if request_id in self._receivers:
            raise ValueError(f"request id {request_id} is already pending")
        self._receivers[request_id] = receiver

    def expect(self, request_id: int) -> asyncio.Future[Any]:
        """Register a receiver settling a future with the result or the remote error."""
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()

        def _receive(error: Any, result: Any) -> None:
            if future.done():
                return
            if error is not None:
                future.set_exception(BridgeRpcError.from_payload(error))
            else:
                future.set_result(result)

        self.add(request_id, _receive)
        return future

    def resolve(self, request_id: int | None, error: Any = None, result: Any = None) -> bool:
        if request_id is None:
            logger.warning("{}: received JSON-RPC response but id is undefined", self.label)
            return False
        receiver = self._receivers.pop(request_id, None)
        if receiver is None:
            logger.warning("{}: received JSON-RPC response but no matching receiver found (id={})", self.label, request_id)
            return False
        receiver(error, result)
        return True

    def discard(self, request_id: int) -> None:
        """Forget a request whose sender gave up on it."""
        self._receivers.pop(request_id, None)
