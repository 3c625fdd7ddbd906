"""
Single-flight: concurrent callers asking for the same key share one
in-flight task instead of each starting their own.

All bookkeeping happens between ``await`` points on one event loop, so the
registry needs no lock. The shared task is cancelled only when every
waiter has been cancelled.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Hashable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class _Call:
    task: asyncio.Future
    waiters: int = 0


class SingleFlight:
    def __init__(self) -> None:
        self._calls: dict[Hashable, _Call] = {}

    def in_flight(self, key: Hashable) -> bool:
        return key in self._calls

    def _forget(self, key: Hashable, call: _Call) -> None:
        if self._calls.get(key) is call:
            del self._calls[key]

    async def do(self, key: Hashable, fn: Callable[[], Awaitable[T]]) -> T:
        call = self._calls.get(key)
        if call is None:
            call = _Call(task=asyncio.ensure_future(fn()))
            self._calls[key] = call
            call.task.add_done_callback(lambda _task, c=call: self._forget(key, c))
        else:
            logger.info("Joining in-flight call for %s", key)

        call.waiters += 1
        try:
            result: Any = await asyncio.shield(call.task)
        except asyncio.CancelledError:
            call.waiters -= 1
            if call.waiters == 0 and not call.task.done():
                logger.info("All callers for %s cancelled, aborting", key)
                call.task.cancel()
            raise
        call.waiters -= 1
        return result
