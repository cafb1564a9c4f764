"""Coalesce concurrent calls that share a key into one execution."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict

logger = logging.getLogger(__name__)


class _Call:
    __slots__ = ("task", "waiters")

    def __init__(self, task: asyncio.Task) -> None:
        self.task = task
        self.waiters = 0


class SingleFlight:
    """Per-key duplicate call suppression.

    While a call for ``key`` is in flight, later ``do()`` calls for the same
    key wait for it and get its result or its exception. Each waiter is
    shielded from the others: cancelling one caller leaves the shared call
    running for everybody else. Once every waiter has left, the shared call
    is cancelled since nobody could use its result.
    """

    def __init__(self) -> None:
        self._calls: Dict[str, _Call] = {}

    def in_flight(self, key: str) -> bool:
        return key in self._calls

    async def do(self, key: str, fn: Callable[[], Awaitable[Any]]) -> Any:
        call = self._calls.get(key)
        if call is None:
            call = _Call(asyncio.ensure_future(fn()))
            self._calls[key] = call
            call.task.add_done_callback(lambda t, key=key: self._forget(key, t))
        else:
            logger.debug(f"Joining in-flight call: {key}")
        call.waiters += 1
        try:
            return await asyncio.shield(call.task)
        finally:
            call.waiters -= 1
            if call.waiters == 0 and not call.task.done():
                logger.debug(f"All waiters left, cancelling call: {key}")
                # callers arriving from now on must start a fresh call, not join this one
                if self._calls.get(key) is call:
                    del self._calls[key]
                call.task.cancel()

    def _forget(self, key: str, task: asyncio.Task) -> None:
        call = self._calls.get(key)
        if call is not None and call.task is task:
            del self._calls[key]
        # retrieve the outcome so a call nobody awaited is not logged as unhandled
        if not task.cancelled():
            task.exception()
