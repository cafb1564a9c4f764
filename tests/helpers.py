from __future__ import annotations

from collections import deque
from typing import Any, Iterable, Optional

from redis_lock.memory import MemoryLockStore


class ScriptedStore(MemoryLockStore):
    """MemoryLockStore whose calls can be made to fail on demand.

    Queued outcomes are consumed per operation, in order. An exception
    instance is raised, anything else is returned as-is; once the queue is
    empty the in-memory behaviour applies.
    """

    def __init__(self, latency: float = 0.0) -> None:
        super().__init__(latency)
        self.outcomes: dict[str, deque] = {"acquire": deque(), "extend": deque(), "delete": deque()}

    def queue(self, op: str, outcomes: Iterable[Any]) -> None:
        self.outcomes[op].extend(outcomes)

    def _next(self, op: str, key: str) -> Any:
        if not self.outcomes[op]:
            return _UNSET
        self.calls.append((op, key))
        outcome = self.outcomes[op].popleft()
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def acquire_if_absent(self, key, token, expiration, *, timeout: Optional[float] = None):
        res = self._next("acquire", key)
        if res is _UNSET:
            return await super().acquire_if_absent(key, token, expiration, timeout=timeout)
        return res

    async def extend_if_owner(self, key, token, lease_ms, *, timeout: Optional[float] = None):
        res = self._next("extend", key)
        if res is _UNSET:
            return await super().extend_if_owner(key, token, lease_ms, timeout=timeout)
        return res

    async def delete_if_owner(self, key, token, *, timeout: Optional[float] = None):
        res = self._next("delete", key)
        if res is _UNSET:
            return await super().delete_if_owner(key, token, timeout=timeout)
        return res


_UNSET = object()


def count_calls(store: MemoryLockStore, op: str) -> int:
    return sum(1 for name, _ in store.calls if name == op)
