"""In-process lock store with the same semantics as the Redis scripts."""

from __future__ import annotations

import asyncio
import time
from typing import Optional

from .exceptions import StoreTimeoutError


class MemoryLockStore:
    """``LockStore`` kept in a dict, for tests and single-process use.

    ``latency`` delays every call by that many seconds before it touches
    the table, which lets callers exercise per-call timeouts.
    """

    def __init__(self, latency: float = 0.0) -> None:
        self.latency = latency
        self._entries: dict[str, tuple[str, float]] = {}  # key -> (token, expires_at)
        self.calls: list[tuple[str, str]] = []

    def _live(self, key: str) -> Optional[tuple[str, float]]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if time.monotonic() >= entry[1]:
            del self._entries[key]
            return None
        return entry

    async def _wait(self, key: str, timeout: Optional[float]) -> None:
        if self.latency <= 0:
            return
        try:
            async with asyncio.timeout(timeout):
                await asyncio.sleep(self.latency)
        except TimeoutError as e:
            raise StoreTimeoutError(f"store call on {key!r} timed out after {timeout}s") from e

    def get(self, key: str) -> Optional[str]:
        entry = self._live(key)
        return entry[0] if entry else None

    def ttl(self, key: str) -> Optional[float]:
        """Remaining lease in seconds, or None when the key is absent."""
        entry = self._live(key)
        return entry[1] - time.monotonic() if entry else None

    def set(self, key: str, token: str, expiration: float) -> None:
        self._entries[key] = (token, time.monotonic() + expiration)

    async def acquire_if_absent(
        self, key: str, token: str, expiration: float, *, timeout: Optional[float] = None
    ) -> bool:
        self.calls.append(("acquire", key))
        await self._wait(key, timeout)
        entry = self._live(key)
        if entry is not None and entry[0] != token:
            return False
        self.set(key, token, expiration)
        return True

    async def extend_if_owner(
        self, key: str, token: str, lease_ms: int, *, timeout: Optional[float] = None
    ) -> int:
        self.calls.append(("extend", key))
        await self._wait(key, timeout)
        entry = self._live(key)
        if entry is None or entry[0] != token:
            return 0
        self.set(key, token, lease_ms / 1000)
        return 1

    async def delete_if_owner(
        self, key: str, token: str, *, timeout: Optional[float] = None
    ) -> int:
        self.calls.append(("delete", key))
        await self._wait(key, timeout)
        entry = self._live(key)
        if entry is None or entry[0] != token:
            return 0
        del self._entries[key]
        return 1
