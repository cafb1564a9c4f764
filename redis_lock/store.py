"""Atomic store operations backing the lock client.

Every operation runs as a single Lua script on the Redis server, so the
compare and the write can never be split by an expiry or by another
holder's release.
"""
from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Optional, Protocol

import redis
from redis.asyncio import Redis

from .exceptions import KeyNotFoundError, StoreError, StoreTimeoutError

LUA_DIR = Path(__file__).with_name("lua")


def load_script(name: str) -> str:
    return LUA_DIR.joinpath(f"{name}.lua").read_text(encoding="utf-8")


class LockStore(Protocol):
    """What the lock client needs from a store.

    Implementations raise ``StoreTimeoutError`` when ``timeout`` elapses,
    ``KeyNotFoundError`` on a nil reply and ``StoreError`` for anything
    else. Cancellation of the calling task is never converted.
    """

    async def acquire_if_absent(
        self, key: str, token: str, expiration: float, *, timeout: Optional[float] = None
    ) -> bool: ...

    async def extend_if_owner(
        self, key: str, token: str, lease_ms: int, *, timeout: Optional[float] = None
    ) -> int: ...

    async def delete_if_owner(
        self, key: str, token: str, *, timeout: Optional[float] = None
    ) -> int: ...


class RedisLockStore:
    """``LockStore`` on top of a ``redis.asyncio.Redis`` connection."""

    def __init__(self, client: Redis) -> None:
        self.client = client
        self._lock_script = client.register_script(load_script("lock"))
        self._refresh_script = client.register_script(load_script("refresh"))
        self._unlock_script = client.register_script(load_script("unlock"))

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> "RedisLockStore":
        kwargs.setdefault("decode_responses", True)
        return cls(Redis.from_url(url, **kwargs))

    async def _run(self, script, key: str, args: list, timeout: Optional[float]) -> Any:
        try:
            async with asyncio.timeout(timeout):
                res = await script(keys=[key], args=args)
        except TimeoutError as e:
            raise StoreTimeoutError(f"store call on {key!r} timed out after {timeout}s") from e
        except redis.exceptions.TimeoutError as e:
            raise StoreTimeoutError(f"store call on {key!r} timed out: {e}") from e
        except redis.exceptions.RedisError as e:
            raise StoreError(f"store call on {key!r} failed: {e}") from e
        if res is None:
            raise KeyNotFoundError(f"nil reply for {key!r}")
        return res

    async def acquire_if_absent(
        self, key: str, token: str, expiration: float, *, timeout: Optional[float] = None
    ) -> bool:
        res = await self._run(self._lock_script, key, [token, int(expiration * 1000)], timeout)
        # status reply "OK" on success, empty string when someone else holds the key
        return bool(res)

    async def extend_if_owner(
        self, key: str, token: str, lease_ms: int, *, timeout: Optional[float] = None
    ) -> int:
        return int(await self._run(self._refresh_script, key, [token, lease_ms], timeout))

    async def delete_if_owner(
        self, key: str, token: str, *, timeout: Optional[float] = None
    ) -> int:
        return int(await self._run(self._unlock_script, key, [token], timeout))

    async def aclose(self) -> None:
        await self.client.aclose()
