"""A lock held in the store, plus its renewal and release."""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import Optional, Union

from .exceptions import KeyNotFoundError, LockNotHeldError, StoreTimeoutError
from .store import LockStore

logger = logging.getLogger(__name__)

Duration = Union[float, int, timedelta]


def to_seconds(value: Duration) -> float:
    if isinstance(value, timedelta):
        return value.total_seconds()
    return float(value)


class Lock:
    """One successful acquisition of ``key``.

    The token is the proof of ownership: renewal and release only touch the
    store entry while it still holds that token. Only the client creates
    these.
    """

    def __init__(self, store: LockStore, key: str, token: str, expiration: Duration) -> None:
        self.store = store
        self.key = key
        self.token = token
        self.expiration = to_seconds(expiration)
        # set exactly once, by the first unlock() that is not cancelled
        self._released = asyncio.Event()

    def __repr__(self) -> str:
        return f"Lock(key={self.key!r}, token={self.token!r}, expiration={self.expiration})"

    @property
    def released(self) -> bool:
        return self._released.is_set()

    async def wait_released(self) -> None:
        await self._released.wait()

    async def refresh(self, timeout: Optional[Duration] = None) -> None:
        """Reset the lease to ``expiration`` if the key is still ours."""
        lease_ms = int(self.expiration * 1000)
        try:
            res = await self.store.extend_if_owner(
                self.key, self.token, lease_ms, timeout=_opt_seconds(timeout)
            )
        except KeyNotFoundError as e:
            raise LockNotHeldError(f"lock {self.key!r} is not held") from e
        if res != 1:
            raise LockNotHeldError(f"lock {self.key!r} is not held")
        logger.debug(f"Lock refreshed: {self.key} (lease {lease_ms}ms)")

    async def auto_refresh(self, interval: Duration, timeout: Duration) -> None:
        """Refresh every ``interval`` until ``unlock()`` is called.

        A refresh that times out is retried at once instead of waiting for
        the next tick. Any other failure, ``LockNotHeldError`` included,
        ends the loop by raising it: the caller no longer owns the resource.
        """
        interval = to_seconds(interval)
        timeout = to_seconds(timeout)
        loop = asyncio.get_running_loop()
        next_tick = loop.time() + interval
        while True:
            try:
                async with asyncio.timeout_at(next_tick):
                    await self._released.wait()
                return
            except TimeoutError:
                pass
            next_tick += interval
            if next_tick <= loop.time():
                # fell behind; ticks that were missed are dropped
                next_tick = loop.time() + interval
            while not self._released.is_set():
                try:
                    await self.refresh(timeout)
                    break
                except StoreTimeoutError:
                    logger.warning(f"Lock refresh timed out, retrying now: {self.key}")
                except LockNotHeldError:
                    if self._released.is_set():
                        # unlock() won the race and already deleted the key
                        return
                    logger.warning(f"Lock lost while auto-refreshing: {self.key}")
                    raise

    def start_auto_refresh(self, interval: Duration, timeout: Duration) -> asyncio.Task:
        """Run ``auto_refresh`` as a task owned by the caller."""
        return asyncio.create_task(
            self.auto_refresh(interval, timeout), name=f"lock-refresh-{self.key}"
        )

    async def unlock(self, timeout: Optional[Duration] = None) -> None:
        """Delete the key if it is still ours and stop ``auto_refresh``."""
        cancelled = False
        try:
            res = await self.store.delete_if_owner(
                self.key, self.token, timeout=_opt_seconds(timeout)
            )
        except asyncio.CancelledError:
            cancelled = True
            raise
        except KeyNotFoundError as e:
            raise LockNotHeldError(f"lock {self.key!r} is not held") from e
        finally:
            # a cancelled delete may never have reached the store, so auto_refresh keeps running
            if not cancelled and not self._released.is_set():
                self._released.set()
        if res == 0:
            raise LockNotHeldError(f"lock {self.key!r} is not held")
        logger.debug(f"Lock released: {self.key}")

    async def __aenter__(self) -> "Lock":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.unlock()


def _opt_seconds(value: Optional[Duration]) -> Optional[float]:
    return None if value is None else to_seconds(value)
