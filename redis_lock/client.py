"""Lock client: single-shot, retrying and coalesced acquisition."""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Callable, Optional

from .exceptions import LockAcquisitionError, StoreTimeoutError
from .lock import Duration, Lock, to_seconds
from .retry import RetryStrategy
from .singleflight import SingleFlight
from .store import LockStore, RedisLockStore

logger = logging.getLogger(__name__)


def generate_token() -> str:
    return str(uuid.uuid4())


class Client:
    """Acquires locks against a single store.

    Each client owns its own coalescing group, so several clients in one
    process never share in-flight calls.
    """

    def __init__(self, store: LockStore, *, token_factory: Callable[[], str] = generate_token) -> None:
        self.store = store
        self.token_factory = token_factory
        self._group = SingleFlight()

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> "Client":
        return cls(RedisLockStore.from_url(url, **kwargs))

    async def try_lock(self, key: str, expiration: Duration) -> Lock:
        """Acquire ``key`` with a single attempt.

        Raises ``LockAcquisitionError`` when the key is held; store errors
        propagate untouched.
        """
        expiration = _check_expiration(expiration)
        token = self.token_factory()
        ok = await self.store.acquire_if_absent(key, token, expiration)
        if not ok:
            raise LockAcquisitionError(f"lock {key!r} is held by another owner")
        logger.debug(f"Lock acquired: {key}")
        return Lock(self.store, key, token, expiration)

    async def lock(
        self,
        key: str,
        expiration: Duration,
        retry: RetryStrategy,
        timeout: Duration,
    ) -> Lock:
        """Acquire ``key``, retrying contention and per-attempt timeouts.

        ``timeout`` bounds every single attempt. The whole call is bounded by
        cancelling it, e.g. with ``asyncio.timeout``; that cancellation is
        never turned into ``LockAcquisitionError``. Store errors other than
        a timeout abort at once since retrying them is futile.
        """
        expiration = _check_expiration(expiration)
        timeout = to_seconds(timeout)
        # one token for every attempt of this call, so an attempt that landed
        # server-side but timed out client-side is reclaimed by the next one
        token = self.token_factory()
        attempt = 0
        while True:
            attempt += 1
            try:
                ok = await self.store.acquire_if_absent(key, token, expiration, timeout=timeout)
            except StoreTimeoutError:
                logger.debug(f"Lock attempt {attempt} timed out: {key}")
                ok = False
            if ok:
                logger.debug(f"Lock acquired: {key} (attempt {attempt})")
                return Lock(self.store, key, token, expiration)
            interval = retry.next_interval(attempt)
            if interval is None:
                logger.debug(f"Lock retries exhausted: {key} ({attempt} attempts)")
                raise LockAcquisitionError(
                    f"lock {key!r} not acquired after {attempt} attempts"
                )
            await asyncio.sleep(interval)

    async def single_flight_lock(
        self,
        key: str,
        expiration: Duration,
        retry: RetryStrategy,
        timeout: Duration,
    ) -> Lock:
        """``lock()``, coalesced with concurrent calls for the same key.

        Every caller that joins an in-flight call gets the same ``Lock`` (or
        the same exception). Cancelling one caller does not disturb the
        others.
        """
        return await self._group.do(key, lambda: self.lock(key, expiration, retry, timeout))


def _check_expiration(expiration: Duration) -> float:
    seconds = to_seconds(expiration)
    # leases travel to the store in whole milliseconds
    if seconds < 0.001:
        raise ValueError(f"expiration must be at least 1ms, got {seconds}")
    return seconds
