from __future__ import annotations

import asyncio
import time

import pytest

from redis_lock.client import Client, generate_token
from redis_lock.exceptions import LockAcquisitionError, StoreError, StoreTimeoutError
from redis_lock.retry import FixedIntervalRetry, NoRetry
from redis_lock.store import RedisLockStore

from .helpers import ScriptedStore, count_calls


def test_generate_token_is_unique():
    tokens = {generate_token() for _ in range(10_000)}
    assert len(tokens) == 10_000


@pytest.mark.asyncio
async def test_try_lock_on_free_key(store):
    client = Client(store)
    lock = await client.try_lock("locked-key", 60)
    assert lock.key == "locked-key"
    assert lock.token
    assert store.get("locked-key") == lock.token


@pytest.mark.asyncio
async def test_try_lock_tokens_differ(store):
    client = Client(store)
    first = await client.try_lock("a", 60)
    second = await client.try_lock("b", 60)
    assert first.token != second.token


@pytest.mark.asyncio
async def test_try_lock_held_key_leaves_entry_alone(store):
    store.set("failed-key", "123", 60)
    ttl_before = store.ttl("failed-key")
    client = Client(store)
    with pytest.raises(LockAcquisitionError):
        await client.try_lock("failed-key", 10)
    assert store.get("failed-key") == "123"
    assert store.ttl("failed-key") <= ttl_before
    assert store.ttl("failed-key") > 50


@pytest.mark.asyncio
async def test_try_lock_propagates_store_error(scripted):
    err = StoreError("network error")
    scripted.queue("acquire", [err])
    client = Client(scripted)
    with pytest.raises(StoreError) as exc_info:
        await client.try_lock("network-key", 60)
    assert exc_info.value is err


@pytest.mark.asyncio
async def test_try_lock_rejects_non_positive_expiration(store):
    with pytest.raises(ValueError):
        await Client(store).try_lock("k", 0)


@pytest.mark.asyncio
async def test_lock_gives_up_after_retry_intervals(store):
    holder = Client(store)
    await holder.try_lock("job:42", 30)

    contender = Client(store)
    start = time.monotonic()
    with pytest.raises(LockAcquisitionError):
        await contender.lock("job:42", 30, FixedIntervalRetry(0.05, 3), timeout=1)
    elapsed = time.monotonic() - start

    assert elapsed >= 0.15
    assert elapsed < 1.0
    # the holder's attempt, then the first attempt plus one per retry
    assert count_calls(store, "acquire") == 5


@pytest.mark.asyncio
async def test_lock_acquires_once_lease_expires(store):
    store.set("job", "someone-else", 0.1)
    lock = await Client(store).lock("job", 10, FixedIntervalRetry(0.05, 10), timeout=1)
    assert store.get("job") == lock.token


@pytest.mark.asyncio
async def test_lock_aborts_on_store_error(scripted):
    scripted.queue("acquire", [StoreError("EOF")])
    with pytest.raises(StoreError):
        await Client(scripted).lock("k", 10, FixedIntervalRetry(0.01, 5), timeout=1)
    assert count_calls(scripted, "acquire") == 1


@pytest.mark.asyncio
async def test_lock_retries_attempt_timeouts():
    slow = ScriptedStore(latency=0.2)
    with pytest.raises(LockAcquisitionError):
        await Client(slow).lock("k", 10, FixedIntervalRetry(0.01, 2), timeout=0.02)
    assert count_calls(slow, "acquire") == 3
    assert slow.get("k") is None


@pytest.mark.asyncio
async def test_lock_succeeds_after_timeout(scripted):
    scripted.queue("acquire", [StoreTimeoutError("slow"), StoreTimeoutError("slow")])
    lock = await Client(scripted).lock("k", 10, FixedIntervalRetry(0.01, 3), timeout=1)
    assert scripted.get("k") == lock.token


@pytest.mark.asyncio
async def test_lock_reclaims_attempt_that_landed_but_timed_out():
    class LandsThenTimesOut(ScriptedStore):
        async def acquire_if_absent(self, key, token, expiration, *, timeout=None):
            if not self.calls:
                await super().acquire_if_absent(key, token, expiration)
                raise StoreTimeoutError("reply lost")
            return await super().acquire_if_absent(key, token, expiration, timeout=timeout)

    store = LandsThenTimesOut()
    lock = await Client(store).lock("k", 10, FixedIntervalRetry(0.01, 1), timeout=1)
    assert store.get("k") == lock.token


@pytest.mark.asyncio
async def test_lock_overall_deadline_is_not_acquisition_failure(store):
    store.set("k", "other", 60)
    client = Client(store)
    with pytest.raises(TimeoutError):
        async with asyncio.timeout(0.1):
            await client.lock("k", 10, FixedIntervalRetry(1.0, 5), timeout=1)


@pytest.mark.asyncio
async def test_lock_cancellation_propagates(store):
    store.set("k", "other", 60)
    task = asyncio.create_task(Client(store).lock("k", 10, FixedIntervalRetry(1.0, 5), timeout=1))
    await asyncio.sleep(0.05)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task


@pytest.mark.asyncio
async def test_lock_without_retry_fails_once(store):
    store.set("k", "other", 60)
    with pytest.raises(LockAcquisitionError):
        await Client(store).lock("k", 10, NoRetry(), timeout=1)
    assert count_calls(store, "acquire") == 1


@pytest.mark.asyncio
async def test_custom_token_factory(store):
    client = Client(store, token_factory=lambda: "fixed-token")
    lock = await client.try_lock("k", 10)
    assert lock.token == "fixed-token"


@pytest.mark.asyncio
async def test_sub_millisecond_expiration_rejected(store):
    client = Client(store)
    with pytest.raises(ValueError):
        await client.try_lock("k", 0.0005)
    with pytest.raises(ValueError):
        await client.lock("k", 0.0005, NoRetry(), timeout=1)
    assert store.calls == []


def test_client_from_url_uses_redis_store():
    client = Client.from_url("redis://lock-host:6380/3")
    assert isinstance(client.store, RedisLockStore)
    kwargs = client.store.client.connection_pool.connection_kwargs
    assert kwargs["host"] == "lock-host"
    assert kwargs["port"] == 6380
