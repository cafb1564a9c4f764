from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Optional, Sequence

from .client import Client
from .config import LockSettings, get_redis_client
from .exceptions import LockAcquisitionError, LockError
from .lock import Lock
from .retry import FixedIntervalRetry
from .store import RedisLockStore


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    s = LockSettings()
    p = argparse.ArgumentParser(prog="redis-lock", description="Distributed lock demos on Redis")
    p.add_argument("--url", default=s.redis_url, help="Redis URL (default: $REDIS_URL or local)")
    p.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    sub = p.add_subparsers(dest="command", required=True)

    def common(sp: argparse.ArgumentParser) -> None:
        sp.add_argument("--resource", required=True, help="Resource name")
        sp.add_argument("--ttl-ms", type=int, default=int(s.expiration * 1000), help="Lock TTL in ms")
        sp.add_argument("--work-ms", type=int, default=2000, help="Simulated work time in ms (default: 2000)")

    common(sub.add_parser("once", help="Acquire once, do work, release"))

    sp = sub.add_parser("blocking", help="Acquire with retries, do work, release")
    common(sp)
    sp.add_argument("--retry-ms", type=int, default=int(s.retry_interval * 1000), help="Retry interval in ms")
    sp.add_argument("--retries", type=int, default=s.max_retries, help="Max retries")
    sp.add_argument("--attempt-timeout-ms", type=int, default=int(s.attempt_timeout * 1000),
                    help="Timeout of each attempt in ms")

    sp = sub.add_parser("watchdog", help="Acquire, auto-renew while working, release")
    common(sp)
    sp.add_argument("--renew-ms", type=int, default=int(s.refresh_interval * 1000), help="Renew interval in ms")
    sp.add_argument("--renew-timeout-ms", type=int, default=int(s.refresh_timeout * 1000),
                    help="Timeout of each renewal in ms")
    return p.parse_args(argv)


async def _work(lock: Lock, work_ms: int, refresher: Optional[asyncio.Task] = None) -> None:
    print(f"[lock] acquired key={lock.key} owner={lock.token} ttl_ms={int(lock.expiration * 1000)}")
    try:
        if refresher is None:
            await asyncio.sleep(work_ms / 1000.0)
        else:
            # a finished refresher means the lease was lost; stop working
            done, _ = await asyncio.wait({refresher}, timeout=work_ms / 1000.0)
            if done:
                refresher.result()
    finally:
        try:
            await lock.unlock()
            print("[lock] released=True")
        except LockError as e:
            print(f"[lock] released=False ({e})")
        if refresher is not None:
            await asyncio.gather(refresher, return_exceptions=True)


async def run(a: argparse.Namespace) -> int:
    store = RedisLockStore(get_redis_client(a.url))
    client = Client(store)
    try:
        if a.command == "once":
            lock = await client.try_lock(a.resource, a.ttl_ms / 1000.0)
            await _work(lock, a.work_ms)
        elif a.command == "blocking":
            retry = FixedIntervalRetry(a.retry_ms / 1000.0, a.retries)
            lock = await client.lock(a.resource, a.ttl_ms / 1000.0, retry, a.attempt_timeout_ms / 1000.0)
            await _work(lock, a.work_ms)
        else:
            lock = await client.try_lock(a.resource, a.ttl_ms / 1000.0)
            refresher = lock.start_auto_refresh(a.renew_ms / 1000.0, a.renew_timeout_ms / 1000.0)
            await _work(lock, a.work_ms, refresher)
    except LockAcquisitionError as e:
        print(f"[lock] acquire failed ({e})")
        return 1
    except LockError as e:
        print(f"[lock] error: {e}")
        return 2
    finally:
        await store.aclose()
    return 0


def main(argv: Optional[Sequence[str]] = None) -> None:
    a = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if a.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    try:
        sys.exit(asyncio.run(run(a)))
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    main()
