"""Distributed mutual exclusion on a single Redis node."""

from .client import Client, generate_token
from .config import LockSettings, get_redis_client
from .exceptions import (
    KeyNotFoundError,
    LockAcquisitionError,
    LockError,
    LockNotHeldError,
    StoreError,
    StoreTimeoutError,
)
from .lock import Lock
from .memory import MemoryLockStore
from .retry import (
    ExponentialBackoffRetry,
    FixedIntervalRetry,
    LinearBackoffRetry,
    NoRetry,
    RetryStrategy,
)
from .singleflight import SingleFlight
from .store import LockStore, RedisLockStore

__version__ = "0.1.0"
__all__ = [
    "Client",
    "generate_token",
    "LockSettings",
    "get_redis_client",
    "LockError",
    "LockAcquisitionError",
    "LockNotHeldError",
    "StoreError",
    "StoreTimeoutError",
    "KeyNotFoundError",
    "Lock",
    "LockStore",
    "RedisLockStore",
    "MemoryLockStore",
    "RetryStrategy",
    "NoRetry",
    "FixedIntervalRetry",
    "LinearBackoffRetry",
    "ExponentialBackoffRetry",
    "SingleFlight",
]
