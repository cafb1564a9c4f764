"""Exception types raised by redis_lock."""

from __future__ import annotations


class LockError(Exception):
    """Base exception for redis_lock."""


class LockAcquisitionError(LockError):
    """The lock is held by someone else and retries (if any) ran out."""


class LockNotHeldError(LockError):
    """The token no longer matches what is stored under the key."""


class StoreError(LockError):
    """Opaque failure reported by the backing store.

    The original exception is chained as ``__cause__``.
    """


class StoreTimeoutError(StoreError):
    """A store call did not finish within its per-call timeout."""


class KeyNotFoundError(StoreError):
    """The store answered with a nil reply for the key."""
