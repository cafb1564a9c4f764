from __future__ import annotations

import pytest

from redis_lock.memory import MemoryLockStore

from .helpers import ScriptedStore


@pytest.fixture
def store() -> MemoryLockStore:
    return MemoryLockStore()


@pytest.fixture
def scripted() -> ScriptedStore:
    return ScriptedStore()
