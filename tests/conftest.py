from __future__ import annotations

import fakeredis
import pytest

from credits_ledger.store import MemoryStore, RedisStore


@pytest.fixture(params=["memory", "redis"])
def store(request):
    """Ledger store under test: the in-process backend, then the Lua scripts on a fake Redis server."""
    if request.param == "memory":
        return MemoryStore()
    return RedisStore(fakeredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True))
