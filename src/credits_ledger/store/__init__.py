"""Store backends for the credits ledger."""

from __future__ import annotations

from ..config import StoreSettings
from .base import LedgerScript, LedgerStore, StoreError, balance_key, load_script, transactions_key
from .memory import MemoryStore
from .redis_store import RedisStore


def create_store(settings: StoreSettings) -> LedgerStore:
    if settings.backend == "memory":
        return MemoryStore()
    return RedisStore.from_url(settings.url, socket_timeout_seconds=settings.socket_timeout_seconds)


__all__ = [
    "LedgerScript",
    "LedgerStore",
    "MemoryStore",
    "RedisStore",
    "StoreError",
    "balance_key",
    "create_store",
    "load_script",
    "transactions_key",
]
