"""
Redis-backed ledger store.

Balances live in plain string keys and each transaction log is a sorted set
scored by the transaction timestamp (ms). Mutations run as registered Lua
scripts, so Redis serializes them against every other script touching the
same keys: one round trip, all-or-nothing.

Requires redis: pip install redis
"""

from __future__ import annotations

from typing import Any, Sequence

import redis
from redis.commands.core import Script
from redis.exceptions import RedisError

from .base import LedgerScript, StoreError


class RedisStore:
    """Ledger store on top of a synchronous ``redis.Redis`` client.

    Example:
        ```python
        store = RedisStore.from_url("redis://localhost:6379/0")
        ledger = CreditsLedger(store)
        ledger.initialize_user("user_123")
        ```
    """

    def __init__(self, client: Any) -> None:  # redis.Redis with decode_responses=True
        self._client = client
        self._scripts: dict[str, Script] = {}

    @classmethod
    def from_url(cls, url: str, *, socket_timeout_seconds: float | None = 5.0) -> RedisStore:
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=socket_timeout_seconds,
        )
        return cls(client)

    @property
    def client(self) -> Any:
        return self._client

    def _script(self, script: LedgerScript) -> Script:
        """Register a script once; redis-py falls back to EVAL on NOSCRIPT."""
        key = script.resource_name
        registered = self._scripts.get(key)
        if registered is None:
            registered = self._client.register_script(script.source)
            self._scripts[key] = registered
        return registered

    def get(self, key: str) -> str | None:
        try:
            return self._client.get(key)
        except RedisError as exc:
            raise StoreError(f"GET {key} failed: {exc}") from exc

    def set(self, key: str, value: str) -> None:
        try:
            self._client.set(key, value)
        except RedisError as exc:
            raise StoreError(f"SET {key} failed: {exc}") from exc

    def delete(self, key: str) -> None:
        try:
            self._client.delete(key)
        except RedisError as exc:
            raise StoreError(f"DEL {key} failed: {exc}") from exc

    def zadd(self, key: str, score: float, member: str) -> None:
        try:
            self._client.zadd(key, {member: score})
        except RedisError as exc:
            raise StoreError(f"ZADD {key} failed: {exc}") from exc

    def zcard(self, key: str) -> int:
        try:
            return int(self._client.zcard(key))
        except RedisError as exc:
            raise StoreError(f"ZCARD {key} failed: {exc}") from exc

    def zrange_by_rank(self, key: str, start: int, stop: int, *, reverse: bool = False) -> list[str]:
        try:
            return list(self._client.zrange(key, start, stop, desc=reverse))
        except RedisError as exc:
            raise StoreError(f"ZRANGE {key} failed: {exc}") from exc

    def zrange_by_score(
        self,
        key: str,
        minimum: float,
        maximum: float,
        *,
        reverse: bool = False,
        offset: int | None = None,
        count: int | None = None,
    ) -> list[str]:
        # redis-py only sends LIMIT when both start and num are present
        if count is not None and offset is None:
            offset = 0
        try:
            if reverse:
                result = self._client.zrevrangebyscore(key, maximum, minimum, start=offset, num=count)
            else:
                result = self._client.zrangebyscore(key, minimum, maximum, start=offset, num=count)
        except RedisError as exc:
            raise StoreError(f"ZRANGEBYSCORE {key} failed: {exc}") from exc
        return list(result)

    def execute_atomic(self, script: LedgerScript, keys: Sequence[str], args: Sequence[Any]) -> Any:
        try:
            return self._script(script)(keys=list(keys), args=list(args))
        except RedisError as exc:
            raise StoreError(f"script {script.resource_name} failed: {exc}") from exc

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except RedisError as exc:
            raise StoreError(f"PING failed: {exc}") from exc


__all__ = ["RedisStore"]
