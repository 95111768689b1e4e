"""In-process ledger store with the same atomicity contract as Redis."""

from __future__ import annotations

import threading
from typing import Any, Callable, Sequence

from .base import LedgerScript, StoreError

ScriptHandler = Callable[[Sequence[str], Sequence[str]], list[Any]]


def _parse_balance(raw: str | None, key: str) -> int:
    try:
        return int(raw or "0")
    except ValueError:
        raise StoreError(f"CORRUPT_BALANCE {key}") from None


def _rank_slice(items: list[str], start: int, stop: int) -> list[str]:
    n = len(items)
    if start < 0:
        start += n
    if stop < 0:
        stop += n
    start = max(start, 0)
    if start >= n or start > stop:
        return []
    return items[start : stop + 1]


class MemoryStore:
    """Dictionary-backed store.

    A single re-entrant lock guards every command, so script handlers see
    and mutate state exactly as a Lua script would inside Redis. Each
    :class:`LedgerScript` name maps to a Python handler that mirrors its Lua
    source.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._scalars: dict[str, str] = {}
        self._sorted: dict[str, dict[str, float]] = {}
        self._handlers: dict[str, ScriptHandler] = {
            "initialize": self._run_initialize,
            "deduct": self._run_deduct,
            "add": self._run_add,
            "rebuild": self._run_rebuild,
        }

    # ---- scalars ----

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._scalars.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._scalars[key] = str(value)

    def delete(self, key: str) -> None:
        with self._lock:
            self._scalars.pop(key, None)
            self._sorted.pop(key, None)

    # ---- sorted sets ----

    def _ordered(self, key: str) -> list[tuple[float, str]]:
        members = self._sorted.get(key, {})
        return sorted((score, member) for member, score in members.items())

    def zadd(self, key: str, score: float, member: str) -> None:
        with self._lock:
            self._sorted.setdefault(key, {})[member] = float(score)

    def zcard(self, key: str) -> int:
        with self._lock:
            return len(self._sorted.get(key, {}))

    def zrange_by_rank(self, key: str, start: int, stop: int, *, reverse: bool = False) -> list[str]:
        with self._lock:
            members = [member for _, member in self._ordered(key)]
        if reverse:
            members.reverse()
        return _rank_slice(members, start, stop)

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
        with self._lock:
            members = [member for score, member in self._ordered(key) if minimum <= score <= maximum]
        if reverse:
            members.reverse()
        start = offset or 0
        if count is None:
            return members[start:]
        return members[start : start + count]

    # ---- scripts ----

    def execute_atomic(self, script: LedgerScript, keys: Sequence[str], args: Sequence[Any]) -> Any:
        handler = self._handlers.get(script.name)
        if handler is None:
            raise StoreError(f"no handler for script {script.resource_name}")
        with self._lock:
            return handler(list(keys), [str(arg) for arg in args])

    def _run_initialize(self, keys: Sequence[str], args: Sequence[str]) -> list[Any]:
        balance_key, log_key = keys
        starting, tx_data, timestamp = args
        existing = self._scalars.get(balance_key)
        if existing is not None:
            return [1, existing]
        self._scalars[balance_key] = starting
        self.zadd(log_key, float(timestamp), tx_data)
        return [0, starting]

    def _run_deduct(self, keys: Sequence[str], args: Sequence[str]) -> list[Any]:
        balance_key, log_key = keys
        amount, tx_data, timestamp = args
        balance = _parse_balance(self._scalars.get(balance_key), balance_key)
        if balance < int(amount):
            return [1, str(balance)]
        new_balance = str(balance - int(amount))
        self._scalars[balance_key] = new_balance
        self.zadd(log_key, float(timestamp), tx_data)
        return [0, new_balance]

    def _run_add(self, keys: Sequence[str], args: Sequence[str]) -> list[Any]:
        balance_key, log_key = keys
        amount, tx_data, timestamp, max_balance = args
        raw = self._scalars.get(balance_key)
        if raw is None:
            return [1, "0"]
        balance = _parse_balance(raw, balance_key)
        if balance + int(amount) > int(max_balance):
            return [2, str(balance)]
        new_balance = str(balance + int(amount))
        self._scalars[balance_key] = new_balance
        self.zadd(log_key, float(timestamp), tx_data)
        return [0, new_balance]

    def _run_rebuild(self, keys: Sequence[str], args: Sequence[str]) -> list[Any]:
        balance_key, log_key = keys
        expected, expected_count, new_balance = args
        current = self._scalars.get(balance_key, "")
        if current != expected:
            return [1, current]
        if self.zcard(log_key) != int(expected_count):
            return [2, current]
        self._scalars[balance_key] = new_balance
        return [0, new_balance]


__all__ = ["MemoryStore"]
