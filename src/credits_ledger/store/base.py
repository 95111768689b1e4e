"""Store contract shared by every ledger backend."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from importlib import resources
from typing import Any, Protocol, Sequence


class StoreError(Exception):
    """Raised by a backend when a command or script fails."""


@dataclass(frozen=True)
class LedgerScript:
    name: str
    version: int
    source: str

    @property
    def resource_name(self) -> str:
        return f"{self.name}.v{self.version}.lua"


@lru_cache(maxsize=None)
def load_script(name: str, version: int = 1) -> LedgerScript:
    """Load a versioned Lua script shipped in the ``lua`` package data folder."""
    resource = resources.files(__package__) / "lua" / f"{name}.v{version}.lua"
    try:
        source = resource.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise StoreError(f"unknown ledger script '{name}' v{version}") from exc
    return LedgerScript(name=name, version=version, source=source)


def balance_key(user_id: str) -> str:
    return f"balance:{user_id}"


def transactions_key(user_id: str) -> str:
    return f"txs:{user_id}"


class LedgerStore(Protocol):
    """Capabilities the ledger needs from a remote atomic store.

    Scalar values and sorted-set members are plain strings. Rank ranges are
    inclusive and accept negative indices the way Redis does.
    """

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def zadd(self, key: str, score: float, member: str) -> None: ...

    def zcard(self, key: str) -> int: ...

    def zrange_by_rank(self, key: str, start: int, stop: int, *, reverse: bool = False) -> list[str]: ...

    def zrange_by_score(
        self,
        key: str,
        minimum: float,
        maximum: float,
        *,
        reverse: bool = False,
        offset: int | None = None,
        count: int | None = None,
    ) -> list[str]: ...

    def execute_atomic(self, script: LedgerScript, keys: Sequence[str], args: Sequence[Any]) -> Any: ...
