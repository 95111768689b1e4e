"""Transaction records and operation results."""

from __future__ import annotations

import json
import time
import uuid
from dataclasses import dataclass
from typing import Any

GENESIS_ACTION = "user_initialized"
ALREADY_INITIALIZED = "already_initialized"

Scalar = str | int | float | bool | None


def now_ms() -> int:
    return int(time.time() * 1000)


def new_transaction_id(timestamp_ms: int) -> str:
    return f"tx_{timestamp_ms}_{uuid.uuid4().hex[:10]}"


@dataclass(frozen=True)
class Transaction:
    """One immutable entry of a user's transaction log.

    ``amount`` is signed: credits added are positive, deductions negative.
    ``timestamp`` is in milliseconds and doubles as the sorted-set score.
    """

    id: str
    amount: int
    action: str
    timestamp: int
    metadata: dict[str, Scalar] | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "amount": self.amount,
            "action": self.action,
            "timestamp": self.timestamp,
        }
        if self.metadata is not None:
            d["metadata"] = dict(self.metadata)
        return d

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=True, separators=(",", ":"))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Transaction:
        amount = data["amount"]
        timestamp = data["timestamp"]
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise ValueError(f"transaction amount must be an integer, got {amount!r}")
        if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
            raise ValueError(f"transaction timestamp must be numeric, got {timestamp!r}")
        metadata = data.get("metadata")
        if metadata is not None and not isinstance(metadata, dict):
            raise ValueError("transaction metadata must be an object")
        return cls(
            id=str(data["id"]),
            amount=amount,
            action=str(data["action"]),
            timestamp=int(timestamp),
            metadata=metadata,
        )

    @classmethod
    def from_json(cls, raw: str) -> Transaction:
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ValueError(f"transaction record is not valid JSON: {exc}") from exc
        if not isinstance(parsed, dict):
            raise ValueError("transaction record must be a JSON object")
        try:
            return cls.from_dict(parsed)
        except KeyError as exc:
            raise ValueError(f"transaction record missing field {exc}") from exc


@dataclass(frozen=True)
class TransactionResult:
    transaction_id: str
    balance: int
    timestamp: int
    already_existed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "transaction_id": self.transaction_id,
            "balance": self.balance,
            "timestamp": self.timestamp,
            "already_existed": self.already_existed,
        }


@dataclass(frozen=True)
class BalanceVerification:
    valid: bool
    cached: int
    calculated: int
    difference: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "cached": self.cached,
            "calculated": self.calculated,
            "difference": self.difference,
        }


@dataclass(frozen=True)
class TransactionQuery:
    """A validated history query; ``limit`` is already capped."""

    limit: int
    start_time: int | None = None
    end_time: int | None = None

    @property
    def time_bounded(self) -> bool:
        return self.start_time is not None or self.end_time is not None
