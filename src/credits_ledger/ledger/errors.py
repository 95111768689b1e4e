"""Typed ledger errors.

Every error carries an :class:`ErrorKind` tag and the fields that kind needs,
so callers can dispatch on ``err.kind`` instead of on class identity.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    TRANSACTION_FAILURE = "transaction_failure"
    RECONCILIATION_FAILURE = "reconciliation_failure"
    PRICING_CONFIG = "pricing_config"
    AUDIT_LOG = "audit_log"


class CreditsError(Exception):
    kind: ErrorKind

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "message": self.message}


class ValidationError(CreditsError):
    """Malformed input, raised before any store call."""

    kind = ErrorKind.VALIDATION


class InsufficientFunds(CreditsError):
    kind = ErrorKind.INSUFFICIENT_FUNDS

    def __init__(self, required: int, available: int) -> None:
        super().__init__(f"Insufficient credits: required {required}, available {available}")
        self.required = required
        self.available = available

    def to_dict(self) -> dict[str, Any]:
        d = super().to_dict()
        d["required"] = self.required
        d["available"] = self.available
        return d


class TransactionFailure(CreditsError):
    """A store call or script failed for a reason other than insufficiency."""

    kind = ErrorKind.TRANSACTION_FAILURE

    def __init__(self, message: str, transaction_id: str | None = None, user_id: str | None = None) -> None:
        super().__init__(message)
        self.transaction_id = transaction_id
        self.user_id = user_id

    def to_dict(self) -> dict[str, Any]:
        d = super().to_dict()
        d["transaction_id"] = self.transaction_id
        d["user_id"] = self.user_id
        return d


class ReconciliationFailure(CreditsError):
    """A rebuild did not converge; operators should be alerted."""

    kind = ErrorKind.RECONCILIATION_FAILURE

    def __init__(self, user_id: str, cached_balance: int | None, calculated_balance: int) -> None:
        super().__init__(
            f"Balance rebuild failed for user {user_id}: cached {cached_balance}, calculated {calculated_balance}"
        )
        self.user_id = user_id
        self.cached_balance = cached_balance
        self.calculated_balance = calculated_balance

    def to_dict(self) -> dict[str, Any]:
        d = super().to_dict()
        d["user_id"] = self.user_id
        d["cached_balance"] = self.cached_balance
        d["calculated_balance"] = self.calculated_balance
        return d


class PricingConfigError(CreditsError):
    kind = ErrorKind.PRICING_CONFIG

    def __init__(self, message: str, action: str | None = None) -> None:
        super().__init__(message)
        self.action = action

    def to_dict(self) -> dict[str, Any]:
        d = super().to_dict()
        d["action"] = self.action
        return d


class AuditLogFailure(CreditsError):
    """An audit event could not be written.

    ``committed`` tells whether the store change behind the event already
    landed; when it did, ``result`` holds what the operation returned and
    the operation must not be retried.
    """

    kind = ErrorKind.AUDIT_LOG

    def __init__(self, message: str, event_type: str, *, committed: bool, result: Any = None) -> None:
        super().__init__(message)
        self.event_type = event_type
        self.committed = committed
        self.result = result

    def to_dict(self) -> dict[str, Any]:
        d = super().to_dict()
        d["event_type"] = self.event_type
        d["committed"] = self.committed
        d["result"] = self.result.to_dict() if hasattr(self.result, "to_dict") else self.result
        return d
