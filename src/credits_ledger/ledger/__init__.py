"""Ledger package exports."""

from .client import CreditsLedger
from .errors import (
    AuditLogFailure,
    CreditsError,
    ErrorKind,
    InsufficientFunds,
    PricingConfigError,
    ReconciliationFailure,
    TransactionFailure,
    ValidationError,
)
from .logger import LedgerEventLogger
from .pricing import PricingEngine, PricingRule
from .reconcile import ReconciliationStats, reconcile_users
from .transactions import BalanceVerification, Transaction, TransactionResult

__all__ = [
    "AuditLogFailure",
    "BalanceVerification",
    "CreditsError",
    "CreditsLedger",
    "ErrorKind",
    "InsufficientFunds",
    "LedgerEventLogger",
    "PricingConfigError",
    "PricingEngine",
    "PricingRule",
    "ReconciliationFailure",
    "ReconciliationStats",
    "Transaction",
    "TransactionFailure",
    "TransactionResult",
    "ValidationError",
    "reconcile_users",
]
