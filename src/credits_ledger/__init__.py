"""Shared per-user credits ledger backed by an atomic key-value store."""

from .config import AppConfig, load_config
from .ledger import (
    AuditLogFailure,
    BalanceVerification,
    CreditsError,
    CreditsLedger,
    ErrorKind,
    InsufficientFunds,
    PricingConfigError,
    PricingEngine,
    PricingRule,
    ReconciliationFailure,
    Transaction,
    TransactionFailure,
    TransactionResult,
    ValidationError,
    reconcile_users,
)
from .store import MemoryStore, RedisStore

__all__ = [
    "AppConfig",
    "AuditLogFailure",
    "BalanceVerification",
    "CreditsError",
    "CreditsLedger",
    "ErrorKind",
    "InsufficientFunds",
    "MemoryStore",
    "PricingConfigError",
    "PricingEngine",
    "PricingRule",
    "ReconciliationFailure",
    "RedisStore",
    "Transaction",
    "TransactionFailure",
    "TransactionResult",
    "ValidationError",
    "load_config",
    "reconcile_users",
]
