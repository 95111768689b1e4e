"""Batch balance reconciliation, meant for scheduled out-of-band runs."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Iterable

from .client import CreditsLedger
from .errors import CreditsError


@dataclass
class Inconsistency:
    user_id: str
    cached: int
    calculated: int
    difference: int


@dataclass
class ReconciliationStats:
    total: int = 0
    verified: int = 0
    fixed: int = 0
    errors: int = 0
    duration_seconds: float = 0.0
    inconsistencies: list[Inconsistency] = field(default_factory=list)
    failures: dict[str, dict[str, Any]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "verified": self.verified,
            "fixed": self.fixed,
            "errors": self.errors,
            "duration_seconds": round(self.duration_seconds, 3),
            "inconsistencies": [item.__dict__ for item in self.inconsistencies],
            "failures": dict(self.failures),
        }

    def format_summary(self) -> str:
        lines = [
            "=" * 50,
            "Reconciliation Summary",
            "=" * 50,
            f"Total users:  {self.total}",
            f"Verified:     {self.verified}",
            f"Fixed:        {self.fixed}",
            f"Errors:       {self.errors}",
            f"Duration:     {self.duration_seconds:.2f}s",
            "=" * 50,
        ]
        if self.inconsistencies:
            lines.append("Inconsistencies found:")
            for item in self.inconsistencies:
                lines.append(f"  {item.user_id}: {item.cached} -> {item.calculated} (diff: {item.difference})")
        if self.failures:
            lines.append("Failures:")
            for user_id, failure in self.failures.items():
                lines.append(f"  {user_id}: [{failure['kind']}] {failure['message']}")
        return "\n".join(lines)


def reconcile_users(ledger: CreditsLedger, user_ids: Iterable[str], *, fix: bool = True) -> ReconciliationStats:
    """Verify every user and, when ``fix`` is set, rebuild divergent balances.

    A failure for one user is recorded in ``failures`` and the run moves on.
    """
    stats = ReconciliationStats()
    started = time.monotonic()
    for user_id in user_ids:
        stats.total += 1
        try:
            verification = ledger.verify_balance(user_id)
            if verification.valid:
                stats.verified += 1
                continue
            stats.inconsistencies.append(
                Inconsistency(
                    user_id=user_id,
                    cached=verification.cached,
                    calculated=verification.calculated,
                    difference=verification.difference,
                )
            )
            if fix:
                ledger.rebuild_balance(user_id)
                stats.fixed += 1
        except CreditsError as exc:
            stats.errors += 1
            stats.failures[user_id] = exc.to_dict()
    stats.duration_seconds = time.monotonic() - started
    return stats
