from __future__ import annotations

import pytest

from credits_ledger.ledger import CreditsLedger, ReconciliationFailure, TransactionFailure, reconcile_users
from credits_ledger.store import LedgerStore, MemoryStore, balance_key, transactions_key


def _ledger_with_history(store: LedgerStore) -> CreditsLedger:
    ledger = CreditsLedger(store)
    ledger.initialize_user("u1", 100)
    ledger.deduct("u1", 10, "chat_message")
    ledger.add("u1", 50, "purchase")
    return ledger


def test_tampered_cache_is_detected(store) -> None:
    ledger = _ledger_with_history(store)
    store.set(balance_key("u1"), "999")

    verification = ledger.verify_balance("u1")

    assert not verification.valid
    assert verification.cached == 999
    assert verification.calculated == 140
    assert verification.difference == 859


def test_rebuild_restores_cache_from_log(store) -> None:
    ledger = _ledger_with_history(store)
    store.set(balance_key("u1"), "7")

    assert ledger.rebuild_balance("u1") == 140
    assert ledger.get_balance("u1") == 140
    assert ledger.verify_balance("u1").valid


def test_rebuild_repairs_unparseable_cache(store) -> None:
    ledger = _ledger_with_history(store)
    store.set(balance_key("u1"), "garbage")

    with pytest.raises(TransactionFailure):
        ledger.verify_balance("u1")
    assert ledger.rebuild_balance("u1") == 140
    assert ledger.verify_balance("u1").valid


def test_rebuild_restores_deleted_cache(store) -> None:
    ledger = _ledger_with_history(store)
    store.delete(balance_key("u1"))

    assert ledger.rebuild_balance("u1") == 140
    assert store.get(balance_key("u1")) == "140"


def test_rebuild_of_consistent_ledger_is_a_no_op(store) -> None:
    ledger = _ledger_with_history(store)
    assert ledger.rebuild_balance("u1") == 140
    assert ledger.verify_balance("u1").valid


def test_rebuild_never_creates_a_ledger(store) -> None:
    ledger = CreditsLedger(store)

    assert ledger.rebuild_balance("nobody") == 0
    assert store.get(balance_key("nobody")) is None
    assert ledger.initialize_user("nobody", 100).already_existed is False


def test_rebuild_refuses_to_overwrite_a_concurrent_write() -> None:
    class RacingStore(MemoryStore):
        """Commits a deduction between the log scan and the rebuild write."""

        racing_ledger: CreditsLedger | None = None

        def execute_atomic(self, script, keys, args):
            if script.name == "rebuild" and self.racing_ledger is not None:
                racer, self.racing_ledger = self.racing_ledger, None
                racer.deduct("u1", 5, "concurrent")
            return super().execute_atomic(script, keys, args)

    store = RacingStore()
    ledger = CreditsLedger(store)
    ledger.initialize_user("u1", 100)
    store.set(balance_key("u1"), "80")
    store.racing_ledger = ledger

    with pytest.raises(ReconciliationFailure) as excinfo:
        ledger.rebuild_balance("u1")

    err = excinfo.value
    assert err.user_id == "u1"
    assert err.cached_balance == 75
    assert err.calculated_balance == 100
    assert err.to_dict()["kind"] == "reconciliation_failure"
    assert store.get(balance_key("u1")) == "75"


def test_rebuild_fails_when_verification_does_not_converge() -> None:
    class DriftingStore(MemoryStore):
        """Cache write is silently rewritten, as if another writer raced it."""

        def execute_atomic(self, script, keys, args):
            reply = super().execute_atomic(script, keys, args)
            if script.name == "rebuild":
                self.set(keys[0], "1")
            return reply

    store = DriftingStore()
    ledger = CreditsLedger(store)
    ledger.initialize_user("u1", 100)
    store.set(balance_key("u1"), "3")

    with pytest.raises(ReconciliationFailure) as excinfo:
        ledger.rebuild_balance("u1")
    assert excinfo.value.cached_balance == 1
    assert excinfo.value.calculated_balance == 100


def test_reconcile_users_counts_each_outcome(store) -> None:
    ledger = _ledger_with_history(store)
    ledger.initialize_user("u2", 30)
    ledger.initialize_user("u3", 10)
    store.set(balance_key("u2"), "31")
    store.zadd(transactions_key("u3"), 1, "{broken")

    stats = reconcile_users(ledger, ["u1", "u2", "u3", "bad\nid"])

    assert stats.total == 4
    assert stats.verified == 1
    assert stats.fixed == 1
    assert stats.errors == 2
    assert [item.user_id for item in stats.inconsistencies] == ["u2"]
    assert stats.inconsistencies[0].difference == 1
    assert stats.failures["u3"]["kind"] == "transaction_failure"
    assert stats.failures["bad\nid"]["kind"] == "validation"
    assert ledger.get_balance("u2") == 30

    summary = stats.format_summary()
    assert "Fixed:        1" in summary
    assert "u2: 31 -> 30 (diff: 1)" in summary
    assert stats.to_dict()["errors"] == 2


def test_reconcile_dry_run_leaves_cache_alone(store) -> None:
    ledger = _ledger_with_history(store)
    store.set(balance_key("u1"), "1")

    stats = reconcile_users(ledger, ["u1"], fix=False)

    assert stats.fixed == 0
    assert len(stats.inconsistencies) == 1
    assert ledger.get_balance("u1") == 1
