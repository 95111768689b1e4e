"""Credits ledger client.

Balances are cached per user for O(1) reads; the per-user transaction log
is the source of truth. Every mutation is a single atomic script executed by
the store, so overdraft and duplicate initialization are prevented by the
store's serialization rather than by client-side locking.
"""

from __future__ import annotations

from typing import Any, Callable, Mapping

from ..config import AppConfig, LedgerSettings
from ..store import LedgerScript, LedgerStore, StoreError, balance_key, create_store, load_script, transactions_key
from .errors import AuditLogFailure, InsufficientFunds, ReconciliationFailure, TransactionFailure, ValidationError
from .logger import LedgerEventLogger
from .pricing import PricingEngine
from .transactions import (
    ALREADY_INITIALIZED,
    GENESIS_ACTION,
    BalanceVerification,
    Transaction,
    TransactionResult,
    new_transaction_id,
    now_ms,
)
from .validation import (
    MAX_CREDITS,
    validate_action,
    validate_amount,
    validate_metadata,
    validate_query,
    validate_starting_balance,
    validate_user_id,
)

INITIALIZE_SCRIPT = load_script("initialize")
DEDUCT_SCRIPT = load_script("deduct")
ADD_SCRIPT = load_script("add")
REBUILD_SCRIPT = load_script("rebuild")

_STATUS_OK = 0
_STATUS_OVER_LIMIT = 2


def _parse_int(raw: Any) -> int | None:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    if isinstance(raw, str):
        try:
            return int(raw)
        except ValueError:
            return None
    return None


class CreditsLedger:
    """Per-user credit ledger shared by every application using the same store."""

    def __init__(
        self,
        store: LedgerStore,
        settings: LedgerSettings | None = None,
        *,
        pricing: PricingEngine | None = None,
        event_logger: LedgerEventLogger | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.store = store
        self.settings = settings or LedgerSettings()
        self.pricing = pricing
        self.event_logger = event_logger
        self._clock = clock

    @classmethod
    def from_config(cls, config: AppConfig, *, store: LedgerStore | None = None) -> CreditsLedger:
        event_logger = None
        if config.logging.enabled:
            event_logger = LedgerEventLogger(
                logs_dir=config.logging.events_dir,
                event_file_name=config.logging.event_file_name,
            )
        return cls(
            store if store is not None else create_store(config.store),
            config.ledger,
            pricing=PricingEngine.from_config(config.pricing),
            event_logger=event_logger,
        )

    def _emit(self, event_type: str, data: dict[str, Any], *, committed: bool = False, result: Any = None) -> None:
        if self.event_logger is None:
            return
        try:
            self.event_logger.log(event_type, data)
        except OSError as exc:
            raise AuditLogFailure(
                f"Failed to write {event_type} event: {exc}", event_type, committed=committed, result=result
            ) from exc

    def _unpack_reply(self, reply: Any, user_id: str, tx_id: str | None) -> tuple[int, int]:
        """Decode a ``{status, balance}`` script reply."""
        if not isinstance(reply, (list, tuple)) or len(reply) != 2:
            raise TransactionFailure(f"Malformed script reply: {reply!r}", tx_id, user_id)
        status = _parse_int(reply[0])
        balance = _parse_int(reply[1])
        if status is None or balance is None:
            raise TransactionFailure(f"Malformed script reply: {reply!r}", tx_id, user_id)
        return status, balance

    def _run_mutation(
        self, script: LedgerScript, user_id: str, tx: Transaction, amount: int, label: str, *extra: Any
    ) -> tuple[int, int]:
        try:
            reply = self.store.execute_atomic(
                script,
                [balance_key(user_id), transactions_key(user_id)],
                [amount, tx.to_json(), tx.timestamp, *extra],
            )
        except StoreError as exc:
            self._emit(
                "transaction_failed",
                {"user_id": user_id, "transaction_id": tx.id, "action": tx.action, "error": str(exc)},
            )
            raise TransactionFailure(f"{label} failed: {exc}", tx.id, user_id) from exc
        return self._unpack_reply(reply, user_id, tx.id)

    # ---- mutations ----

    def initialize_user(self, user_id: str, starting_balance: int | None = None) -> TransactionResult:
        """Create a user's ledger with a genesis transaction.

        Safe to call any number of times, concurrently: the first call wins and
        every other call returns the existing balance with ``already_existed``.
        """
        validate_user_id(user_id)
        starting = validate_starting_balance(
            self.settings.default_credits if starting_balance is None else starting_balance
        )

        timestamp = self._clock()
        tx = Transaction(
            id=new_transaction_id(timestamp),
            amount=starting,
            action=GENESIS_ACTION,
            timestamp=timestamp,
            metadata={"starting_credits": starting},
        )
        status, balance = self._run_mutation(INITIALIZE_SCRIPT, user_id, tx, starting, "User initialization")
        if status != _STATUS_OK:
            return TransactionResult(ALREADY_INITIALIZED, balance, timestamp, already_existed=True)

        result = TransactionResult(tx.id, balance, timestamp)
        self._emit(
            "user_initialized",
            {"user_id": user_id, "transaction_id": tx.id, "balance": balance},
            committed=True,
            result=result,
        )
        return result

    def deduct(
        self,
        user_id: str,
        amount: int,
        action: str,
        metadata: Mapping[str, Any] | None = None,
    ) -> TransactionResult:
        """Atomically deduct ``amount`` credits.

        Raises:
            InsufficientFunds: the balance is below ``amount``; nothing changes.
            AuditLogFailure: with ``committed`` set, the deduction landed but its
                event could not be written; ``result`` holds the outcome.
        """
        validate_user_id(user_id)
        value = validate_amount(amount)
        validate_action(action)
        meta = validate_metadata(metadata)

        timestamp = self._clock()
        tx = Transaction(new_transaction_id(timestamp), -value, action, timestamp, meta)
        status, balance = self._run_mutation(DEDUCT_SCRIPT, user_id, tx, value, "Deduction")
        if status != _STATUS_OK:
            self._emit(
                "insufficient_credits",
                {"user_id": user_id, "action": action, "required": value, "available": balance},
            )
            raise InsufficientFunds(required=value, available=balance)

        result = TransactionResult(tx.id, balance, timestamp)
        self._emit(
            "credits_deducted",
            {"user_id": user_id, "transaction_id": tx.id, "action": action, "amount": value, "balance": balance},
            committed=True,
            result=result,
        )
        return result

    def add(
        self,
        user_id: str,
        amount: int,
        action: str,
        metadata: Mapping[str, Any] | None = None,
    ) -> TransactionResult:
        """Atomically add credits (purchases, grants, refunds).

        The ledger must already exist; call :meth:`initialize_user` first.
        """
        validate_user_id(user_id)
        value = validate_amount(amount)
        validate_action(action)
        meta = validate_metadata(metadata)

        timestamp = self._clock()
        tx = Transaction(new_transaction_id(timestamp), value, action, timestamp, meta)
        status, balance = self._run_mutation(ADD_SCRIPT, user_id, tx, value, "Addition", MAX_CREDITS)
        if status == _STATUS_OVER_LIMIT:
            raise TransactionFailure(
                f"Adding {value} to balance {balance} would exceed the maximum balance of {MAX_CREDITS}",
                tx.id,
                user_id,
            )
        if status != _STATUS_OK:
            raise TransactionFailure(f"Ledger for user {user_id} is not initialized", tx.id, user_id)

        result = TransactionResult(tx.id, balance, timestamp)
        self._emit(
            "credits_added",
            {"user_id": user_id, "transaction_id": tx.id, "action": action, "amount": value, "balance": balance},
            committed=True,
            result=result,
        )
        return result

    def charge(
        self,
        user_id: str,
        action: str,
        usage: float = 1,
        metadata: Mapping[str, Any] | None = None,
    ) -> TransactionResult:
        """Price ``action`` for ``usage`` and deduct the resulting cost."""
        if self.pricing is None:
            raise ValidationError("charge requires a pricing engine")
        cost = self.pricing.calculate_cost(action, usage)
        merged = dict(metadata or {})
        merged.setdefault("usage", usage)
        return self.deduct(user_id, cost, action, merged)

    # ---- reads ----

    def _read_balance(self, user_id: str) -> tuple[str | None, int]:
        try:
            raw = self.store.get(balance_key(user_id))
        except StoreError as exc:
            raise TransactionFailure(f"Balance read failed: {exc}", user_id=user_id) from exc
        if raw is None:
            return None, 0
        balance = _parse_int(raw)
        if balance is None:
            raise TransactionFailure(f"Cached balance is not an integer: {raw!r}", user_id=user_id)
        return raw, balance

    def get_balance(self, user_id: str) -> int:
        """O(1) cached balance; a ledger that was never initialized reads as 0."""
        validate_user_id(user_id)
        return self._read_balance(user_id)[1]

    def has_sufficient(self, user_id: str, amount: int) -> bool:
        """Advisory pre-check only; :meth:`deduct` is what enforces the balance."""
        value = validate_amount(amount)
        return self.get_balance(user_id) >= value

    def _parse_records(self, records: list[str], user_id: str) -> list[Transaction]:
        out: list[Transaction] = []
        for raw in records:
            try:
                out.append(Transaction.from_json(raw))
            except ValueError as exc:
                raise TransactionFailure(f"Failed to parse transaction data: {exc}", user_id=user_id) from exc
        return out

    def get_transactions(
        self,
        user_id: str,
        *,
        limit: int | None = None,
        start_time: int | None = None,
        end_time: int | None = None,
    ) -> list[Transaction]:
        """Transaction history, newest first.

        Without time bounds this reads the newest ``limit`` entries by rank.
        With bounds it reads ``[start_time, end_time]`` (``end_time`` defaults to
        now) and lets the store apply the limit, so at most ``limit`` records
        are transferred however wide the window is.
        """
        validate_user_id(user_id)
        query = validate_query(
            self.settings.default_query_limit if limit is None else limit,
            start_time,
            end_time,
            max_limit=self.settings.max_query_limit,
        )
        key = transactions_key(user_id)
        try:
            if not query.time_bounded:
                records = self.store.zrange_by_rank(key, 0, query.limit - 1, reverse=True)
            else:
                minimum = query.start_time if query.start_time is not None else 0
                maximum = query.end_time if query.end_time is not None else self._clock()
                records = self.store.zrange_by_score(
                    key, minimum, maximum, reverse=True, offset=0, count=query.limit
                )
        except StoreError as exc:
            raise TransactionFailure(f"Transaction query failed: {exc}", user_id=user_id) from exc
        return self._parse_records(records, user_id)

    # ---- reconciliation ----

    def _scan_log(self, user_id: str) -> tuple[int, int]:
        """Full log scan: returns ``(sum of amounts, entry count)``."""
        try:
            records = self.store.zrange_by_rank(transactions_key(user_id), 0, -1)
        except StoreError as exc:
            raise TransactionFailure(f"Transaction log scan failed: {exc}", user_id=user_id) from exc
        transactions = self._parse_records(records, user_id)
        return sum(tx.amount for tx in transactions), len(transactions)

    def verify_balance(self, user_id: str) -> BalanceVerification:
        """Compare the cached balance with the sum of the full log (O(N))."""
        validate_user_id(user_id)
        _, cached = self._read_balance(user_id)
        calculated, _ = self._scan_log(user_id)
        difference = cached - calculated
        verification = BalanceVerification(
            valid=difference == 0,
            cached=cached,
            calculated=calculated,
            difference=difference,
        )
        self._emit("balance_verified", {"user_id": user_id, **verification.to_dict()})
        return verification

    def rebuild_balance(self, user_id: str) -> int:
        """Overwrite the cached balance with the log sum, then re-verify.

        The write is a compare-and-set: it only lands if neither the cache
        nor the log changed since the scan. A lost race or a failed
        re-verification raises :class:`ReconciliationFailure`.
        """
        validate_user_id(user_id)
        try:
            raw = self.store.get(balance_key(user_id))
        except StoreError as exc:
            raise TransactionFailure(f"Balance read failed: {exc}", user_id=user_id) from exc
        calculated, count = self._scan_log(user_id)
        if raw is None and count == 0:
            # never initialized; writing a zero here would fake a ledger
            return 0

        try:
            reply = self.store.execute_atomic(
                REBUILD_SCRIPT,
                [balance_key(user_id), transactions_key(user_id)],
                ["" if raw is None else raw, count, calculated],
            )
        except StoreError as exc:
            raise TransactionFailure(f"Balance rebuild failed: {exc}", user_id=user_id) from exc

        if not isinstance(reply, (list, tuple)) or len(reply) != 2 or _parse_int(reply[0]) is None:
            raise TransactionFailure(f"Malformed script reply: {reply!r}", user_id=user_id)
        if _parse_int(reply[0]) != _STATUS_OK:
            self._emit(
                "reconciliation_failed",
                {"user_id": user_id, "reason": "concurrent_write", "calculated": calculated},
            )
            raise ReconciliationFailure(user_id, _parse_int(reply[1]), calculated)

        verification = self.verify_balance(user_id)
        if not verification.valid:
            self._emit(
                "reconciliation_failed",
                {"user_id": user_id, "reason": "verification", **verification.to_dict()},
            )
            raise ReconciliationFailure(user_id, verification.cached, verification.calculated)

        self._emit(
            "balance_rebuilt",
            {"user_id": user_id, "previous": raw, "balance": calculated},
            committed=True,
            result=calculated,
        )
        return calculated
