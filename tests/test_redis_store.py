from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from credits_ledger.ledger import CreditsLedger, TransactionFailure
from credits_ledger.store import RedisStore, StoreError, load_script


def _store() -> tuple[RedisStore, MagicMock]:
    client = MagicMock()
    return RedisStore(client), client


def test_scripts_are_registered_once_and_called_with_keys_and_args() -> None:
    store, client = _store()
    registered = client.register_script.return_value
    registered.return_value = [0, "90"]
    script = load_script("deduct")

    assert store.execute_atomic(script, ["balance:u1", "txs:u1"], [10, "{}", 5]) == [0, "90"]
    store.execute_atomic(script, ["balance:u1", "txs:u1"], [10, "{}", 6])

    client.register_script.assert_called_once_with(script.source)
    registered.assert_called_with(keys=["balance:u1", "txs:u1"], args=[10, "{}", 6])


def test_each_script_gets_its_own_registration() -> None:
    store, client = _store()
    store.execute_atomic(load_script("add"), ["a", "b"], [1, "{}", 1])
    store.execute_atomic(load_script("initialize"), ["a", "b"], [1, "{}", 1])
    assert client.register_script.call_count == 2


def test_redis_errors_become_store_errors() -> None:
    store, client = _store()
    client.get.side_effect = RedisConnectionError("connection refused")
    client.register_script.return_value.side_effect = RedisConnectionError("timeout")

    with pytest.raises(StoreError, match="GET balance:u1"):
        store.get("balance:u1")
    with pytest.raises(StoreError, match="deduct.v1.lua"):
        store.execute_atomic(load_script("deduct"), ["a", "b"], [1, "{}", 1])


def test_bounded_reverse_score_range_sends_limit() -> None:
    store, client = _store()
    client.zrevrangebyscore.return_value = ["b", "a"]

    assert store.zrange_by_score("txs:u1", 10, 20, reverse=True, count=5) == ["b", "a"]
    client.zrevrangebyscore.assert_called_once_with("txs:u1", 20, 10, start=0, num=5)


def test_forward_score_range_without_limit() -> None:
    store, client = _store()
    client.zrangebyscore.return_value = []
    store.zrange_by_score("txs:u1", 0, 5)
    client.zrangebyscore.assert_called_once_with("txs:u1", 0, 5, start=None, num=None)


def test_rank_range_passes_direction() -> None:
    store, client = _store()
    client.zrange.return_value = ["x"]
    assert store.zrange_by_rank("txs:u1", 0, 9, reverse=True) == ["x"]
    client.zrange.assert_called_once_with("txs:u1", 0, 9, desc=True)


def test_ledger_wraps_redis_outage_as_transaction_failure() -> None:
    store, client = _store()
    client.register_script.return_value.side_effect = RedisConnectionError("down")
    ledger = CreditsLedger(store)

    with pytest.raises(TransactionFailure) as excinfo:
        ledger.deduct("u1", 5, "chat_message")
    assert excinfo.value.user_id == "u1"
    assert excinfo.value.transaction_id is not None
