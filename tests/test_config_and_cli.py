from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from credits_ledger.cli import main
from credits_ledger.config import REDIS_URL_ENV, AppConfig, apply_env_overrides, load_config
from credits_ledger.ledger import CreditsLedger
from credits_ledger.store import MemoryStore, RedisStore


def _write_memory_config(tmp_path, *, logging_enabled: bool = False) -> str:
    cfg = tmp_path / "config.yaml"
    cfg.write_text(
        f"""
store:
  backend: memory
ledger:
  default_credits: 40
  max_query_limit: 20
logging:
  enabled: {str(logging_enabled).lower()}
  events_dir: {tmp_path / "logs"}
""",
        encoding="utf-8",
    )
    return str(cfg)


def test_config_rejects_unknown_keys(tmp_path) -> None:
    cfg = tmp_path / "bad.yaml"
    cfg.write_text(
        """
store:
  backend: redis
  url: redis://localhost:6379/0
ledger:
  default_credits: 100
unknown_block:
  should_fail: true
""",
        encoding="utf-8",
    )

    with pytest.raises(ValidationError):
        load_config(cfg)


def test_config_rejects_negative_default_credits(tmp_path) -> None:
    cfg = tmp_path / "bad.yaml"
    cfg.write_text("ledger:\n  default_credits: -5\n", encoding="utf-8")
    with pytest.raises(ValidationError):
        load_config(cfg)


def test_config_rejects_non_positive_fixed_price(tmp_path) -> None:
    cfg = tmp_path / "bad.yaml"
    cfg.write_text("pricing:\n  fixed:\n    chat_message: 0\n", encoding="utf-8")
    with pytest.raises(ValidationError):
        load_config(cfg)


def test_empty_config_uses_defaults(tmp_path) -> None:
    cfg = tmp_path / "empty.yaml"
    cfg.write_text("", encoding="utf-8")
    config = load_config(cfg)
    assert config.ledger.default_credits == 100
    assert config.ledger.max_query_limit == 1000
    assert config.pricing.metered["video_generation"].rate == 10
    assert config.pricing.fixed["chat_message"] == 10


def test_env_overrides_redis_url() -> None:
    config = apply_env_overrides(AppConfig(), {REDIS_URL_ENV: "redis://cache:6380/2"})
    assert config.store.url == "redis://cache:6380/2"


def test_from_config_builds_memory_ledger(tmp_path) -> None:
    config = load_config(_write_memory_config(tmp_path))
    ledger = CreditsLedger.from_config(config)
    assert isinstance(ledger.store, MemoryStore)
    assert ledger.initialize_user("u1").balance == 40
    assert ledger.pricing is not None
    assert ledger.event_logger is None


def test_from_config_builds_redis_store_lazily() -> None:
    config = AppConfig()
    ledger = CreditsLedger.from_config(config)
    assert isinstance(ledger.store, RedisStore)


def test_cli_cost(tmp_path, capsys) -> None:
    code = main(["--config", _write_memory_config(tmp_path), "cost", "video_generation", "5.5"])
    assert code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["cost"] == 55


def test_cli_init_uses_config_default(tmp_path, capsys) -> None:
    code = main(["--config", _write_memory_config(tmp_path), "init", "user_1"])
    assert code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["balance"] == 40
    assert payload["already_existed"] is False


def test_cli_reports_typed_errors(tmp_path, capsys) -> None:
    code = main(["--config", _write_memory_config(tmp_path), "deduct", "user_1", "5", "chat_message"])
    assert code == 1
    err = json.loads(capsys.readouterr().err)
    assert err["kind"] == "insufficient_funds"
    assert err["available"] == 0


def test_cli_rejects_bad_metadata(tmp_path, capsys) -> None:
    code = main(
        ["--config", _write_memory_config(tmp_path), "add", "user_1", "5", "grant", "--metadata", "[1, 2]"]
    )
    assert code == 2
    assert json.loads(capsys.readouterr().err)["kind"] == "usage"


def test_cli_reconcile_reads_users_file(tmp_path, capsys) -> None:
    users = tmp_path / "users.txt"
    users.write_text("alice\n\nbob\n", encoding="utf-8")

    code = main(["--config", _write_memory_config(tmp_path), "reconcile", "--users-file", str(users), "carol"])

    assert code == 0
    out = capsys.readouterr().out
    assert "Total users:  3" in out
    assert "Verified:     3" in out


def test_cli_events_requires_logging(tmp_path, capsys) -> None:
    assert main(["--config", _write_memory_config(tmp_path), "events"]) == 1
    assert "disabled" in capsys.readouterr().err


def test_cli_events_lists_recent(tmp_path, capsys) -> None:
    config_path = _write_memory_config(tmp_path, logging_enabled=True)
    assert main(["--config", config_path, "init", "user_1"]) == 0
    capsys.readouterr()

    assert main(["--config", config_path, "events", "--limit", "5"]) == 0
    events = json.loads(capsys.readouterr().out)
    assert events[-1]["event_type"] == "user_initialized"
    assert events[-1]["user_id"] == "user_1"


def test_cli_refuses_missing_config_file(tmp_path, capsys) -> None:
    missing = tmp_path / "typo.yaml"

    code = main(["--config", str(missing), "balance", "user_1"])

    assert code == 2
    err = json.loads(capsys.readouterr().err)
    assert err["kind"] == "usage"
    assert "typo.yaml" in err["message"]


def test_cli_without_config_uses_defaults(tmp_path, monkeypatch, capsys) -> None:
    monkeypatch.chdir(tmp_path)
    code = main(["cost", "chat_message", "2"])
    assert code == 0
    assert json.loads(capsys.readouterr().out)["cost"] == 20
