"""Credits ledger command-line entrypoint."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Sequence

from dotenv import load_dotenv

from .config import AppConfig, apply_env_overrides, load_config
from .ledger import CreditsError, CreditsLedger, PricingEngine, reconcile_users

DEFAULT_CONFIG_PATH = "config/config.yaml"


def _metadata(raw: str | None) -> dict[str, Any] | None:
    if raw is None:
        return None
    parsed = json.loads(raw)
    if not isinstance(parsed, dict):
        raise ValueError("--metadata must be a JSON object")
    return parsed


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="credits-ledger", description="Manage the shared credits ledger")
    parser.add_argument(
        "--config",
        default=None,
        help=f"Path to config YAML (default: {DEFAULT_CONFIG_PATH} when present, else built-in defaults)",
    )
    parser.add_argument("--redis-url", default=None, help="Redis URL override")
    sub = parser.add_subparsers(dest="command", required=True)

    init = sub.add_parser("init", help="Initialize a user's ledger")
    init.add_argument("user_id")
    init.add_argument("--credits", type=int, default=None, help="Starting balance")

    balance = sub.add_parser("balance", help="Show the cached balance")
    balance.add_argument("user_id")

    for name, help_text in (("deduct", "Deduct credits"), ("add", "Add credits")):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("user_id")
        cmd.add_argument("amount", type=int)
        cmd.add_argument("action")
        cmd.add_argument("--metadata", default=None, help="JSON object stored with the transaction")

    charge = sub.add_parser("charge", help="Price an action and deduct its cost")
    charge.add_argument("user_id")
    charge.add_argument("action")
    charge.add_argument("usage", type=float, nargs="?", default=1.0)
    charge.add_argument("--metadata", default=None, help="JSON object stored with the transaction")

    history = sub.add_parser("history", help="List transactions, newest first")
    history.add_argument("user_id")
    history.add_argument("--limit", type=int, default=None)
    history.add_argument("--start", type=int, default=None, help="Start timestamp (ms, inclusive)")
    history.add_argument("--end", type=int, default=None, help="End timestamp (ms, inclusive)")

    verify = sub.add_parser("verify", help="Compare cached balance with the transaction log")
    verify.add_argument("user_id")

    rebuild = sub.add_parser("rebuild", help="Rebuild a cached balance from the transaction log")
    rebuild.add_argument("user_id")

    reconcile = sub.add_parser("reconcile", help="Verify and repair balances for many users")
    reconcile.add_argument("user_ids", nargs="*")
    reconcile.add_argument("--users-file", default=None, help="File with one user id per line")
    reconcile.add_argument("--dry-run", action="store_true", help="Report inconsistencies without fixing")

    cost = sub.add_parser("cost", help="Price an action without touching the ledger")
    cost.add_argument("action")
    cost.add_argument("usage", type=float, nargs="?", default=1.0)

    events = sub.add_parser("events", help="Show recent ledger audit events")
    events.add_argument("--limit", type=int, default=20)
    return parser


def _load_runtime_config(path: str | None, redis_url: str | None) -> AppConfig:
    if path is not None:
        config = load_config(path)
    elif Path(DEFAULT_CONFIG_PATH).exists():
        config = load_config(DEFAULT_CONFIG_PATH)
    else:
        config = apply_env_overrides(AppConfig())
    if redis_url:
        config.store.url = redis_url
    return config


def _read_user_ids(args: argparse.Namespace) -> list[str]:
    user_ids = list(args.user_ids)
    if args.users_file:
        text = Path(args.users_file).read_text(encoding="utf-8")
        user_ids.extend(line.strip() for line in text.splitlines() if line.strip())
    return user_ids


def _print(payload: Any) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=True))


def _dispatch(ledger: CreditsLedger, args: argparse.Namespace) -> int:
    command = args.command
    if command == "init":
        _print(ledger.initialize_user(args.user_id, args.credits).to_dict())
    elif command == "balance":
        _print({"user_id": args.user_id, "balance": ledger.get_balance(args.user_id)})
    elif command == "deduct":
        _print(ledger.deduct(args.user_id, args.amount, args.action, _metadata(args.metadata)).to_dict())
    elif command == "add":
        _print(ledger.add(args.user_id, args.amount, args.action, _metadata(args.metadata)).to_dict())
    elif command == "charge":
        _print(ledger.charge(args.user_id, args.action, args.usage, _metadata(args.metadata)).to_dict())
    elif command == "history":
        txs = ledger.get_transactions(args.user_id, limit=args.limit, start_time=args.start, end_time=args.end)
        _print([tx.to_dict() for tx in txs])
    elif command == "verify":
        _print(ledger.verify_balance(args.user_id).to_dict())
    elif command == "rebuild":
        _print({"user_id": args.user_id, "balance": ledger.rebuild_balance(args.user_id)})
    elif command == "reconcile":
        stats = reconcile_users(ledger, _read_user_ids(args), fix=not args.dry_run)
        print(stats.format_summary())
        return 1 if stats.errors else 0
    elif command == "cost":
        pricing = ledger.pricing or PricingEngine()
        _print({"action": args.action, "usage": args.usage, "cost": pricing.calculate_cost(args.action, args.usage)})
    elif command == "events":
        if ledger.event_logger is None:
            print("event logging is disabled (logging.enabled: false)", file=sys.stderr)
            return 1
        _print(ledger.event_logger.read_recent(args.limit))
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    load_dotenv()
    args = _build_parser().parse_args(argv)
    try:
        config = _load_runtime_config(args.config, args.redis_url)
    except FileNotFoundError as exc:
        print(json.dumps({"kind": "usage", "message": f"config file not found: {exc.filename}"}), file=sys.stderr)
        return 2
    ledger = CreditsLedger.from_config(config)
    try:
        return _dispatch(ledger, args)
    except CreditsError as exc:
        print(json.dumps(exc.to_dict(), ensure_ascii=True), file=sys.stderr)
        return 1
    except ValueError as exc:
        print(json.dumps({"kind": "usage", "message": str(exc)}), file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
