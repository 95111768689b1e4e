"""JSONL audit logging for ledger events."""

from __future__ import annotations

import json
import os
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


class LedgerEventLogger:
    """Append-only JSONL logger for ledger mutations and reconciliation runs.

    ``sequence`` counts events written by this logger instance only, so it is
    not unique in a file shared by several processes. Each record also carries
    the writer's ``pid``; ``timestamp`` orders records across writers.
    """

    def __init__(self, *, logs_dir: str, event_file_name: str = "ledger_events.jsonl") -> None:
        self.logs_dir = Path(logs_dir)
        self.output_path = self.logs_dir / event_file_name
        self.sequence = 0
        self._lock = threading.Lock()

        self.logs_dir.mkdir(parents=True, exist_ok=True)
        self.output_path.touch(exist_ok=True)

    def _timestamp(self) -> str:
        return datetime.now(timezone.utc).isoformat()

    def log(self, event_type: str, data: dict[str, Any]) -> None:
        with self._lock:
            self.sequence += 1
            payload = {
                "timestamp": self._timestamp(),
                "sequence": self.sequence,
                "pid": os.getpid(),
                "event_type": event_type,
                **data,
            }
            with self.output_path.open("a", encoding="utf-8") as f:
                f.write(json.dumps(payload, ensure_ascii=True) + "\n")

    def read_recent(self, n: int = 50) -> list[dict[str, Any]]:
        if n <= 0:
            return []
        if not self.output_path.exists():
            return []
        lines = self.output_path.read_text(encoding="utf-8").splitlines()
        result: list[dict[str, Any]] = []
        for raw in lines[-n:]:
            try:
                result.append(json.loads(raw))
            except json.JSONDecodeError:
                continue
        return result
