"""JSONL journal store for pipeline events."""

from __future__ import annotations

import json
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

from gated_trading.utils.logging import get_logger

_ALLOWED_LEVELS = {"debug", "info", "warning", "error"}


class JournalStore:
    """Append-only JSONL event store, one file per UTC day."""

    def __init__(self, journal_dir: Path) -> None:
        self._journal_dir = journal_dir
        self._journal_dir.mkdir(parents=True, exist_ok=True)
        self._logger = get_logger("gated_trading.journal.store")

    def append(self, level: str, event: str, payload: dict[str, Any]) -> None:
        """Append one event line to the daily JSONL file."""
        if level not in _ALLOWED_LEVELS:
            raise ValueError(f"unsupported_level: {level}")
        record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": level,
            "event": event,
            "payload": payload,
        }
        file_path = self._file_path_for_day(datetime.now(timezone.utc).date())
        with file_path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(record, ensure_ascii=True, default=str) + "\n")

    def record(self, level: str, event: str, payload: dict[str, Any]) -> None:
        """Fire-and-forget append; failures are logged, never raised."""
        try:
            self.append(level, event, payload)
        except (OSError, TypeError, ValueError) as exc:
            self._logger.warning("journal_write_failed", journal_event=event, error=str(exc))

    def load_recent(self, limit: int) -> list[dict[str, Any]]:
        """Load recent events from the most recent journal files."""
        if limit <= 0:
            return []

        rows: list[dict[str, Any]] = []
        files = sorted(self._journal_dir.glob("*.jsonl"), reverse=True)
        for file in files:
            lines = file.read_text(encoding="utf-8").splitlines()
            for line in reversed(lines):
                if not line.strip():
                    continue
                rows.append(json.loads(line))
                if len(rows) >= limit:
                    return list(reversed(rows))
        return list(reversed(rows))

    def _file_path_for_day(self, day: date) -> Path:
        return self._journal_dir / f"{day.isoformat()}.jsonl"
