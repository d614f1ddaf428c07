"""JSONL log with one span per download attempt."""

from __future__ import annotations

import json
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

SPAN_TIME_FORMAT = "%Y-%m-%d %H:%M:%S %z"


def now() -> datetime:
    """Return the current local time as an aware datetime."""
    return datetime.now().astimezone()


def format_time(value: datetime) -> str:
    return value.strftime(SPAN_TIME_FORMAT)


class SpanLog:
    """
    Append-only JSONL file shared by all download workers.

    Each line is a JSON object describing one attempt with the keys
    `t0`, `t`, `worker_id`, `name`, `version`, `reason`, `url`,
    `content_length`, `bytes`, `ok`, `kind`, and `error`.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    @classmethod
    def for_operation(
        cls,
        logs_dir: Path,
        operation: str,
        *,
        when: datetime | None = None,
    ) -> SpanLog:
        """Return a SpanLog named after the operation and its start time."""
        when = when if when is not None else datetime.now(timezone.utc)
        stamp = when.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        return cls(logs_dir / f"{stamp}_{operation}.jsonl")

    def write(self, span: dict[str, Any]) -> None:
        line = json.dumps(span, sort_keys=True)
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a") as filep:
                filep.write(line + "\n")

    def read(self) -> list[dict[str, Any]]:
        """Read back every span written so far."""
        if not self.path.exists():
            return []
        return [json.loads(line) for line in self.path.read_text().splitlines() if line.strip()]
