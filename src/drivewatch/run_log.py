from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path

from .models import TickResult
from .util import format_watermark


def _ts(value: datetime | None) -> str | None:
    return format_watermark(value) if value else None


def log_tick(log_path: Path, result: TickResult, started_at: str, ended_at: str) -> None:
    """Append one tick outcome to the JSONL run log."""
    entry = {
        "run_id": result.run_id,
        "status": result.status,
        "started_at": started_at,
        "ended_at": ended_at,
        "previous_watermark": _ts(result.previous_watermark),
        "watermark": _ts(result.watermark),
        "changes": len(result.changes),
        "deliveries": result.deliveries,
    }
    if result.error:
        entry["error"] = result.error

    log_path.parent.mkdir(parents=True, exist_ok=True)
    with log_path.open("a", encoding="utf-8") as f:
        f.write(json.dumps(entry) + "\n")


def read_runs(log_path: Path, limit: int | None = None) -> list[dict]:
    """
    Read tick records from the JSONL log, oldest first.
    If limit is given, return only the last `limit` records.
    """
    if not log_path.exists():
        return []

    runs = []
    with log_path.open("r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                runs.append(json.loads(line))
            except json.JSONDecodeError:
                continue

    if limit is not None:
        return runs[-limit:] if limit > 0 else []
    return runs
