"""Administrative status helpers."""
from __future__ import annotations

from pathlib import Path
from typing import Dict, List

import orjson


def summarise_runs(metrics_dir: Path, *, limit: int = 10) -> List[Dict[str, object]]:
    """Summarise the most recent metrics exports written by CLI runs."""
    if not metrics_dir.exists():
        return []
    runs: List[Dict[str, object]] = []
    for path in sorted(metrics_dir.glob("*.json"), key=lambda item: item.stat().st_mtime, reverse=True)[:limit]:
        try:
            payload = orjson.loads(path.read_bytes())
        except orjson.JSONDecodeError:
            continue
        command = path.stem.rsplit("_", 1)[0]
        runs.append({
            "command": command,
            "run_id": payload.get("run_id"),
            "generated_at": payload.get("generated_at"),
            "hit_rate": payload.get("hit_rate"),
            "counters": {key: value for key, value in payload.get("counters", {}).items() if value},
        })
    return runs
