"""Quarantine handling for rejected import rows."""
from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Dict, List

import orjson


class Quarantine:
    """Writes rows that failed validation to a directory for inspection."""

    def __init__(self, root: Path) -> None:
        self._root = root
        self._root.mkdir(parents=True, exist_ok=True)

    def reject(self, *, entity: Dict[str, object], reason: List[str]) -> Path:
        """Persist the rejected row with accompanying reasons."""
        timestamp = datetime.utcnow().strftime("%Y%m%dT%H%M%S%f")
        target = self._root / f"reject_{timestamp}.json"
        suffix = 1
        while target.exists():
            target = self._root / f"reject_{timestamp}_{suffix}.json"
            suffix += 1
        blob = {"entity": entity, "reason": reason}
        target.write_bytes(orjson.dumps(blob, option=orjson.OPT_INDENT_2))
        return target
