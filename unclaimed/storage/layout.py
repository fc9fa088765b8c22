"""Path helpers for the local data directory."""
from __future__ import annotations

from pathlib import Path


class DataLayout:
    """Computes output paths inside the data root."""

    def __init__(
        self,
        *,
        database: Path,
        quarantine: Path,
        exports: Path,
        metrics: Path,
    ) -> None:
        self.database = database
        self.quarantine = quarantine
        self.exports = exports
        self.metrics = metrics
        for path in (database.parent, quarantine, exports, metrics):
            path.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_settings(cls, settings: dict) -> "DataLayout":
        app = settings["app"]
        return cls(
            database=Path(app["database_path"]),
            quarantine=Path(app["quarantine_dir"]),
            exports=Path(app["exports_dir"]),
            metrics=Path(app["metrics_dir"]),
        )

    def metrics_file(self, command: str, run_id: str) -> Path:
        return self.metrics / f"{command}_{run_id}.json"
