"""In-process counters for geocoding and import runs."""
from __future__ import annotations

import contextlib
import time
from collections import Counter
from pathlib import Path
from typing import Dict, Iterator, Optional

import orjson
import structlog

LOGGER = structlog.get_logger(__name__)

GEOCODE_COUNTERS = (
    "geocode_requests",
    "geocode_matches",
    "geocode_skipped",
    "geocode_not_found",
    "geocode_errors",
    "rate_limit_waits",
)
HTTP_COUNTERS = ("http_2xx", "http_3xx", "http_4xx", "http_5xx")
RECORD_COUNTERS = ("records_completed", "records_failed", "persist_failures")
IMPORT_COUNTERS = ("rows_imported", "rows_rejected")
TIMERS = ("run_duration_ms",)


class MetricsRegistry:
    """Counters for one CLI run, exported as JSON once it finishes."""

    def __init__(self) -> None:
        self._counters: Counter[str] = Counter()
        for group in (GEOCODE_COUNTERS, HTTP_COUNTERS, RECORD_COUNTERS, IMPORT_COUNTERS, TIMERS):
            for name in group:
                self._counters[name] = 0

    def incr(self, name: str, value: int = 1) -> None:
        self._counters[name] += value

    def get(self, name: str) -> int:
        return self._counters.get(name, 0)

    def observe_http(self, status_code: int) -> None:
        """Count one geocoder response under its status class."""
        self.incr("geocode_requests")
        self.incr(f"http_{status_code // 100}xx")

    def hit_rate(self) -> Optional[float]:
        """Share of attempted lookups that produced coordinates."""
        matches = self.get("geocode_matches")
        attempts = matches + self.get("geocode_not_found") + self.get("geocode_errors")
        if not attempts:
            return None
        return round(matches / attempts, 4)

    def snapshot(self) -> Dict[str, int]:
        return dict(self._counters)

    def export(self, *, path: Path, run_id: str) -> Path:
        """Write the counters and derived rates to ``path``."""
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "run_id": run_id,
            "generated_at": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
            "counters": self.snapshot(),
            "hit_rate": self.hit_rate(),
        }
        path.write_bytes(orjson.dumps(payload, option=orjson.OPT_INDENT_2))
        LOGGER.info("metrics_exported", path=str(path))
        return path


@contextlib.contextmanager
def record_duration(registry: MetricsRegistry, metric_name: str) -> Iterator[None]:
    """Add the wall time of the block, in milliseconds, to ``metric_name``."""
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = int((time.perf_counter() - start) * 1000)
        registry.incr(metric_name, elapsed_ms)
        LOGGER.info("timer_stop", metric=metric_name, duration_ms=elapsed_ms)
