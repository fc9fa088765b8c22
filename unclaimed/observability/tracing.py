"""Tracing helpers for geocoding runs and outbound requests."""
from __future__ import annotations

import contextlib
import time
from typing import Iterator, Optional

import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars, unbind_contextvars

_LOGGER = structlog.get_logger("unclaimed.trace")


def set_context(*, run_id: str, record_id: Optional[str] = None) -> None:
    if record_id is None:
        bind_contextvars(run_id=run_id)
    else:
        bind_contextvars(run_id=run_id, record_id=record_id)
    _LOGGER.debug("trace_context", run_id=run_id, record_id=record_id)


def clear_record_context() -> None:
    unbind_contextvars("record_id")


def clear_context() -> None:
    clear_contextvars()


@contextlib.contextmanager
def span(*, name: str, query: Optional[str] = None) -> Iterator[None]:
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = int((time.perf_counter() - start) * 1000)
        _LOGGER.debug("trace_span", span=name, query=query, elapsed_ms=elapsed_ms)


def log_request_result(*, query: str, status: int, matches: int, elapsed_ms: int) -> None:
    _LOGGER.info(
        "geocode_request",
        query=query,
        status=status,
        matches=matches,
        elapsed_ms=elapsed_ms,
    )
