"""Batch geocoding of records that are missing coordinates."""
from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional

import structlog

from unclaimed.geocode.resolver import AddressResolver
from unclaimed.observability.metrics import MetricsRegistry
from unclaimed.observability.tracing import clear_context, clear_record_context, set_context
from unclaimed.storage.models import GeocodingStatus, PropertyRecord
from unclaimed.storage.store import RecordStore, StorePersistError, StoreQueryError

LOGGER = structlog.get_logger(__name__)

DEFAULT_PAGE_SIZE = 100


class AlreadyRunning(RuntimeError):
    """A batch is already in progress for this pipeline."""


class PageFetchError(RuntimeError):
    """The page of records to geocode could not be loaded."""


@dataclass(frozen=True)
class ProgressSnapshot:
    """Point-in-time view of a batch run."""

    total: int = 0
    processed: int = 0
    successful: int = 0
    failed: int = 0
    running: bool = False

    @property
    def percent(self) -> int:
        if self.total == 0:
            return 0
        return round(self.processed / self.total * 100)


ProgressObserver = Callable[[ProgressSnapshot], None]


class PipelineState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


@dataclass
class PipelineControl:
    """Run state shared between whoever starts a batch and whoever stops it."""

    state: PipelineState = PipelineState.IDLE
    cancel_requested: bool = False
    run_id: Optional[str] = None
    started_at: Optional[float] = None


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


class BatchGeocodingPipeline:
    """Geocodes one page of records sequentially, reporting progress after each record."""

    def __init__(
        self,
        store: RecordStore,
        resolver: AddressResolver,
        *,
        metrics: Optional[MetricsRegistry] = None,
        control: Optional[PipelineControl] = None,
    ) -> None:
        self._store = store
        self._resolver = resolver
        self._metrics = metrics or MetricsRegistry()
        self._control = control or PipelineControl()
        self._observers: List[ProgressObserver] = []

    def subscribe(self, observer: ProgressObserver) -> None:
        self._observers.append(observer)

    def is_running(self) -> bool:
        return self._control.state is PipelineState.RUNNING

    def stop(self) -> None:
        """Ask the running batch to finish after the record in flight."""
        if self.is_running():
            LOGGER.info("batch_stop_requested", run_id=self._control.run_id)
            self._control.cancel_requested = True

    def _emit(self, snapshot: ProgressSnapshot) -> None:
        for observer in self._observers:
            observer(snapshot)

    async def start(self, page_size: int = DEFAULT_PAGE_SIZE) -> ProgressSnapshot:
        """Run one pass over up to ``page_size`` records and return the final snapshot.

        Raises `AlreadyRunning` when a pass is in progress and `PageFetchError`
        when the page cannot be loaded; nothing is reported in either case.
        """
        if self.is_running():
            raise AlreadyRunning("Batch geocoding is already running")
        control = self._control
        control.state = PipelineState.RUNNING
        control.cancel_requested = False
        control.run_id = uuid.uuid4().hex[:12]
        control.started_at = time.monotonic()
        set_context(run_id=control.run_id)
        try:
            try:
                records = await self._store.fetch_needing_geocoding(page_size)
            except StoreQueryError as exc:
                LOGGER.error("page_fetch_failed", reason=str(exc))
                raise PageFetchError(f"Failed to load records to geocode: {exc}") from exc
            if not records:
                LOGGER.info("batch_empty")
                control.state = PipelineState.IDLE
                empty = ProgressSnapshot()
                self._emit(empty)
                return empty
            return await self._run(records)
        finally:
            control.state = PipelineState.IDLE
            control.cancel_requested = False
            clear_context()

    async def _run(self, records: List[PropertyRecord]) -> ProgressSnapshot:
        control = self._control
        snapshot = ProgressSnapshot(total=len(records), running=True)
        LOGGER.info("batch_started", total=snapshot.total)
        self._emit(snapshot)
        for record in records:
            if control.cancel_requested:
                LOGGER.info("batch_cancelled", processed=snapshot.processed, total=snapshot.total)
                break
            set_context(run_id=control.run_id or "", record_id=record.id)
            try:
                completed = await self._geocode_record(record)
            except Exception:
                self._metrics.incr("records_failed")
                LOGGER.exception("record_failed")
                completed = False
            finally:
                clear_record_context()
            if completed:
                snapshot = replace(snapshot, successful=snapshot.successful + 1)
            else:
                snapshot = replace(snapshot, failed=snapshot.failed + 1)
            snapshot = replace(snapshot, processed=snapshot.processed + 1)
            self._emit(snapshot)

        control.state = PipelineState.IDLE
        final = replace(snapshot, running=False)
        elapsed = time.monotonic() - control.started_at if control.started_at is not None else 0.0
        LOGGER.info(
            "batch_finished",
            total=final.total,
            processed=final.processed,
            successful=final.successful,
            failed=final.failed,
            elapsed_ms=int(elapsed * 1000),
        )
        self._emit(final)
        return final

    async def _geocode_record(self, record: PropertyRecord) -> bool:
        """Resolve both addresses, persist the outcome and report whether it counts as a success."""
        updates: Dict[str, object] = {
            "geocoded_at": _utcnow(),
            "geocoding_status": GeocodingStatus.PROCESSING,
        }
        owner = await self._resolver.resolve_owner(record)
        if owner is not None:
            updates["owner_latitude"] = owner.latitude
            updates["owner_longitude"] = owner.longitude
        holder = await self._resolver.resolve_holder(record)
        if holder is not None:
            updates["holder_latitude"] = holder.latitude
            updates["holder_longitude"] = holder.longitude

        succeeded = owner is not None or holder is not None
        status = GeocodingStatus.COMPLETED if succeeded else GeocodingStatus.FAILED
        updates["geocoding_status"] = status
        try:
            await self._store.update(record.id, updates)
        except StorePersistError as exc:
            self._metrics.incr("persist_failures")
            self._metrics.incr("records_failed")
            LOGGER.error("record_persist_failed", reason=str(exc))
            return False
        if status is GeocodingStatus.COMPLETED:
            self._metrics.incr("records_completed")
            return True
        self._metrics.incr("records_failed")
        LOGGER.info("record_not_geocoded")
        return False
