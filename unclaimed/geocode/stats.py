"""Aggregate geocoding counts for display."""
from __future__ import annotations

from collections import Counter
from dataclasses import asdict, dataclass
from typing import Dict

from unclaimed.storage.models import GeocodingStatus
from unclaimed.storage.store import RecordStore


@dataclass(frozen=True)
class GeocodingStats:
    total: int = 0
    geocoded: int = 0
    pending: int = 0
    failed: int = 0
    null_coordinates: int = 0

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)


async def compute_stats(store: RecordStore) -> GeocodingStats:
    """Count records per geocoding bucket.

    The total and the status breakdown come from separate queries, so the
    figures can be momentarily inconsistent while a batch is running. Records
    whose status was never set only count toward ``total``.
    """
    total = await store.count()
    statuses = Counter(await store.status_values())
    null_coordinates = await store.count_missing_owner_coordinates()
    return GeocodingStats(
        total=total,
        geocoded=statuses[GeocodingStatus.COMPLETED.value],
        pending=statuses[GeocodingStatus.PENDING.value] + statuses[GeocodingStatus.PROCESSING.value],
        failed=statuses[GeocodingStatus.FAILED.value],
        null_coordinates=null_coordinates,
    )
