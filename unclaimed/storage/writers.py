"""Export writers for search results and map layers."""
from __future__ import annotations

import csv
from pathlib import Path
from typing import Dict, Iterable, List

import orjson

from unclaimed.storage.models import PropertyRecord

__all__ = [
    "MARKER_COLORS",
    "build_feature_collection",
    "marker_color",
    "matches_term",
    "write_csv",
    "write_geojson",
]

DEFAULT_MARKER_COLOR = "#6B7280"

# Property type code (the part before ':') -> marker colour.
MARKER_COLORS = {
    "AC01": "#3B82F6",
    "AC02": "#10B981",
    "CK01": "#8B5CF6",
    "CK15": "#F59E0B",
    "CK99": "#EF4444",
    "MS01": "#EAB308",
    "MS05": "#6366F1",
    "MS09": "#EC4899",
    "MS11": "#14B8A6",
    "MS16": "#06B6D4",
    "SC01": "#059669",
    "SC16": "#7C3AED",
    "SC20": "#65A30D",
    "TR04": "#D97706",
    "IN02": "#F43F5E",
    "IN03": "#64748B",
    "IN05": "#71717A",
    "MI02": "#78716C",
}


def marker_color(property_type: str) -> str:
    code = (property_type or "").split(":")[0].strip()
    return MARKER_COLORS.get(code, DEFAULT_MARKER_COLOR)


def matches_term(record: PropertyRecord, term: str) -> bool:
    """Case-insensitive match on owner name, holder name, property type or owner city."""
    needle = term.strip().lower()
    if not needle:
        return True
    haystack = (record.owner_name, record.holder_name, record.property_type, record.owner_city)
    return any(needle in (value or "").lower() for value in haystack)


def build_feature_collection(records: Iterable[PropertyRecord], term: str = "") -> Dict[str, object]:
    """GeoJSON points at each record's owner location."""
    features: List[Dict[str, object]] = []
    for record in records:
        if not record.has_owner_coordinates() or not matches_term(record, term):
            continue
        features.append({
            "type": "Feature",
            "geometry": {
                "type": "Point",
                # GeoJSON positions are longitude first.
                "coordinates": [record.owner_longitude, record.owner_latitude],
            },
            "properties": {
                "id": record.id,
                "property_id": record.property_id,
                "property_type": record.property_type,
                "owner_name": record.owner_name,
                "owner_city": record.owner_city,
                "owner_state": record.owner_state,
                "holder_name": record.holder_name,
                "current_cash_balance": record.current_cash_balance,
                "marker_color": marker_color(record.property_type),
            },
        })
    return {"type": "FeatureCollection", "features": features}


def write_geojson(collection: Dict[str, object], path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(orjson.dumps(collection, option=orjson.OPT_INDENT_2))
    return path


def write_csv(entities: Iterable[Dict[str, object]], path: Path) -> Path | None:
    rows = list(entities)
    if not rows:
        return None
    fieldnames = list(rows[0].keys())
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.DictWriter(handle, fieldnames=fieldnames)
        writer.writeheader()
        writer.writerows(rows)
    return path
