import csv
import json

from unclaimed.storage.models import PropertyRecord
from unclaimed.storage.writers import (
    DEFAULT_MARKER_COLOR,
    build_feature_collection,
    marker_color,
    write_csv,
    write_geojson,
)


def _record(record_id: str, **overrides) -> PropertyRecord:
    values = {
        "id": record_id,
        "property_id": f"P{record_id}",
        "property_type": "CK01: Checks",
        "owner_name": "JANE DOE",
        "owner_city": "Sacramento",
        "holder_name": "First Bank",
        "owner_latitude": 38.58,
        "owner_longitude": -121.49,
    }
    values.update(overrides)
    return PropertyRecord(**values)


def test_marker_color_uses_type_code():
    assert marker_color("CK01: Checks") == "#8B5CF6"
    assert marker_color("MS16") == "#06B6D4"
    assert marker_color("ZZ99: Unknown") == DEFAULT_MARKER_COLOR
    assert marker_color("") == DEFAULT_MARKER_COLOR


def test_feature_collection_skips_records_without_owner_coordinates():
    records = [
        _record("1"),
        _record("2", owner_latitude=None, owner_longitude=None, holder_latitude=1.0, holder_longitude=1.0),
    ]

    collection = build_feature_collection(records)

    assert collection["type"] == "FeatureCollection"
    assert len(collection["features"]) == 1
    feature = collection["features"][0]
    assert feature["geometry"]["coordinates"] == [-121.49, 38.58]
    assert feature["properties"]["marker_color"] == "#8B5CF6"


def test_feature_collection_filters_on_term():
    records = [
        _record("1", owner_name="JANE DOE"),
        _record("2", owner_name="JOHN ROE", owner_city="Fresno"),
        _record("3", owner_name="MARY MAJOR", holder_name="Fresno Credit Union"),
    ]

    collection = build_feature_collection(records, "fresno")

    assert [feature["properties"]["id"] for feature in collection["features"]] == ["2", "3"]


def test_write_geojson(tmp_path):
    target = write_geojson(build_feature_collection([_record("1")]), tmp_path / "maps" / "owners.geojson")
    payload = json.loads(target.read_text(encoding="utf-8"))
    assert len(payload["features"]) == 1


def test_write_csv(tmp_path):
    assert write_csv([], tmp_path / "empty.csv") is None
    target = write_csv([{"property_id": "1", "owner_name": "A"}, {"property_id": "2", "owner_name": "B"}], tmp_path / "out.csv")
    with target.open(newline="", encoding="utf-8") as handle:
        rows = list(csv.DictReader(handle))
    assert [row["property_id"] for row in rows] == ["1", "2"]
