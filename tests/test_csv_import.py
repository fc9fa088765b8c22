import asyncio
import json

import pytest

from unclaimed.ingest.csv_import import (
    ImportFailed,
    import_csv,
    parse_csv,
    parse_decimal,
    parse_int,
    to_db_record,
    validate_row,
)
from unclaimed.observability.metrics import MetricsRegistry
from unclaimed.quality.quarantine import Quarantine
from unclaimed.storage.store import SQLiteRecordStore, StorePersistError

HEADER = (
    "PROPERTY_ID;PROPERTY_TYPE;CASH_REPORTED;OWNER_NAME;OWNER_STREET_1;OWNER_CITY;OWNER_STATE;"
    "CURRENT_CASH_BALANCE;NUMBER_OF_PAID_CLAIMS;HOLDER_NAME"
)


def _csv(*lines: str) -> str:
    return "\n".join((HEADER,) + lines) + "\n"


def test_parse_csv_trims_and_skips_mismatched_rows():
    text = _csv(
        " 1001 ;CK01: Checks;$1,250.50;JANE DOE;1 Main St;Sacramento;CA;1,250.50;0;First Bank",
        "1002;MS01;10;SHORT ROW",
        "",
    )

    rows = parse_csv(text)

    assert len(rows) == 1
    assert rows[0]["PROPERTY_ID"] == "1001"
    assert rows[0]["CASH_REPORTED"] == "$1,250.50"


def test_parse_csv_empty_text():
    assert parse_csv("   \n") == []


@pytest.mark.parametrize(
    "raw, expected",
    [("$1,250.50", 1250.5), ("-3.25", -3.25), ("", 0.0), ("N/A", 0.0), (None, 0.0), ("12.5.7", 12.5)],
)
def test_parse_decimal(raw, expected):
    assert parse_decimal(raw) == pytest.approx(expected)


@pytest.mark.parametrize("raw, expected", [("1,024", 1024), ("", 0), ("two", 0), ("1-2", 0)])
def test_parse_int(raw, expected):
    assert parse_int(raw) == expected


def test_validate_row_lists_every_missing_field():
    errors = validate_row({"PROPERTY_ID": "", "OWNER_NAME": "  ", "PROPERTY_TYPE": "CK01"})
    assert errors == ["Property ID is required", "Owner name is required"]
    assert validate_row({"PROPERTY_ID": "1", "OWNER_NAME": "A", "PROPERTY_TYPE": "B"}) == []


def test_to_db_record_maps_and_coerces_columns():
    record = to_db_record({
        "PROPERTY_ID": "1001",
        "PROPERTY_TYPE": "CK01: Checks",
        "OWNER_NAME": "JANE DOE",
        "CURRENT_CASH_BALANCE": "$2,000.00",
        "NUMBER_OF_PAID_CLAIMS": "3",
    })
    assert record["property_id"] == "1001"
    assert record["current_cash_balance"] == 2000.0
    assert record["number_of_paid_claims"] == 3
    assert record["cash_reported"] == 0.0
    assert record["holder_city"] == ""


def test_import_csv_inserts_in_batches_and_quarantines_rejects(tmp_path):
    store = SQLiteRecordStore(tmp_path / "unclaimed.db")
    quarantine = Quarantine(tmp_path / "quarantine")
    metrics = MetricsRegistry()
    text = _csv(
        "1001;CK01;1;JANE DOE;1 Main St;Sacramento;CA;1;0;First Bank",
        "1002;CK01;2;JOHN ROE;2 Main St;Fresno;CA;2;0;First Bank",
        ";CK01;3;NO ID;3 Main St;Fresno;CA;3;0;First Bank",
        "1004;MS01;4;MARY MAJOR;4 Main St;Oakland;CA;4;0;Second Bank",
    )

    report = asyncio.run(import_csv(text, store, batch_size=2, quarantine=quarantine, metrics=metrics))

    assert report.parsed == 4
    assert report.inserted == 3
    assert report.errors == ["Row with Property ID : Property ID is required"]
    assert report.summary() == "Successfully processed 3 records. 1 records had errors."
    assert asyncio.run(store.count()) == 3
    assert metrics.get("rows_imported") == 3
    assert metrics.get("rows_rejected") == 1
    rejects = list((tmp_path / "quarantine").glob("reject_*.json"))
    assert len(rejects) == 1
    payload = json.loads(rejects[0].read_text(encoding="utf-8"))
    assert payload["reason"] == ["Property ID is required"]
    assert payload["entity"]["OWNER_NAME"] == "NO ID"


def test_import_csv_header_only_fails(tmp_path):
    store = SQLiteRecordStore(tmp_path / "unclaimed.db")
    with pytest.raises(ImportFailed, match="No valid records found in CSV file"):
        asyncio.run(import_csv(HEADER + "\n", store))


def test_import_csv_all_rows_invalid_fails(tmp_path):
    store = SQLiteRecordStore(tmp_path / "unclaimed.db")
    text = _csv(";CK01;1;;1 Main St;Sacramento;CA;1;0;First Bank")
    with pytest.raises(ImportFailed, match="Please check your CSV format"):
        asyncio.run(import_csv(text, store))
    assert asyncio.run(store.count()) == 0


class _FailingStore:
    async def insert_many(self, rows):
        raise StorePersistError("disk full")


def test_import_csv_batch_failure_raises():
    text = _csv("1001;CK01;1;JANE DOE;1 Main St;Sacramento;CA;1;0;First Bank")
    with pytest.raises(ImportFailed, match="disk full"):
        asyncio.run(import_csv(text, _FailingStore()))
