"""Parsing, validation and loading of the state's semicolon-delimited exports."""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import structlog
from pydantic import BaseModel, field_validator

from unclaimed.observability.metrics import MetricsRegistry
from unclaimed.quality.quarantine import Quarantine
from unclaimed.storage.store import RecordStore, StorePersistError

LOGGER = structlog.get_logger(__name__)

DELIMITER = ";"
DEFAULT_BATCH_SIZE = 100

_DECIMAL_STRIP = re.compile(r"[^\d.-]")
_INT_STRIP = re.compile(r"[^\d-]")
_DECIMAL_PREFIX = re.compile(r"^-?(\d+(\.\d*)?|\.\d+)")

REQUIRED_FIELDS = {
    "PROPERTY_ID": "Property ID is required",
    "OWNER_NAME": "Owner name is required",
    "PROPERTY_TYPE": "Property type is required",
}

# CSV header -> table column
COLUMN_MAP = {
    "PROPERTY_ID": "property_id",
    "PROPERTY_TYPE": "property_type",
    "CASH_REPORTED": "cash_reported",
    "SHARES_REPORTED": "shares_reported",
    "NAME_OF_SECURITIES_REPORTED": "name_of_securities_reported",
    "NO_OF_OWNERS": "no_of_owners",
    "OWNER_NAME": "owner_name",
    "OWNER_STREET_1": "owner_street_1",
    "OWNER_STREET_2": "owner_street_2",
    "OWNER_STREET_3": "owner_street_3",
    "OWNER_CITY": "owner_city",
    "OWNER_STATE": "owner_state",
    "OWNER_ZIP": "owner_zip",
    "OWNER_COUNTRY_CODE": "owner_country_code",
    "CURRENT_CASH_BALANCE": "current_cash_balance",
    "NUMBER_OF_PENDING_CLAIMS": "number_of_pending_claims",
    "NUMBER_OF_PAID_CLAIMS": "number_of_paid_claims",
    "HOLDER_NAME": "holder_name",
    "HOLDER_STREET_1": "holder_street_1",
    "HOLDER_STREET_2": "holder_street_2",
    "HOLDER_STREET_3": "holder_street_3",
    "HOLDER_CITY": "holder_city",
    "HOLDER_STATE": "holder_state",
    "HOLDER_ZIP": "holder_zip",
    "CUSIP": "cusip",
}


class ImportFailed(RuntimeError):
    """Raised when a file yields nothing to import or a batch cannot be written."""


def parse_decimal(value: Optional[str]) -> float:
    """Strip everything but digits, dots and minus signs; 0 when nothing numeric is left."""
    cleaned = _DECIMAL_STRIP.sub("", value or "")
    match = _DECIMAL_PREFIX.match(cleaned)
    if not match:
        return 0.0
    return float(match.group(0))


def parse_int(value: Optional[str]) -> int:
    """Strip everything but digits and minus signs; 0 when the rest is not an integer."""
    cleaned = _INT_STRIP.sub("", value or "")
    if not cleaned:
        return 0
    try:
        return int(cleaned)
    except ValueError:
        return 0


class ImportedProperty(BaseModel):
    """A CSV row converted to table columns."""

    property_id: str
    property_type: str
    cash_reported: float = 0.0
    shares_reported: float = 0.0
    name_of_securities_reported: str = ""
    no_of_owners: str = ""
    owner_name: str
    owner_street_1: str = ""
    owner_street_2: str = ""
    owner_street_3: str = ""
    owner_city: str = ""
    owner_state: str = ""
    owner_zip: str = ""
    owner_country_code: str = ""
    current_cash_balance: float = 0.0
    number_of_pending_claims: int = 0
    number_of_paid_claims: int = 0
    holder_name: str = ""
    holder_street_1: str = ""
    holder_street_2: str = ""
    holder_street_3: str = ""
    holder_city: str = ""
    holder_state: str = ""
    holder_zip: str = ""
    cusip: str = ""

    @field_validator("cash_reported", "shares_reported", "current_cash_balance", mode="before")
    @classmethod
    def _coerce_decimal(cls, value: object) -> float:
        if isinstance(value, (int, float)):
            return float(value)
        return parse_decimal(str(value) if value is not None else "")

    @field_validator("number_of_pending_claims", "number_of_paid_claims", mode="before")
    @classmethod
    def _coerce_int(cls, value: object) -> int:
        if isinstance(value, int):
            return value
        return parse_int(str(value) if value is not None else "")


@dataclass
class ImportReport:
    """Outcome of loading one CSV file."""

    parsed: int = 0
    inserted: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def rejected(self) -> int:
        return len(self.errors)

    def summary(self) -> str:
        message = f"Successfully processed {self.inserted} records."
        if self.errors:
            message += f" {len(self.errors)} records had errors."
        return message


def parse_csv(text: str) -> List[Dict[str, str]]:
    """Split the export into rows keyed by the header names.

    Rows whose column count differs from the header are dropped. The format
    has no quoting, so a plain split on the delimiter is exact.
    """
    lines = text.strip().splitlines()
    if not lines:
        return []
    headers = [header.strip() for header in lines[0].split(DELIMITER)]
    rows: List[Dict[str, str]] = []
    for line in lines[1:]:
        values = line.split(DELIMITER)
        if len(values) != len(headers):
            continue
        rows.append({header: value.strip() for header, value in zip(headers, values)})
    return rows


def validate_row(row: Dict[str, str]) -> List[str]:
    """Return the reasons the row cannot be imported; empty when it is valid."""
    return [message for column, message in REQUIRED_FIELDS.items() if not (row.get(column) or "").strip()]


def to_db_record(row: Dict[str, str]) -> Dict[str, object]:
    """Convert a validated CSV row into column values for the store."""
    mapped = {column: row.get(header, "") for header, column in COLUMN_MAP.items()}
    return ImportedProperty(**mapped).model_dump()


async def import_csv(
    text: str,
    store: RecordStore,
    *,
    batch_size: int = DEFAULT_BATCH_SIZE,
    quarantine: Optional[Quarantine] = None,
    metrics: Optional[MetricsRegistry] = None,
) -> ImportReport:
    """Validate every row and insert the valid ones in batches."""
    metrics = metrics or MetricsRegistry()
    rows = parse_csv(text)
    if not rows:
        raise ImportFailed("No valid records found in CSV file")

    report = ImportReport(parsed=len(rows))
    valid: List[Dict[str, object]] = []
    for row in rows:
        errors = validate_row(row)
        if errors:
            report.errors.append(f"Row with Property ID {row.get('PROPERTY_ID', '')}: {', '.join(errors)}")
            metrics.incr("rows_rejected")
            if quarantine is not None:
                quarantine.reject(entity=row, reason=errors)
            continue
        valid.append(to_db_record(row))

    if not valid:
        raise ImportFailed("No valid records found. Please check your CSV format.")

    for start in range(0, len(valid), batch_size):
        batch = valid[start:start + batch_size]
        try:
            report.inserted += await store.insert_many(batch)
        except StorePersistError as exc:
            LOGGER.error("import_batch_failed", offset=start, size=len(batch), reason=str(exc))
            raise ImportFailed(f"Failed to import CSV file after {report.inserted} records: {exc}") from exc
        metrics.incr("rows_imported", len(batch))

    LOGGER.info("import_finished", parsed=report.parsed, inserted=report.inserted, rejected=report.rejected)
    return report
