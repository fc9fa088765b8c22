"""Record store for unclaimed property rows, backed by SQLite."""
from __future__ import annotations

import asyncio
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Protocol

import structlog

from unclaimed.storage.models import GeocodingStatus, PropertyRecord, SearchFilters

LOGGER = structlog.get_logger(__name__)

TABLE = "unclaimed_properties"

COLUMNS = [
    "id TEXT PRIMARY KEY",
    "property_id TEXT NOT NULL",
    "property_type TEXT NOT NULL",
    "cash_reported REAL DEFAULT 0",
    "shares_reported REAL DEFAULT 0",
    "name_of_securities_reported TEXT",
    "no_of_owners TEXT",
    "owner_name TEXT NOT NULL",
    "owner_street_1 TEXT",
    "owner_street_2 TEXT",
    "owner_street_3 TEXT",
    "owner_city TEXT",
    "owner_state TEXT",
    "owner_zip TEXT",
    "owner_country_code TEXT",
    "current_cash_balance REAL DEFAULT 0",
    "number_of_pending_claims INTEGER DEFAULT 0",
    "number_of_paid_claims INTEGER DEFAULT 0",
    "holder_name TEXT",
    "holder_street_1 TEXT",
    "holder_street_2 TEXT",
    "holder_street_3 TEXT",
    "holder_city TEXT",
    "holder_state TEXT",
    "holder_zip TEXT",
    "cusip TEXT",
    "owner_latitude REAL",
    "owner_longitude REAL",
    "holder_latitude REAL",
    "holder_longitude REAL",
    "geocoded_at TEXT",
    "geocoding_status TEXT",
    "created_at TEXT NOT NULL",
    "updated_at TEXT NOT NULL",
]
COLUMN_NAMES = [column.split()[0] for column in COLUMNS]
NUMERIC_DEFAULTS = {
    "cash_reported": 0.0,
    "shares_reported": 0.0,
    "current_cash_balance": 0.0,
    "number_of_pending_claims": 0,
    "number_of_paid_claims": 0,
}

# Fields the geocoder may write back.
UPDATABLE_COLUMNS = frozenset({
    "owner_latitude",
    "owner_longitude",
    "holder_latitude",
    "holder_longitude",
    "geocoding_status",
    "geocoded_at",
})

RETRYABLE_STATUSES = (GeocodingStatus.PENDING.value, GeocodingStatus.FAILED.value)


class StoreQueryError(RuntimeError):
    """Raised when a read against the store fails."""


class StorePersistError(RuntimeError):
    """Raised when an insert or update against the store fails."""


class RecordStore(Protocol):
    """Query surface consumed by the geocoder, importer and search."""

    async def fetch_needing_geocoding(self, limit: int) -> List[PropertyRecord]: ...

    async def update(self, record_id: str, fields: Mapping[str, object]) -> None: ...

    async def count(self) -> int: ...

    async def count_missing_owner_coordinates(self) -> int: ...

    async def status_values(self) -> List[str]: ...

    async def insert_many(self, rows: Iterable[Mapping[str, object]]) -> int: ...

    async def search(self, filters: SearchFilters, *, limit: int = 1000) -> List[PropertyRecord]: ...

    async def list_geocoded(self, *, limit: int = 1000) -> List[PropertyRecord]: ...


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def _column_value(value: object) -> object:
    if isinstance(value, GeocodingStatus):
        return value.value
    return value


class SQLiteRecordStore:
    """Stores records in a single SQLite table.

    Every call opens its own connection and runs in a worker thread so the
    event loop is never blocked by disk I/O.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self._path)
        connection.row_factory = sqlite3.Row
        return connection

    def _ensure_schema(self) -> None:
        connection = self._connect()
        try:
            connection.execute(f"CREATE TABLE IF NOT EXISTS {TABLE} ({', '.join(COLUMNS)})")
            connection.execute(f"CREATE INDEX IF NOT EXISTS idx_{TABLE}_status ON {TABLE} (geocoding_status)")
            connection.commit()
        finally:
            connection.close()

    def _select(self, sql: str, params: tuple = ()) -> List[sqlite3.Row]:
        connection: Optional[sqlite3.Connection] = None
        try:
            connection = self._connect()
            return connection.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise StoreQueryError(f"Query failed: {exc}") from exc
        finally:
            if connection is not None:
                connection.close()

    @staticmethod
    def _to_records(rows: List[sqlite3.Row]) -> List[PropertyRecord]:
        return [PropertyRecord(**dict(row)) for row in rows]

    async def fetch_needing_geocoding(self, limit: int) -> List[PropertyRecord]:
        """Return up to ``limit`` records that are unset, pending or failed, in table order."""
        sql = (
            f"SELECT * FROM {TABLE} "
            "WHERE geocoding_status IS NULL OR geocoding_status IN (?, ?) "
            "ORDER BY rowid LIMIT ?"
        )
        rows = await asyncio.to_thread(self._select, sql, (*RETRYABLE_STATUSES, limit))
        return self._to_records(rows)

    def _update(self, record_id: str, fields: Mapping[str, object]) -> None:
        unknown = set(fields) - UPDATABLE_COLUMNS
        if unknown:
            raise StorePersistError(f"Columns not updatable: {sorted(unknown)}")
        assignments = {key: _column_value(value) for key, value in fields.items()}
        assignments["updated_at"] = _utcnow()
        clause = ", ".join(f"{key} = :{key}" for key in assignments)
        connection: Optional[sqlite3.Connection] = None
        try:
            connection = self._connect()
            connection.execute(f"UPDATE {TABLE} SET {clause} WHERE id = :record_id", {**assignments, "record_id": record_id})
            connection.commit()
        except sqlite3.Error as exc:
            raise StorePersistError(f"Update of {record_id} failed: {exc}") from exc
        finally:
            if connection is not None:
                connection.close()

    async def update(self, record_id: str, fields: Mapping[str, object]) -> None:
        """Write a partial set of geocoding fields for one record."""
        await asyncio.to_thread(self._update, record_id, dict(fields))

    async def count(self) -> int:
        rows = await asyncio.to_thread(self._select, f"SELECT COUNT(*) FROM {TABLE}")
        return int(rows[0][0])

    async def count_missing_owner_coordinates(self) -> int:
        sql = f"SELECT COUNT(*) FROM {TABLE} WHERE owner_latitude IS NULL OR owner_longitude IS NULL"
        rows = await asyncio.to_thread(self._select, sql)
        return int(rows[0][0])

    async def status_values(self) -> List[str]:
        """Project the non-null geocoding statuses, one entry per record."""
        sql = f"SELECT geocoding_status FROM {TABLE} WHERE geocoding_status IS NOT NULL"
        rows = await asyncio.to_thread(self._select, sql)
        return [row[0] for row in rows]

    def _insert(self, rows: List[Dict[str, object]]) -> int:
        now = _utcnow()
        prepared = []
        for row in rows:
            payload = {name: NUMERIC_DEFAULTS.get(name) for name in COLUMN_NAMES}
            payload.update({key: _column_value(value) for key, value in row.items() if key in payload})
            payload["id"] = payload["id"] or uuid.uuid4().hex
            payload["created_at"] = payload["created_at"] or now
            payload["updated_at"] = now
            prepared.append(payload)
        placeholders = ", ".join(f":{name}" for name in COLUMN_NAMES)
        sql = f"INSERT INTO {TABLE} ({', '.join(COLUMN_NAMES)}) VALUES ({placeholders})"
        connection: Optional[sqlite3.Connection] = None
        try:
            connection = self._connect()
            connection.executemany(sql, prepared)
            connection.commit()
        except sqlite3.Error as exc:
            raise StorePersistError(f"Insert of {len(prepared)} rows failed: {exc}") from exc
        finally:
            if connection is not None:
                connection.close()
        LOGGER.info("records_inserted", count=len(prepared))
        return len(prepared)

    async def insert_many(self, rows: Iterable[Mapping[str, object]]) -> int:
        """Insert rows as-is; ``property_id`` is not unique so there is no upsert."""
        batch = [dict(row) for row in rows]
        if not batch:
            return 0
        return await asyncio.to_thread(self._insert, batch)

    async def search(self, filters: SearchFilters, *, limit: int = 1000) -> List[PropertyRecord]:
        """Case-insensitive substring search, newest records first."""
        clauses: List[str] = []
        params: List[object] = []
        for column, value in filters.text_filters().items():
            clauses.append(f"{column} LIKE ?")
            params.append(f"%{value}%")
        if filters.min_amount is not None:
            clauses.append("current_cash_balance >= ?")
            params.append(filters.min_amount)
        if filters.max_amount is not None:
            clauses.append("current_cash_balance <= ?")
            params.append(filters.max_amount)
        where = f"WHERE {' AND '.join(clauses)} " if clauses else ""
        sql = f"SELECT * FROM {TABLE} {where}ORDER BY created_at DESC, rowid DESC LIMIT ?"
        params.append(limit)
        rows = await asyncio.to_thread(self._select, sql, tuple(params))
        return self._to_records(rows)

    async def list_geocoded(self, *, limit: int = 1000) -> List[PropertyRecord]:
        """Records with owner coordinates, largest balances first."""
        sql = (
            f"SELECT * FROM {TABLE} "
            "WHERE owner_latitude IS NOT NULL AND owner_longitude IS NOT NULL "
            "ORDER BY current_cash_balance DESC LIMIT ?"
        )
        rows = await asyncio.to_thread(self._select, sql, (limit,))
        return self._to_records(rows)

    async def get(self, record_id: str) -> Optional[PropertyRecord]:
        rows = await asyncio.to_thread(self._select, f"SELECT * FROM {TABLE} WHERE id = ?", (record_id,))
        records = self._to_records(rows)
        return records[0] if records else None
