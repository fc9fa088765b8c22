"""Command-line entrypoints for the unclaimed property toolkit."""
from __future__ import annotations

import argparse
import asyncio
import json
import os
import signal
import sys
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

import tomllib
from dotenv import load_dotenv

try:
    import uvloop
except ImportError:  # pragma: no cover - uvloop optional on some platforms
    uvloop = None

from unclaimed.geocode.client import create_geocoding_client
from unclaimed.geocode.pipeline import AlreadyRunning, BatchGeocodingPipeline, PageFetchError, ProgressSnapshot
from unclaimed.geocode.rate_limit import RateLimiter
from unclaimed.geocode.resolver import DEFAULT_BASE_URL, AddressResolver
from unclaimed.geocode.stats import compute_stats
from unclaimed.ingest.csv_import import ImportFailed, import_csv
from unclaimed.observability.log import configure_logging
from unclaimed.observability.metrics import MetricsRegistry, record_duration
from unclaimed.quality.quarantine import Quarantine
from unclaimed.storage.layout import DataLayout
from unclaimed.storage.models import SearchFilters
from unclaimed.storage.store import SQLiteRecordStore, StoreQueryError
from unclaimed.storage.writers import build_feature_collection, write_csv, write_geojson

DEFAULT_SETTINGS = Path("config/settings.toml")
DEFAULT_LOGGING = Path("config/logging.yaml")

ENV_OVERRIDES = {
    "UNCLAIMED_DATABASE_PATH": ("app", "database_path"),
    "GEOCODER_USER_AGENT": ("geocoding", "user_agent"),
}


def load_settings(path: Path) -> Dict[str, object]:
    """Read the TOML configuration file and apply environment overrides."""
    with path.open("rb") as handle:
        settings = tomllib.load(handle)
    for variable, (section, key) in ENV_OVERRIDES.items():
        value = os.getenv(variable)
        if value:
            settings.setdefault(section, {})[key] = value
    return settings


def build_arg_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser."""
    parser = argparse.ArgumentParser(prog="unclaimed", description="Unclaimed property search, import and geocoding")
    sub = parser.add_subparsers(dest="command", required=True)

    importer = sub.add_parser("import-csv", help="Import a semicolon-delimited export")
    importer.add_argument("path", type=Path, help="CSV file to import")
    importer.add_argument("--batch-size", type=int, help="Rows per insert batch")

    search = sub.add_parser("search", help="Search imported records")
    search.add_argument("--owner-name", default="")
    search.add_argument("--owner-city", default="")
    search.add_argument("--owner-state", default="")
    search.add_argument("--property-type", default="")
    search.add_argument("--holder-name", default="")
    search.add_argument("--min-amount", type=float)
    search.add_argument("--max-amount", type=float)
    search.add_argument("--limit", type=int, help="Maximum rows returned")
    search.add_argument("--csv", type=Path, help="Write results to this CSV file instead of stdout")

    geocode = sub.add_parser("geocode", help="Geocode one page of records missing coordinates")
    geocode.add_argument("--limit", type=int, help="Number of records to process")

    sub.add_parser("stats", help="Show geocoding counts")

    export = sub.add_parser("export-map", help="Write geocoded owner locations as GeoJSON")
    export.add_argument("--query", default="", help="Filter on owner, holder, property type or city")
    export.add_argument("--output", type=Path, help="Target .geojson path")
    export.add_argument("--limit", type=int, help="Maximum records considered")

    return parser


def _run_id() -> str:
    return datetime.utcnow().strftime("%Y%m%dT%H%M%S")


def _print_progress(snapshot: ProgressSnapshot) -> None:
    state = "running" if snapshot.running else "done"
    print(
        f"[{state}] {snapshot.processed}/{snapshot.total} ({snapshot.percent}%) "
        f"successful={snapshot.successful} failed={snapshot.failed}",
        file=sys.stderr,
    )


async def run_import(args: argparse.Namespace, settings: Dict[str, object]) -> None:
    layout = DataLayout.from_settings(settings)
    store = SQLiteRecordStore(layout.database)
    metrics = MetricsRegistry()
    batch_size = args.batch_size or settings["import"]["batch_size"]
    text = args.path.read_text(encoding="utf-8", errors="replace")
    try:
        with record_duration(metrics, "run_duration_ms"):
            report = await import_csv(
                text,
                store,
                batch_size=batch_size,
                quarantine=Quarantine(layout.quarantine),
                metrics=metrics,
            )
    except ImportFailed as exc:
        raise SystemExit(str(exc))
    run_id = _run_id()
    metrics.export(path=layout.metrics_file("import", run_id), run_id=run_id)
    print(json.dumps({"message": report.summary(), "inserted": report.inserted, "errors": report.errors}, indent=2))


async def run_search(args: argparse.Namespace, settings: Dict[str, object]) -> None:
    layout = DataLayout.from_settings(settings)
    store = SQLiteRecordStore(layout.database)
    filters = SearchFilters(
        owner_name=args.owner_name,
        owner_city=args.owner_city,
        owner_state=args.owner_state,
        property_type=args.property_type,
        holder_name=args.holder_name,
        min_amount=args.min_amount,
        max_amount=args.max_amount,
    )
    try:
        records = await store.search(filters, limit=args.limit or settings["search"]["limit"])
    except StoreQueryError as exc:
        raise SystemExit(f"Failed to load properties: {exc}")
    rows = [record.model_dump(mode="json") for record in records]
    if args.csv:
        written = write_csv(rows, args.csv)
        print(json.dumps({"rows": len(rows), "path": str(written) if written else None}))
        return
    print(json.dumps(rows, indent=2))


async def run_geocode(args: argparse.Namespace, settings: Dict[str, object]) -> None:
    layout = DataLayout.from_settings(settings)
    geocoding = settings["geocoding"]
    store = SQLiteRecordStore(layout.database)
    metrics = MetricsRegistry()
    limiter = RateLimiter(float(geocoding["min_interval_seconds"]))
    page_size = args.limit or geocoding["page_size"]

    async with create_geocoding_client(
        user_agent=geocoding["user_agent"],
        timeout=float(geocoding["timeout_seconds"]),
    ) as client:
        resolver = AddressResolver(
            client,
            limiter=limiter,
            metrics=metrics,
            base_url=geocoding.get("base_url", DEFAULT_BASE_URL),
        )
        pipeline = BatchGeocodingPipeline(store, resolver, metrics=metrics)
        pipeline.subscribe(_print_progress)
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, pipeline.stop)
        except (NotImplementedError, RuntimeError):  # pragma: no cover - not available on Windows
            pass
        try:
            with record_duration(metrics, "run_duration_ms"):
                final = await pipeline.start(page_size)
        except (AlreadyRunning, PageFetchError) as exc:
            raise SystemExit(str(exc))
        finally:
            try:
                loop.remove_signal_handler(signal.SIGINT)
            except (NotImplementedError, RuntimeError):  # pragma: no cover
                pass

    run_id = _run_id()
    metrics.export(path=layout.metrics_file("geocode", run_id), run_id=run_id)
    stats = await compute_stats(store)
    print(json.dumps({
        "total": final.total,
        "processed": final.processed,
        "successful": final.successful,
        "failed": final.failed,
        "stats": stats.as_dict(),
    }, indent=2))


async def run_stats(args: argparse.Namespace, settings: Dict[str, object]) -> None:
    layout = DataLayout.from_settings(settings)
    try:
        stats = await compute_stats(SQLiteRecordStore(layout.database))
    except StoreQueryError as exc:
        raise SystemExit(f"Failed to load geocoding stats: {exc}")
    print(json.dumps(stats.as_dict(), indent=2))


async def run_export_map(args: argparse.Namespace, settings: Dict[str, object]) -> None:
    layout = DataLayout.from_settings(settings)
    store = SQLiteRecordStore(layout.database)
    records = await store.list_geocoded(limit=args.limit or settings["search"]["limit"])
    collection = build_feature_collection(records, args.query)
    target = args.output or layout.exports / "properties.geojson"
    write_geojson(collection, target)
    print(json.dumps({"features": len(collection["features"]), "path": str(target)}))


COMMANDS = {
    "import-csv": run_import,
    "search": run_search,
    "geocode": run_geocode,
    "stats": run_stats,
    "export-map": run_export_map,
}


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for the CLI."""
    load_dotenv()
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    settings = load_settings(DEFAULT_SETTINGS)
    configure_logging(DEFAULT_LOGGING)

    command = COMMANDS[args.command](args, settings)
    if uvloop is not None:
        uvloop.run(command)
        return
    asyncio.run(command)


if __name__ == "__main__":
    main()
