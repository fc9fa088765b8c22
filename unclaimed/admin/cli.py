"""Operator commands: geocoding status and quarantined import rows."""
from __future__ import annotations

import argparse
import asyncio
import json
from collections import Counter
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Dict, List, Optional

import orjson

from unclaimed.admin.status import summarise_runs
from unclaimed.geocode.stats import compute_stats
from unclaimed.observability.log import configure_logging
from unclaimed.storage.store import SQLiteRecordStore

REJECT_STAMP = "%Y%m%dT%H%M%S%f"


def _rejected_at(path: Path) -> Optional[datetime]:
    # reject_<stamp>.json, or reject_<stamp>_<n>.json on a collision
    parts = path.stem.split("_")
    if len(parts) < 2:
        return None
    try:
        return datetime.strptime(parts[1], REJECT_STAMP)
    except ValueError:
        return None


def reject_reasons(quarantine_dir: Path, *, property_id: Optional[str] = None, days: int = 7) -> Dict[str, int]:
    """Count rejection reasons of rows quarantined within the last ``days`` days."""
    if not quarantine_dir.exists():
        return {}
    cutoff = datetime.utcnow() - timedelta(days=days)
    reasons: Counter[str] = Counter()
    for path in quarantine_dir.glob("reject_*.json"):
        rejected_at = _rejected_at(path)
        if rejected_at is not None and rejected_at < cutoff:
            continue
        payload = orjson.loads(path.read_bytes())
        if property_id and payload.get("entity", {}).get("PROPERTY_ID") != property_id:
            continue
        reasons.update(payload.get("reason", []))
    return dict(reasons.most_common())


def cmd_rejects(args: argparse.Namespace) -> None:
    reasons = reject_reasons(Path(args.quarantine), property_id=args.property_id, days=args.last)
    print(json.dumps(reasons, indent=2))


def cmd_status(args: argparse.Namespace) -> None:
    store = SQLiteRecordStore(Path(args.database))
    stats = asyncio.run(compute_stats(store))
    print(json.dumps({"stats": stats.as_dict(), "runs": summarise_runs(Path(args.metrics))}, indent=2))


HANDLERS: Dict[str, Callable[[argparse.Namespace], None]] = {
    "status": cmd_status,
    "inspect-rejects": cmd_rejects,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="unclaimed-admin", description="Administration commands")
    sub = parser.add_subparsers(dest="command", required=True)

    status = sub.add_parser("status", help="Show geocoding counts and recent runs")
    status.add_argument("--database", default="data/unclaimed.db")
    status.add_argument("--metrics", default="data/metrics")

    rejects = sub.add_parser("inspect-rejects", help="Summarise quarantined import rows by reason")
    rejects.add_argument("--quarantine", default="data/quarantine")
    rejects.add_argument("--property-id")
    rejects.add_argument("--last", type=int, default=7, help="Lookback window in days")

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    configure_logging(Path("config/logging.yaml"))
    args = build_parser().parse_args(argv)
    HANDLERS[args.command](args)


if __name__ == "__main__":
    main()
