import asyncio
import json
from datetime import datetime
from pathlib import Path

import pytest

from unclaimed.admin import cli
from unclaimed.observability.metrics import MetricsRegistry
from unclaimed.storage.store import SQLiteRecordStore


@pytest.fixture()
def prepared(tmp_path):
    database = tmp_path / "data" / "unclaimed.db"
    store = SQLiteRecordStore(database)
    asyncio.run(store.insert_many([
        {"property_id": "1", "property_type": "CK01", "owner_name": "A", "geocoding_status": "completed",
         "owner_latitude": 1.0, "owner_longitude": 1.0},
        {"property_id": "2", "property_type": "CK01", "owner_name": "B", "geocoding_status": "failed"},
        {"property_id": "3", "property_type": "CK01", "owner_name": "C"},
    ]))

    metrics_dir = tmp_path / "data" / "metrics"
    registry = MetricsRegistry()
    registry.incr("records_completed")
    registry.export(path=metrics_dir / "geocode_20240101T000000.json", run_id="20240101T000000")

    quarantine = tmp_path / "data" / "quarantine"
    quarantine.mkdir(parents=True)
    stamp = datetime.utcnow().strftime("%Y%m%dT%H%M%S%f")
    reject = {"entity": {"PROPERTY_ID": "", "OWNER_NAME": "X"}, "reason": ["Property ID is required"]}
    (quarantine / f"reject_{stamp}.json").write_text(json.dumps(reject), encoding="utf-8")
    other = {"entity": {"PROPERTY_ID": "42", "OWNER_NAME": ""}, "reason": ["Owner name is required"]}
    (quarantine / f"reject_{stamp}_1.json").write_text(json.dumps(other), encoding="utf-8")
    old = {"entity": {"PROPERTY_ID": "7", "OWNER_NAME": ""}, "reason": ["Owner name is required"]}
    (quarantine / "reject_20000101T000000000000.json").write_text(json.dumps(old), encoding="utf-8")
    return database, metrics_dir, quarantine


def test_admin_status(prepared, capsys):
    database, metrics_dir, _ = prepared
    args = cli.build_parser().parse_args(["status", "--database", str(database), "--metrics", str(metrics_dir)])
    cli.cmd_status(args)
    output = json.loads(capsys.readouterr().out)
    assert output["stats"]["total"] == 3
    assert output["stats"]["geocoded"] == 1
    assert output["stats"]["failed"] == 1
    assert output["runs"][0]["command"] == "geocode"
    assert output["runs"][0]["counters"] == {"records_completed": 1}


def test_admin_inspect_rejects(prepared, capsys):
    _, _, quarantine = prepared
    args = cli.build_parser().parse_args(["inspect-rejects", "--quarantine", str(quarantine), "--last", "30"])
    cli.cmd_rejects(args)
    output = json.loads(capsys.readouterr().out)
    assert output == {"Property ID is required": 1, "Owner name is required": 1}


def test_admin_inspect_rejects_by_property(prepared, capsys):
    _, _, quarantine = prepared
    args = cli.build_parser().parse_args([
        "inspect-rejects", "--quarantine", str(quarantine), "--property-id", "42", "--last", "30",
    ])
    cli.cmd_rejects(args)
    assert json.loads(capsys.readouterr().out) == {"Owner name is required": 1}


def test_admin_missing_quarantine(tmp_path, capsys):
    args = cli.build_parser().parse_args(["inspect-rejects", "--quarantine", str(tmp_path / "none")])
    cli.cmd_rejects(args)
    assert json.loads(capsys.readouterr().out) == {}
