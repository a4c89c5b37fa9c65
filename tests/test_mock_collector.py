"""Tests for the synthetic snapshot collector."""

import json

from pgsend.collector.mock_collector import MockCollector


def test_writes_valid_json(tmp_path):
    dest = tmp_path / "snap.json"
    MockCollector().collect(dest)

    report = json.loads(dest.read_text())
    assert report["meta"]["collected_dbs"] == ["postgres", "app"]
    assert len(report["databases"]) == 2


def test_counters_advance_across_calls(tmp_path):
    collector = MockCollector(databases=["app"])
    collector.collect(tmp_path / "a.json")
    collector.collect(tmp_path / "b.json")

    first = json.loads((tmp_path / "a.json").read_text())
    second = json.loads((tmp_path / "b.json").read_text())
    assert second["tick"] == first["tick"] + 1
    assert second["databases"][0]["xact_commit"] > first["databases"][0]["xact_commit"]


def test_name_lists_databases():
    assert "app" in MockCollector(databases=["app"]).name()
