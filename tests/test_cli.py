"""Smoke tests for the command-line interface."""

from __future__ import annotations

import json

import pytest
from typer.testing import CliRunner

from dupetools import cli

runner = CliRunner()


@pytest.fixture
def cli_catalog(catalog_db, monkeypatch: pytest.MonkeyPatch):
    db_path, insert = catalog_db
    insert(
        ("/m/eagles/hotel.flac", 1, "Hotel California", "Eagles", "Hotel California", 1, 391, 1000),
        ("/m/dl/hotel.mp3", 1, "Hotel California (Remastered)", "Eagles ft. Someone", "Hotel California", 1, 395, 320),
        ("/m/toto/africa.flac", 1, "Africa", "Toto", "Toto IV", 10, 295, 900),
    )
    monkeypatch.setitem(cli.config, "DB_PATH", db_path)
    monkeypatch.setitem(cli.config, "SCAN_WORKERS", 2)
    return db_path


def test_find(cli_catalog) -> None:
    result = runner.invoke(cli.app, ["dupes", "find", "--no-sql"])
    assert result.exit_code == 0, result.output
    assert "1 duplicate groups" in result.output


def test_find_stream_writes_json(cli_catalog, tmp_path) -> None:
    out = tmp_path / "groups.json"
    result = runner.invoke(cli.app, ["dupes", "find", "--stream", "--json", str(out)])
    assert result.exit_code == 0, result.output
    data = json.loads(out.read_text())
    assert data["profile"]["name"] == "balanced"
    [group] = data["groups"]
    assert group["keeper"] == "/m/eagles/hotel.flac"
    assert {e["path"] for e in group["entries"]} == {"/m/eagles/hotel.flac", "/m/dl/hotel.mp3"}


def test_find_strict_profile(cli_catalog) -> None:
    result = runner.invoke(cli.app, ["dupes", "find", "-p", "strict"])
    assert result.exit_code == 0, result.output
    assert "0 duplicate groups" in result.output


def test_unknown_profile_exits(cli_catalog) -> None:
    result = runner.invoke(cli.app, ["dupes", "find", "-p", "nope"])
    assert result.exit_code == 1


def test_compare(cli_catalog) -> None:
    result = runner.invoke(cli.app, ["dupes", "compare", "/m/eagles/hotel.flac", "/m/dl/hotel.mp3"])
    assert result.exit_code == 0, result.output
    assert "Eagles - Hotel California" in result.output
    assert "Result: DUPLICATE" in result.output


def test_compare_missing_entry(cli_catalog) -> None:
    result = runner.invoke(cli.app, ["dupes", "compare", "/m/eagles/hotel.flac", "/m/none.flac"])
    assert result.exit_code == 1


def test_resolve(cli_catalog) -> None:
    result = runner.invoke(cli.app, ["dupes", "resolve", "--no-sql"])
    assert result.exit_code == 0, result.output
    assert "1 groups resolved" in result.output


def test_config_profiles() -> None:
    result = runner.invoke(cli.app, ["config", "profiles"])
    assert result.exit_code == 0, result.output
    for name in ("balanced", "lenient", "strict"):
        assert name in result.output


def test_find_with_sql_prefilter_keeps_short_tags(catalog_db, monkeypatch: pytest.MonkeyPatch) -> None:
    db_path, insert = catalog_db
    insert(
        ("/m/u2/one.flac", 1, "One", "U2", "Achtung Baby", 3, 276, 1000),
        ("/m/dl/one.mp3", 1, "One", "U2", "Achtung Baby (Deluxe Edition)", None, None, 320),
    )
    monkeypatch.setitem(cli.config, "DB_PATH", db_path)
    monkeypatch.setitem(cli.config, "USE_CANDIDATE_QUERY", True)
    result = runner.invoke(cli.app, ["dupes", "find", "--sql"])
    assert result.exit_code == 0, result.output
    assert "1 duplicate groups" in result.output
