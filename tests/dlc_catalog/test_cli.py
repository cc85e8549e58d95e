"""End-to-end checks for the ``dlc-admin`` CLI."""

from __future__ import annotations

import json

import pytest
import yaml
from typer.testing import CliRunner

from LauncherAdmin.DLCCatalog import __version__
from LauncherAdmin.DLCCatalog.cli import EXIT_DECLINED, EXIT_FAILURE, EXIT_USAGE, app
from LauncherAdmin.DLCCatalog.documents import JsonFileDocumentStore
from LauncherAdmin.DLCCatalog.testing import FAKE_BASE_URL, use_mock_http_client

runner = CliRunner()


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "admin.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "bucket": {"public_base_url": FAKE_BASE_URL},
                "discovery": {"seed_folders": ["DLC_Hospital", "DLC_Office"]},
                "http": {"cache_enabled": False},
                "logging": {"level": "WARNING", "log_dir": str(tmp_path / "logs")},
            }
        ),
        encoding="utf-8",
    )
    return path


@pytest.fixture
def store_root(tmp_path):
    return tmp_path / "store"


@pytest.fixture
def file_store(store_root):
    return JsonFileDocumentStore(store_root)


@pytest.fixture
def invoke(fake_bucket, config_path, store_root):
    fake_bucket.put_base_manifest("production", "1.0.0")
    fake_bucket.put_dlc_manifest("production", "DLC_Hospital", "1.1.0")

    def _invoke(*args, input=None):
        with use_mock_http_client(fake_bucket.build_httpx_transport()):
            return runner.invoke(
                app,
                ["--config", str(config_path), "--store", str(store_root), *args],
                input=input,
            )

    return _invoke


def test_version_flag():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert f"dlc-admin {__version__}" in result.stdout


def test_sync_plan_json(invoke, fake_bucket):
    result = invoke("sync", "plan", "roleplay", "production", "--json")
    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["appId"] == "roleplay"
    assert payload["added"] == ["DLC_Hospital"]
    assert payload["version"] == {"current": None, "remote": "1.0.0", "action": "add"}
    assert "production/DLC_Hospital/manifest.json" in fake_bucket.paths_requested("GET")


def test_sync_plan_table(invoke):
    result = invoke("sync", "plan", "roleplay", "production")
    assert result.exit_code == 0, result.output
    assert "DLC_Hospital" in result.stdout
    assert "Base game version" in result.stdout


def test_sync_apply_writes_document(invoke, file_store):
    result = invoke("sync", "apply", "roleplay", "production")
    assert result.exit_code == 0, result.output
    assert "Synced 1 DLC(s) to production" in result.stdout

    document = file_store.get("roleplay")
    assert document["buildTypes"]["production"]["version"] == "1.0.0"
    assert list(document["buildTypes"]["production"]["dlcs"]) == ["DLC_Hospital"]
    assert "lastCatalog" in document


def test_clearing_sync_prompts_and_can_be_declined(invoke, file_store, make_dlc):
    file_store.set(
        "roleplay",
        {"buildTypes": {"staging": {"version": "0.1.0", "dlcs": {"DLC_Lab": make_dlc("DLC_Lab").to_document()}}}},
    )

    declined = invoke("sync", "apply", "roleplay", "staging", input="n\n")
    assert declined.exit_code == EXIT_DECLINED
    assert "nothing was written" in declined.stdout
    assert list(file_store.get("roleplay")["buildTypes"]["staging"]["dlcs"]) == ["DLC_Lab"]

    confirmed = invoke("sync", "apply", "roleplay", "staging", "--yes")
    assert confirmed.exit_code == 0, confirmed.output
    assert file_store.get("roleplay")["buildTypes"]["staging"]["dlcs"] == {}


def test_unknown_build_is_a_usage_error(invoke):
    result = invoke("sync", "plan", "roleplay", "qa")
    assert result.exit_code == EXIT_USAGE


def test_migrate(invoke, file_store):
    file_store.set("roleplay", {"name": "Roleplay", "version": "1.0.0", "dlcs": {}})

    first = invoke("migrate", "roleplay")
    assert first.exit_code == 0, first.output
    assert "Migrated roleplay" in first.stdout
    assert file_store.get("roleplay")["buildTypes"]["production"] == {"version": "1.0.0"}

    second = invoke("migrate", "roleplay")
    assert second.exit_code == 0
    assert "needs no migration" in second.stdout


def test_catalog_export_and_record(invoke, file_store, make_dlc, tmp_path):
    file_store.set(
        "roleplay",
        {"buildTypes": {"production": {"version": "2.0.0", "dlcs": {"DLC_Home": make_dlc("DLC_Home").to_document()}}}},
    )
    output = tmp_path / "export" / "catalog.json"

    result = invoke("catalog", "export", "roleplay", str(output), "--record")

    assert result.exit_code == 0, result.output
    exported = json.loads(output.read_text(encoding="utf-8"))
    assert exported["builds"]["production"]["baseGame"]["version"] == "2.0.0"
    assert [entry["id"] for entry in exported["builds"]["production"]["dlcs"]] == ["DLC_Home"]
    assert file_store.get("roleplay")["lastCatalog"] == exported


def test_catalog_preview_json(invoke, file_store, fake_bucket):
    file_store.set("roleplay", {"buildTypes": {"production": {"version": "1.0.0", "dlcs": {}}}})
    fake_bucket.put_catalog({"catalogVersion": "1.0", "lastUpdated": "x", "builds": {}})

    result = invoke("catalog", "preview", "roleplay", "--json")

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["published"] is True
    assert payload["changes"] == ["Adding production build"]
    assert payload["summary"]["production"]["dlcCount"] == 0


@pytest.mark.parametrize(
    "command",
    [("catalog", "preview", "roleplay"), ("sync", "plan", "roleplay", "production")],
)
def test_invalid_stored_record_is_reported_without_traceback(invoke, file_store, command):
    bad = {"folderName": "DLC_Bad", "type": "character", "level": 1, "version": "1.0.0"}
    file_store.set("roleplay", {"buildTypes": {"production": {"version": "1.0.0", "dlcs": {"DLC_Bad": bad}}}})

    result = invoke(*command)

    assert result.exit_code == EXIT_FAILURE
    assert isinstance(result.exception, SystemExit)
    assert "is invalid" in result.output
    assert "DLC_Bad" in result.output
    assert "Traceback" not in result.output


def test_missing_config_is_a_usage_error(tmp_path):
    result = runner.invoke(app, ["--config", str(tmp_path / "missing.yaml"), "migrate", "roleplay"])
    assert result.exit_code == EXIT_USAGE
