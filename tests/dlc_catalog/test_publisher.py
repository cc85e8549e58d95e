"""Catalog preview, export, and recording."""

from __future__ import annotations

import json

import pytest

from LauncherAdmin.DLCCatalog.catalog import NEW_CATALOG_CHANGE
from LauncherAdmin.DLCCatalog.publisher import CatalogPublisher


@pytest.fixture
def publisher(fake_bucket, repository, fixed_now):
    return CatalogPublisher(repository, fake_bucket.public_bucket(), clock=lambda: fixed_now)


@pytest.fixture
def app_document(store, make_dlc):
    hospital = make_dlc("DLC_Hospital")
    betty = make_dlc("DLC_Hospital_Betty")
    store.set(
        "app",
        {
            "buildTypes": {
                "production": {
                    "version": "1.0.0",
                    "dlcs": {dlc.id: dlc.to_document() for dlc in (hospital, betty)},
                },
            },
        },
    )
    return store


def test_prepare_against_unpublished_bucket(fake_bucket, app_document, publisher, fixed_stamp):
    preview = publisher.prepare("app")

    assert preview.current is None
    assert preview.diff.changes == [NEW_CATALOG_CHANGE]
    assert preview.report.valid
    assert preview.catalog.last_updated == fixed_stamp
    assert preview.summary["production"]["dlcCount"] == 2
    assert preview.summary["staging"] is None
    assert fake_bucket.requests[-1].path == "catalog.json"
    assert "t" in fake_bucket.requests[-1].query


def test_prepare_against_identical_published_catalog(fake_bucket, app_document, publisher):
    fake_bucket.put_catalog(publisher.prepare("app").catalog.to_document())

    preview = publisher.prepare("app")

    assert preview.current is not None
    assert preview.diff.changes == []
    assert preview.to_dict()["published"] is True


def test_findings_do_not_block_export(store, make_dlc, publisher, tmp_path):
    store.set(
        "app",
        {"buildTypes": {"staging": {"version": "0.1.0", "dlcs": {"DLC_Lab_Kim": make_dlc("DLC_Lab_Kim").to_document()}}}},
    )

    preview = publisher.prepare("app")
    target = publisher.export(preview, tmp_path / "out" / "catalog.json")

    assert not preview.report.valid
    assert preview.to_dict()["errors"] == ["staging: DLC DLC_Lab_Kim references non-existent parent: DLC_Lab"]
    assert json.loads(target.read_text(encoding="utf-8")) == preview.catalog.to_document()


def test_record_stores_last_catalog(app_document, publisher, fixed_stamp):
    preview = publisher.prepare("app")
    publisher.record("app", preview.catalog)

    document = app_document.get("app")
    assert document["lastCatalogUpdated"] == fixed_stamp
    assert document["lastCatalog"] == preview.catalog.to_document()
    assert document["buildTypes"]["production"]["version"] == "1.0.0"
