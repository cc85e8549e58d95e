"""Two-phase sync: planning, confirmation, and applying to the document store."""

from __future__ import annotations

import pytest

from LauncherAdmin.DLCCatalog.catalog import NEW_CATALOG_CHANGE
from LauncherAdmin.DLCCatalog.discovery import DiscoveryService
from LauncherAdmin.DLCCatalog.documents import AppRepository, InMemoryDocumentStore
from LauncherAdmin.DLCCatalog.errors import ConfirmationRequiredError, PersistenceError
from LauncherAdmin.DLCCatalog.models import BuildName
from LauncherAdmin.DLCCatalog.sync import SyncOrchestrator, reconcile_dlcs

SEEDS = ["DLC_Hospital", "DLC_Hospital_Betty", "DLC_Office"]


class RejectingStore(InMemoryDocumentStore):
    def set(self, key, data):
        raise RuntimeError("write rejected by rules")


def _stored(*dlcs):
    return {dlc.id: dlc.to_document() for dlc in dlcs}


@pytest.fixture
def orchestrator(fake_bucket, repository, fixed_now):
    discovery = DiscoveryService(bucket=fake_bucket.public_bucket(), seed_folders=SEEDS)
    return SyncOrchestrator(discovery, repository, clock=lambda: fixed_now)


@pytest.fixture
def seeded(store, make_dlc):
    store.set(
        "app",
        {
            "name": "Roleplay",
            "buildTypes": {
                "production": {
                    "version": "1.0.0",
                    "dlcs": _stored(
                        make_dlc("DLC_Hospital", enabled=False, description="local edit"),
                        make_dlc("DLC_Old"),
                        make_dlc("DLC_Office", version="3.0.0"),
                    ),
                },
                "staging": {
                    "version": "0.9.0",
                    "dlcs": _stored(make_dlc("DLC_Lab")),
                },
            },
        },
    )
    return store


# --- plan_sync ---


def test_plan_classifies_changes_without_writing(fake_bucket, seeded, orchestrator):
    fake_bucket.put_base_manifest("production", "1.1.0")
    fake_bucket.put_dlc_manifest("production", "DLC_Hospital", "1.2.0", dlc={"description": "remote"})
    fake_bucket.put_dlc_manifest("production", "DLC_Hospital_Betty", "1.0.0")
    fake_bucket.put_dlc_manifest("production", "DLC_Office", "3.0.0")
    writes = []
    seeded.subscribe("app", lambda key, doc: writes.append(doc))

    plan = orchestrator.plan_sync("app", "production")

    assert plan.build is BuildName.PRODUCTION
    assert plan.current_version == "1.0.0"
    assert plan.remote_version == "1.1.0"
    assert plan.version_action == "update"
    assert plan.added == ["DLC_Hospital_Betty"]
    assert plan.updated == {"DLC_Hospital": ("1.0.0", "1.2.0")}
    assert plan.unchanged == ["DLC_Office"]
    assert plan.removed == ["DLC_Old"]
    assert plan.stored_count == 3
    assert not plan.clears_all
    assert not plan.requires_confirmation
    assert plan.proposed_dlcs["DLC_Hospital"].enabled is False
    assert writes == []
    assert fake_bucket.paths_requested("GET")[1] == "production/DLC_Hospital/manifest.json"


def test_plan_version_actions(fake_bucket, store, orchestrator):
    fake_bucket.put_base_manifest("staging", "0.1.0")
    assert orchestrator.plan_sync("app", "staging").version_action == "add"
    assert orchestrator.plan_sync("app", "production").version_action == "none"


def test_plan_to_dict(fake_bucket, seeded, orchestrator, fixed_stamp):
    payload = orchestrator.plan_sync("app", "staging").to_dict()
    assert payload["build"] == "staging"
    assert payload["clearsAll"] is True
    assert payload["requiresConfirmation"] is True
    assert payload["counts"]["cleared"] == 1
    assert payload["removed"] == ["DLC_Lab"]
    assert payload["createdAt"] == fixed_stamp


# --- apply_sync ---


def test_apply_replaces_build_and_preserves_enabled(fake_bucket, seeded, repository, orchestrator, fixed_stamp):
    fake_bucket.put_base_manifest("production", "1.1.0")
    fake_bucket.put_dlc_manifest("production", "DLC_Hospital", "1.2.0", dlc={"description": "remote"})
    fake_bucket.put_dlc_manifest("production", "DLC_Hospital_Betty", "1.0.0", sizes=(10, 20))

    result = orchestrator.apply_sync(orchestrator.plan_sync("app", "production"))

    document = seeded.get("app")
    production = document["buildTypes"]["production"]
    assert production["version"] == "1.1.0"
    assert sorted(production["dlcs"]) == ["DLC_Hospital", "DLC_Hospital_Betty"]
    hospital = production["dlcs"]["DLC_Hospital"]
    assert hospital["enabled"] is False
    assert hospital["description"] == "remote"
    assert hospital["version"] == "1.2.0"
    assert hospital["metadata"] == {"detectedFromR2": True, "lastSyncedAt": fixed_stamp}
    betty = production["dlcs"]["DLC_Hospital_Betty"]
    assert betty["enabled"] is True
    assert betty["parentId"] == "DLC_Hospital"
    assert betty["size"] == 30

    assert document["buildTypes"]["staging"]["version"] == "0.9.0"
    assert list(document["buildTypes"]["staging"]["dlcs"]) == ["DLC_Lab"]
    assert document["name"] == "Roleplay"

    assert document["lastCatalogUpdated"] == fixed_stamp
    catalog_doc = document["lastCatalog"]
    assert [entry["id"] for entry in catalog_doc["builds"]["production"]["dlcs"]] == ["DLC_Hospital_Betty"]
    assert list(catalog_doc["builds"]) == ["production", "staging"]

    assert result.dlc_count == 2
    assert result.version == "1.1.0"
    assert result.validation.errors == [
        "production: DLC DLC_Hospital_Betty references non-existent parent: DLC_Hospital"
    ]
    assert result.catalog_changes.changes == [NEW_CATALOG_CHANGE]


def test_clearing_plan_requires_confirmation(fake_bucket, seeded, orchestrator):
    plan = orchestrator.plan_sync("app", "staging")
    assert plan.discovered == []
    assert plan.clears_all
    assert plan.requires_confirmation

    before = seeded.get("app")
    with pytest.raises(ConfirmationRequiredError):
        orchestrator.apply_sync(plan)
    assert seeded.get("app") == before

    orchestrator.apply_sync(plan, confirmed=True)
    document = seeded.get("app")
    assert document["buildTypes"]["staging"] == {"version": "0.9.0", "dlcs": {}}
    assert document["buildTypes"]["production"] == before["buildTypes"]["production"]


def test_empty_discovery_on_empty_build_is_not_clearing(orchestrator, store):
    plan = orchestrator.plan_sync("app", "staging")
    assert not plan.clears_all
    result = orchestrator.apply_sync(plan)
    assert result.version == "0.0.0"
    assert store.get("app")["buildTypes"] == {"production": {}, "staging": {"version": "0.0.0", "dlcs": {}}}


def test_apply_keeps_stored_version_when_remote_missing(fake_bucket, seeded, orchestrator):
    fake_bucket.put_dlc_manifest("production", "DLC_Office", "3.1.0")
    result = orchestrator.apply_sync(orchestrator.plan_sync("app", "production"))
    assert result.version == "1.0.0"


def test_apply_uses_enabled_flag_at_apply_time(fake_bucket, seeded, repository, orchestrator):
    fake_bucket.put_dlc_manifest("production", "DLC_Office", "3.0.0")
    plan = orchestrator.plan_sync("app", "production")
    assert plan.proposed_dlcs["DLC_Office"].enabled is True

    document = seeded.get("app")
    document["buildTypes"]["production"]["dlcs"]["DLC_Office"]["enabled"] = False
    seeded.set("app", document)

    orchestrator.apply_sync(plan)
    assert seeded.get("app")["buildTypes"]["production"]["dlcs"]["DLC_Office"]["enabled"] is False


def test_apply_migrates_legacy_document(fake_bucket, store, orchestrator):
    store.set("app", {"version": "1.0.0", "dlcs": {}})
    fake_bucket.put_dlc_manifest("staging", "DLC_Office", "1.0.0")

    orchestrator.apply_sync(orchestrator.plan_sync("app", "staging"))

    document = store.get("app")
    assert "version" not in document
    assert document["buildTypes"]["production"] == {"version": "1.0.0"}
    assert list(document["buildTypes"]["staging"]["dlcs"]) == ["DLC_Office"]


def test_rejected_write_raises_persistence_error(fake_bucket, fixed_now):
    store = RejectingStore({"app": {"buildTypes": {"production": {}, "staging": {}}}})
    discovery = DiscoveryService(bucket=fake_bucket.public_bucket(), seed_folders=["DLC_Office"])
    orchestrator = SyncOrchestrator(discovery, AppRepository(store), clock=lambda: fixed_now)
    fake_bucket.put_dlc_manifest("production", "DLC_Office", "1.0.0")

    with pytest.raises(PersistenceError) as excinfo:
        orchestrator.apply_sync(orchestrator.plan_sync("app", "production"))

    message = str(excinfo.value)
    assert "apply sync (production)" in message
    assert "'app'" in message
    assert "write rejected by rules" in message
    assert "lastCatalog" not in store.get("app")


def test_reconcile_dlcs_matches_by_folder_name(make_dlc, fixed_stamp):
    from LauncherAdmin.DLCCatalog.manifests import extract_dlc_info

    stored = {"legacy-id": make_dlc("DLC_Office", id="legacy-id", enabled=False)}
    info = extract_dlc_info({"version": "2.0.0"}, "DLC_Office", "https://bucket.test/x")
    collection = reconcile_dlcs([info], stored, synced_at=fixed_stamp)
    assert list(collection) == ["DLC_Office"]
    assert collection["DLC_Office"].enabled is False
