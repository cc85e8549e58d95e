# === NAVMAP v1 ===
# {
#   "module": "LauncherAdmin.DLCCatalog.catalog",
#   "purpose": "Generate, validate, summarise, and diff the client-facing catalog document",
#   "sections": [
#     {"id": "generation", "name": "Catalog generation", "anchor": "GEN", "kind": "api"},
#     {"id": "validation", "name": "Catalog validation", "anchor": "VAL", "kind": "api"},
#     {"id": "comparison", "name": "Catalog comparison", "anchor": "CMP", "kind": "api"},
#     {"id": "presentation", "name": "Summaries & formatting", "anchor": "FMT", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Catalog generation, validation, and comparison.

A catalog is never edited in place: it is regenerated from build state and
then diffed against whatever was published before.  Validation returns a
list of findings instead of raising; callers decide whether findings block
publishing (the admin flow warns and continues).
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Union

from .manifests import manifest_total_size, manifest_version, utc_timestamp
from .models import (
    BUILD_NAMES,
    BaseGameInfo,
    BuildCatalog,
    BuildName,
    BuildTypeData,
    Catalog,
    DLC,
    DLCCatalogEntry,
    DLCType,
    RequiredDLC,
)
from .settings import CatalogSettings
from .storage import PublicBucket

__all__ = [
    "DEFAULT_BASE_VERSION",
    "NEW_CATALOG_CHANGE",
    "ValidationReport",
    "CatalogDiff",
    "create_empty_catalog",
    "dlc_to_catalog_entry",
    "manifest_to_catalog_entry",
    "generate_build_catalog",
    "generate_catalog",
    "validate_catalog",
    "compare_catalogs",
    "summarize_catalog",
    "format_catalog_json",
]

LOGGER = logging.getLogger("LauncherAdmin.DLCCatalog.catalog")

DEFAULT_BASE_VERSION = "0.0.0"
NEW_CATALOG_CHANGE = "Creating new catalog (none exists)"

BuildInput = Union[BuildTypeData, Mapping[str, Any], None]
CatalogLike = Union[Catalog, Mapping[str, Any]]


@dataclass
class ValidationReport:
    errors: List[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors


@dataclass
class CatalogDiff:
    changes: List[str] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.changes)


# --- Catalog generation --------------------------------------------------------


def create_empty_catalog(
    settings: Optional[CatalogSettings] = None, *, now: Optional[datetime] = None
) -> Catalog:
    cfg = settings or CatalogSettings()
    return Catalog(
        catalogVersion=cfg.catalog_version,
        lastUpdated=utc_timestamp(now),
        generatedBy=cfg.generated_by,
        builds={},
    )


def dlc_to_catalog_entry(dlc: DLC, build: object, bucket: PublicBucket) -> DLCCatalogEntry:
    """Project a stored DLC into its catalog entry."""

    manifest_url = dlc.manifest_url
    if not PublicBucket.is_absolute_url(manifest_url):
        manifest_url = bucket.dlc_manifest_url(build, dlc.folder_name)

    required = list(dlc.required_dlcs)
    if not required and dlc.parent_id and dlc.parent_version:
        required = [RequiredDLC(id=dlc.parent_id, minVersion=dlc.parent_version)]

    return DLCCatalogEntry(
        id=dlc.id or dlc.folder_name,
        name=dlc.name,
        folderName=dlc.folder_name,
        type=dlc.type,
        level=dlc.level,
        parentId=dlc.parent_id,
        parentVersion=dlc.parent_version,
        version=dlc.version,
        manifestUrl=manifest_url,
        requiredBaseVersion=dlc.required_base_version,
        requiredDLCs=required,
        description=dlc.description,
        iconUrl=dlc.icon_url,
        size=dlc.size,
        enabled=dlc.enabled,
    )


def manifest_to_catalog_entry(
    manifest: Mapping[str, Any], folder_name: str, manifest_url: str
) -> DLCCatalogEntry:
    """Project a raw DLC manifest straight into a catalog entry.

    Only the manifest is consulted here: a missing ``type`` means environment.
    """

    raw_meta = manifest.get("dlc")
    meta: Mapping[str, Any] = raw_meta if isinstance(raw_meta, Mapping) else {}
    dlc_type = DLCType(meta.get("type") or DLCType.ENVIRONMENT)
    required = [
        RequiredDLC(id=str(item["id"]), minVersion=str(item.get("minVersion") or "0.0.0"))
        for item in meta.get("requiredDLCs") or []
        if isinstance(item, Mapping) and item.get("id")
    ]
    return DLCCatalogEntry(
        id=meta.get("id") or folder_name,
        name=meta.get("name") or folder_name,
        folderName=meta.get("folderName") or folder_name,
        type=dlc_type,
        level=int(meta.get("level") or dlc_type.level),
        parentId=meta.get("parentId") or None,
        parentVersion=meta.get("parentVersion") or None,
        version=manifest_version(manifest) or "1.0.0",
        manifestUrl=manifest_url,
        requiredBaseVersion=meta.get("requiredBaseVersion") or None,
        requiredDLCs=required,
        description=meta.get("description") or "",
        iconUrl=meta.get("iconUrl") or "",
        size=manifest_total_size(manifest),
        enabled=True,
    )


def _sort_key(entry: DLCCatalogEntry) -> tuple:
    # Case-insensitive name order, independent of the process locale.
    return (entry.level, entry.name.casefold(), entry.name)


def _coerce_build_data(data: BuildInput) -> BuildTypeData:
    if isinstance(data, BuildTypeData):
        return data
    return BuildTypeData.model_validate(dict(data or {}))


def generate_build_catalog(
    build: object,
    data: BuildInput,
    *,
    bucket: PublicBucket,
    settings: CatalogSettings,
    timestamp: str,
) -> BuildCatalog:
    name = BuildName.parse(build)
    state = _coerce_build_data(data)
    entries = [
        dlc_to_catalog_entry(dlc, name, bucket) for dlc in state.dlcs.values() if dlc.enabled
    ]
    entries.sort(key=_sort_key)
    return BuildCatalog(
        baseGame=BaseGameInfo(
            version=state.version or DEFAULT_BASE_VERSION,
            manifestUrl=bucket.base_manifest_url(name),
            minLauncherVersion=settings.min_launcher_version,
            lastUpdated=timestamp,
        ),
        dlcs=entries,
    )


def generate_catalog(
    build_types: Mapping[Any, BuildInput],
    *,
    bucket: Optional[PublicBucket] = None,
    settings: Optional[CatalogSettings] = None,
    now: Optional[datetime] = None,
) -> Catalog:
    """Build the publishable catalog from per-build state.

    Builds absent from ``build_types`` (or mapped to ``None``) are left out
    of the catalog, meaning "not published".
    """

    cfg = settings or CatalogSettings()
    target = bucket or PublicBucket()
    timestamp = utc_timestamp(now)
    normalised = {BuildName.parse(key): value for key, value in build_types.items()}

    builds: Dict[BuildName, BuildCatalog] = {}
    for name in BUILD_NAMES:
        data = normalised.get(name)
        if data is None:
            continue
        builds[name] = generate_build_catalog(
            name, data, bucket=target, settings=cfg, timestamp=timestamp
        )

    catalog = Catalog(
        catalogVersion=cfg.catalog_version,
        lastUpdated=timestamp,
        generatedBy=cfg.generated_by,
        builds=builds,
    )
    LOGGER.debug(
        "catalog generated",
        extra={
            "stage": "catalog",
            "builds": [name.value for name in builds],
            "dlcs": sum(len(build.dlcs) for build in builds.values()),
        },
    )
    return catalog


# --- Catalog validation --------------------------------------------------------


def _as_document(catalog: CatalogLike) -> Mapping[str, Any]:
    if isinstance(catalog, Catalog):
        return catalog.to_document()
    return catalog


def _entries(build_catalog: Mapping[str, Any]) -> List[Mapping[str, Any]]:
    entries = build_catalog.get("dlcs") or []
    if not isinstance(entries, list):
        return []
    return [entry for entry in entries if isinstance(entry, Mapping)]


def validate_catalog(catalog: CatalogLike) -> ValidationReport:
    """Check structural and dependency invariants; never raises."""

    document = _as_document(catalog)
    report = ValidationReport()
    errors = report.errors

    if not document.get("catalogVersion"):
        errors.append("Missing catalog version")
    if not document.get("lastUpdated"):
        errors.append("Missing lastUpdated timestamp")

    builds = document.get("builds") or {}
    if not isinstance(builds, Mapping):
        errors.append("builds must be a mapping")
        return report

    for build_name, build_catalog in builds.items():
        if not isinstance(build_catalog, Mapping):
            continue
        base_game = build_catalog.get("baseGame")
        if not isinstance(base_game, Mapping) or not base_game.get("version"):
            errors.append(f"{build_name}: Missing base game version")

        entries = _entries(build_catalog)
        known_refs = set()
        for entry in entries:
            for key in ("id", "folderName"):
                if entry.get(key):
                    known_refs.add(entry[key])

        seen_ids = set()
        for entry in entries:
            dlc_id = entry.get("id")
            if dlc_id in seen_ids:
                errors.append(f"{build_name}: Duplicate DLC ID: {dlc_id}")
            seen_ids.add(dlc_id)

            if not entry.get("folderName"):
                errors.append(f"{build_name}: DLC {dlc_id} missing folderName")
            if not entry.get("version"):
                errors.append(f"{build_name}: DLC {dlc_id} missing version")

            parent_id = entry.get("parentId")
            if entry.get("level") == 2 and not parent_id:
                errors.append(f"{build_name}: Character DLC {dlc_id} missing parentId")
            own_refs = {entry.get("id"), entry.get("folderName")}
            if parent_id and (parent_id in own_refs or parent_id not in known_refs):
                errors.append(
                    f"{build_name}: DLC {dlc_id} references non-existent parent: {parent_id}"
                )

    if errors:
        LOGGER.warning(
            "catalog validation findings",
            extra={"stage": "validate", "error_count": len(errors)},
        )
    return report


# --- Catalog comparison --------------------------------------------------------


def _display(entry: Mapping[str, Any]) -> str:
    return str(entry.get("name") or entry.get("id"))


def compare_catalogs(current: Optional[CatalogLike], proposed: CatalogLike) -> CatalogDiff:
    """Describe, in operator-readable lines, what publishing ``proposed`` would change."""

    diff = CatalogDiff()
    changes = diff.changes
    if current is None:
        changes.append(NEW_CATALOG_CHANGE)
        return diff

    current_builds = _as_document(current).get("builds") or {}
    proposed_builds = _as_document(proposed).get("builds") or {}

    for name in BUILD_NAMES:
        build = name.value
        current_build = current_builds.get(build)
        proposed_build = proposed_builds.get(build)

        if not current_build and proposed_build:
            changes.append(f"Adding {build} build")
            continue
        if current_build and not proposed_build:
            changes.append(f"Removing {build} build")
            continue
        if not current_build or not proposed_build:
            continue

        current_version = (current_build.get("baseGame") or {}).get("version")
        proposed_version = (proposed_build.get("baseGame") or {}).get("version")
        if current_version != proposed_version:
            changes.append(f"{build}: Base game version {current_version} → {proposed_version}")

        current_dlcs = _entries(current_build)
        proposed_dlcs = _entries(proposed_build)
        if len(current_dlcs) != len(proposed_dlcs):
            changes.append(f"{build}: DLC count {len(current_dlcs)} → {len(proposed_dlcs)}")

        current_by_id = {entry.get("id"): entry for entry in current_dlcs}
        proposed_by_id = {entry.get("id"): entry for entry in proposed_dlcs}

        for dlc_id, entry in proposed_by_id.items():
            if dlc_id not in current_by_id:
                changes.append(f"{build}: Adding DLC {_display(entry)}")
        for dlc_id, entry in current_by_id.items():
            if dlc_id not in proposed_by_id:
                changes.append(f"{build}: Removing DLC {_display(entry)}")
        for dlc_id, entry in proposed_by_id.items():
            previous = current_by_id.get(dlc_id)
            if previous is not None and previous.get("version") != entry.get("version"):
                changes.append(
                    f"{build}: {_display(entry)} version {previous.get('version')} → {entry.get('version')}"
                )

    return diff


# --- Summaries & formatting ----------------------------------------------------


def summarize_catalog(catalog: CatalogLike) -> Dict[str, Optional[Dict[str, Any]]]:
    """Per-build counts: ``{version, dlcCount, envCount, charCount}`` or ``None``."""

    builds = _as_document(catalog).get("builds") or {}
    summary: Dict[str, Optional[Dict[str, Any]]] = {}
    for name in BUILD_NAMES:
        build_catalog = builds.get(name.value)
        if not build_catalog:
            summary[name.value] = None
            continue
        entries = _entries(build_catalog)
        summary[name.value] = {
            "version": (build_catalog.get("baseGame") or {}).get("version"),
            "dlcCount": len(entries),
            "envCount": sum(1 for entry in entries if entry.get("level") == 1),
            "charCount": sum(1 for entry in entries if entry.get("level") == 2),
        }
    return summary


def format_catalog_json(catalog: CatalogLike) -> str:
    return json.dumps(_as_document(catalog), indent=2, ensure_ascii=False)
