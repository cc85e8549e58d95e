# === NAVMAP v1 ===
# {
#   "module": "LauncherAdmin.DLCCatalog.sync",
#   "purpose": "Reconcile discovered bucket state with stored build state in two phases (plan, apply)",
#   "sections": [
#     {"id": "reconcile", "name": "Pure reconciliation", "anchor": "REC", "kind": "helpers"},
#     {"id": "plan", "name": "SyncPlan", "anchor": "PLAN", "kind": "api"},
#     {"id": "orchestrator", "name": "SyncOrchestrator", "anchor": "ORCH", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Sync of a build's DLC collection from the bucket.

Policy: the bucket is authoritative.  A sync rebuilds the build's DLC
collection from discovery results and keeps exactly one piece of local
state, the ``enabled`` flag of DLCs whose folder is rediscovered.  The new
collection replaces the stored one wholesale; the other build is untouched.

The API is two-phase.  :meth:`SyncOrchestrator.plan_sync` performs discovery
and computes what would change without writing anything, flagging the case
where discovery found nothing but the build still has stored DLCs.
:meth:`SyncOrchestrator.apply_sync` writes the plan, refusing a clearing plan
unless the caller passes ``confirmed=True``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from .catalog import DEFAULT_BASE_VERSION, CatalogDiff, ValidationReport, compare_catalogs, generate_catalog, validate_catalog
from .discovery import DiscoveryService
from .documents import AppRepository
from .errors import ConfirmationRequiredError
from .manifests import r2_info_to_dlc, utc_timestamp
from .models import BUILD_NAMES, BuildName, BuildTypeData, Catalog, DLC, R2DLCInfo
from .settings import CatalogSettings

__all__ = [
    "reconcile_dlcs",
    "SyncPlan",
    "SyncResult",
    "SyncOrchestrator",
]

LOGGER = logging.getLogger("LauncherAdmin.DLCCatalog.sync")

# --- Pure reconciliation -------------------------------------------------------


def reconcile_dlcs(
    discovered: Sequence[R2DLCInfo],
    stored: Mapping[str, DLC],
    *,
    synced_at: Optional[str] = None,
) -> Dict[str, DLC]:
    """Build the replacement DLC collection for one build.

    Every field comes from the discovered record except ``enabled``, which is
    carried over from the stored DLC with the same folder name.
    """

    stored_by_folder = {dlc.folder_name: dlc for dlc in stored.values()}
    timestamp = synced_at or utc_timestamp()
    collection: Dict[str, DLC] = {}
    for info in discovered:
        dlc = r2_info_to_dlc(info, synced_at=timestamp)
        previous = stored_by_folder.get(info.folder_name)
        if previous is not None:
            dlc.enabled = previous.enabled
        collection[dlc.id] = dlc
    return collection


# --- SyncPlan ------------------------------------------------------------------


@dataclass
class SyncPlan:
    """Side-effect-free description of what applying a sync would write."""

    app_id: str
    build: BuildName
    current_version: Optional[str]
    remote_version: Optional[str]
    discovered: List[R2DLCInfo]
    stored_count: int
    proposed_dlcs: Dict[str, DLC]
    added: List[str] = field(default_factory=list)
    updated: Dict[str, tuple] = field(default_factory=dict)
    unchanged: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    created_at: str = ""

    @property
    def version_action(self) -> str:
        if not self.remote_version:
            return "none"
        if not self.current_version:
            return "add"
        if self.remote_version != self.current_version:
            return "update"
        return "none"

    @property
    def resulting_version(self) -> str:
        return self.remote_version or self.current_version or DEFAULT_BASE_VERSION

    @property
    def clears_all(self) -> bool:
        """Discovery found nothing but the build still holds DLCs."""

        return not self.discovered and self.stored_count > 0

    @property
    def requires_confirmation(self) -> bool:
        return self.clears_all

    def counts(self) -> Dict[str, int]:
        return {
            "discovered": len(self.discovered),
            "replaced": self.stored_count,
            "added": len(self.added),
            "updated": len(self.updated),
            "unchanged": len(self.unchanged),
            "removed": len(self.removed),
            "cleared": self.stored_count if self.clears_all else 0,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "appId": self.app_id,
            "build": self.build.value,
            "version": {
                "current": self.current_version,
                "remote": self.remote_version,
                "action": self.version_action,
            },
            "counts": self.counts(),
            "added": list(self.added),
            "updated": {folder: {"from": old, "to": new} for folder, (old, new) in self.updated.items()},
            "unchanged": list(self.unchanged),
            "removed": list(self.removed),
            "clearsAll": self.clears_all,
            "requiresConfirmation": self.requires_confirmation,
            "createdAt": self.created_at,
        }


@dataclass
class SyncResult:
    app_id: str
    build: BuildName
    version: str
    build_data: BuildTypeData
    catalog: Catalog
    validation: ValidationReport
    catalog_changes: CatalogDiff

    @property
    def dlc_count(self) -> int:
        return len(self.build_data.dlcs)


# --- SyncOrchestrator ----------------------------------------------------------


class SyncOrchestrator:
    """Plan and apply bucket → document store syncs for one app at a time."""

    def __init__(
        self,
        discovery: DiscoveryService,
        repository: AppRepository,
        *,
        catalog_settings: Optional[CatalogSettings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.discovery = discovery
        self.repository = repository
        self.catalog_settings = catalog_settings or CatalogSettings()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def plan_sync(self, app_id: str, build: object) -> SyncPlan:
        """Run discovery for ``build`` and describe the resulting write."""

        name = BuildName.parse(build)
        state = self.repository.build_state(app_id, name)
        stored_by_folder = state.folder_index()

        remote_version = self.discovery.detect_version(name)
        discovered = self.discovery.detect_dlcs(name, stored_by_folder.keys())
        timestamp = utc_timestamp(self._clock())
        proposed = reconcile_dlcs(discovered, state.dlcs, synced_at=timestamp)

        plan = SyncPlan(
            app_id=app_id,
            build=name,
            current_version=state.version or None,
            remote_version=remote_version,
            discovered=discovered,
            stored_count=len(state.dlcs),
            proposed_dlcs=proposed,
            created_at=timestamp,
        )
        discovered_folders = set()
        for info in discovered:
            discovered_folders.add(info.folder_name)
            previous = stored_by_folder.get(info.folder_name)
            if previous is None:
                plan.added.append(info.folder_name)
            elif previous.version != info.version:
                plan.updated[info.folder_name] = (previous.version, info.version)
            else:
                plan.unchanged.append(info.folder_name)
        plan.removed = [folder for folder in stored_by_folder if folder not in discovered_folders]

        log = LOGGER.warning if plan.clears_all else LOGGER.info
        log(
            "sync planned",
            extra={"stage": "sync", "app_id": app_id, "build": name.value, **plan.counts()},
        )
        return plan

    def apply_sync(self, plan: SyncPlan, *, confirmed: bool = False) -> SyncResult:
        """Persist ``plan`` and regenerate the cached catalog snapshot.

        Raises:
            ConfirmationRequiredError: the plan clears every DLC and
                ``confirmed`` is false.
            PersistenceError: the document store rejected a write.
        """

        if plan.requires_confirmation and not confirmed:
            raise ConfirmationRequiredError(
                f"Sync of {plan.build.value} for app '{plan.app_id}' would remove all "
                f"{plan.stored_count} stored DLC(s); confirmation required"
            )

        name = plan.build
        document = self.repository.load(plan.app_id)
        states = self.repository.build_states(document, app_id=plan.app_id)
        fresh = states.get(name) or BuildTypeData()

        dlcs = reconcile_dlcs(plan.discovered, fresh.dlcs, synced_at=plan.created_at)
        new_state = BuildTypeData(
            version=plan.remote_version or fresh.version or DEFAULT_BASE_VERSION,
            dlcs=dlcs,
        )

        existing_build_types = document.get("buildTypes") or {}
        other = name.other()
        build_types: Dict[str, Any] = {
            other.value: existing_build_types.get(other.value) or {},
            name.value: new_state.to_document(),
        }
        updated_document = dict(document)
        updated_document["buildTypes"] = {
            build.value: build_types[build.value] for build in BUILD_NAMES
        }

        LOGGER.info(
            "saving synced DLCs",
            extra={
                "stage": "sync",
                "app_id": plan.app_id,
                "build": name.value,
                "dlc_ids": sorted(dlcs),
            },
        )
        self.repository.save(plan.app_id, updated_document, operation=f"apply sync ({name.value})")

        catalog = generate_catalog(
            updated_document["buildTypes"],
            bucket=self.discovery.bucket,
            settings=self.catalog_settings,
            now=self._clock(),
        )
        report = validate_catalog(catalog)
        previous = document.get("lastCatalog")
        diff = compare_catalogs(previous if isinstance(previous, Mapping) else None, catalog)
        self.repository.merge(
            plan.app_id,
            {"lastCatalog": catalog.to_document(), "lastCatalogUpdated": catalog.last_updated},
            operation=f"store catalog snapshot ({name.value})",
        )
        LOGGER.info(
            "sync applied",
            extra={
                "stage": "sync",
                "app_id": plan.app_id,
                "build": name.value,
                "dlc_count": len(dlcs),
                "catalog_errors": len(report.errors),
            },
        )
        return SyncResult(
            app_id=plan.app_id,
            build=name,
            version=new_state.version or DEFAULT_BASE_VERSION,
            build_data=new_state,
            catalog=catalog,
            validation=report,
            catalog_changes=diff,
        )
