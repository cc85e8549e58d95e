"""Migration of legacy app documents to the ``buildTypes`` layout.

Older documents kept a single ``version`` and ``dlcs`` map at the root.  They
are lifted into ``buildTypes.production`` and removed from the root;
``buildTypes.staging`` starts empty.  Documents that already carry either
build are returned untouched, so migrating twice is a no-op.
"""

from __future__ import annotations

import copy
import logging
from typing import TYPE_CHECKING, Any, Dict, Mapping

if TYPE_CHECKING:  # pragma: no cover - import for static analysis only
    from .documents import DocumentStore

__all__ = ["needs_migration", "migrate_to_build_types", "migrate_app"]

LOGGER = logging.getLogger("LauncherAdmin.DLCCatalog.migration")


def _is_migrated(document: Mapping[str, Any]) -> bool:
    build_types = document.get("buildTypes")
    if not isinstance(build_types, Mapping):
        return False
    return bool(build_types.get("production") is not None or build_types.get("staging") is not None)


def needs_migration(document: Mapping[str, Any]) -> bool:
    """True when ``buildTypes`` is missing or legacy root fields remain."""

    if "buildTypes" not in document or document.get("buildTypes") is None:
        return True
    if document.get("version") is not None:
        return True
    dlcs = document.get("dlcs")
    return bool(isinstance(dlcs, Mapping) and dlcs)


def migrate_to_build_types(document: Mapping[str, Any]) -> Dict[str, Any]:
    """Return a copy of ``document`` in ``buildTypes`` form."""

    if _is_migrated(document):
        return copy.deepcopy(dict(document))

    migrated: Dict[str, Any] = copy.deepcopy(dict(document))
    production: Dict[str, Any] = {}
    if migrated.get("version"):
        production["version"] = migrated.pop("version")
    dlcs = migrated.get("dlcs")
    if isinstance(dlcs, Mapping) and dlcs:
        production["dlcs"] = dict(migrated.pop("dlcs"))

    migrated["buildTypes"] = {"production": production, "staging": {}}
    return migrated


def migrate_app(store: "DocumentStore", app_id: str) -> bool:
    """Migrate the stored document for ``app_id``; return whether a write happened."""

    document = store.get(app_id)
    if document is None or not needs_migration(document):
        return False
    migrated = migrate_to_build_types(document)
    if migrated == document:
        return False
    store.set(app_id, migrated)
    LOGGER.info("app document migrated to buildTypes", extra={"stage": "migrate", "app_id": app_id})
    return True
