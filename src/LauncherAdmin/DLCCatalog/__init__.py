# === NAVMAP v1 ===
# {
#   "module": "LauncherAdmin.DLCCatalog",
#   "purpose": "Package initialization for LauncherAdmin.DLCCatalog",
#   "sections": [
#     {"id": "getattr", "name": "__getattr__", "anchor": "function-getattr", "kind": "function"},
#     {"id": "dir", "name": "__dir__", "anchor": "function-dir", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Public API for the launcher DLC catalog engine.

The engine discovers DLC packages in a public bucket that cannot be listed,
reconciles them with the build state stored per app, and generates the
validated ``catalog.json`` that client launchers read.  Exports are imported
lazily so that the pure naming and catalog helpers do not pull in the HTTP
stack.
"""

from __future__ import annotations

from importlib import import_module
from typing import Any, Dict, List

__version__ = "1.0.0"

_EXPORTS: Dict[str, str] = {
    # errors
    "DLCCatalogError": "errors",
    "ConfigurationError": "errors",
    "UnknownBuildError": "errors",
    "FetchFailure": "errors",
    "ConfirmationRequiredError": "errors",
    "PersistenceError": "errors",
    "InvalidFormError": "errors",
    # models
    "BuildName": "models",
    "DLCType": "models",
    "DLC": "models",
    "DLCFormData": "models",
    "R2DLCInfo": "models",
    "BuildTypeData": "models",
    "Catalog": "models",
    "BuildCatalog": "models",
    "DLCCatalogEntry": "models",
    # naming
    "infer_dlc_type": "naming",
    "infer_display_name": "naming",
    "is_valid_folder_name": "naming",
    "resolve_metadata": "naming",
    "form_defaults": "naming",
    # discovery
    "PublicBucket": "storage",
    "CatalogCache": "discovery",
    "DiscoveryService": "discovery",
    "extract_dlc_info": "manifests",
    # catalog
    "generate_catalog": "catalog",
    "validate_catalog": "catalog",
    "compare_catalogs": "catalog",
    "summarize_catalog": "catalog",
    "format_catalog_json": "catalog",
    "create_empty_catalog": "catalog",
    "ValidationReport": "catalog",
    "CatalogDiff": "catalog",
    "CatalogPublisher": "publisher",
    "PublishPreview": "publisher",
    # hierarchy
    "build_dlc_hierarchy": "hierarchy",
    "find_orphans": "hierarchy",
    "remove_dlc": "hierarchy",
    "upsert_dlc": "hierarchy",
    "validate_form": "hierarchy",
    # sync & storage
    "SyncOrchestrator": "sync",
    "SyncPlan": "sync",
    "SyncResult": "sync",
    "DocumentStore": "documents",
    "InMemoryDocumentStore": "documents",
    "JsonFileDocumentStore": "documents",
    "AppRepository": "documents",
    "needs_migration": "migration",
    "migrate_to_build_types": "migration",
    "migrate_app": "migration",
    # settings
    "AdminSettings": "settings",
    "load_settings": "settings",
    "get_default_settings": "settings",
}

__all__ = ["__version__", *_EXPORTS]


def __getattr__(name: str) -> Any:
    """Import exports on first access."""

    module_name = _EXPORTS.get(name)
    if module_name is None:
        raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
    value = getattr(import_module(f"{__name__}.{module_name}"), name)
    globals()[name] = value
    return value


def __dir__() -> List[str]:
    return sorted(set(globals()) | set(_EXPORTS))
