"""Manifest parsing and JSON persistence helpers.

Two manifest shapes live in the bucket: the per-build base-game manifest
(``{version, files?}``) and one manifest per DLC folder
(``{version, files?, dlc?}``).  This module turns a parsed DLC manifest into
an :class:`~LauncherAdmin.DLCCatalog.models.R2DLCInfo` and converts that
discovery record into the stored and published shapes.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping, Optional

from .models import DLC, DLCCatalogEntry, DLCMetadata, DLCType, R2DLCInfo
from .naming import infer_display_name, infer_dlc_type, is_valid_folder_name, resolve_metadata

__all__ = [
    "DEFAULT_MANIFEST_VERSION",
    "manifest_total_size",
    "manifest_version",
    "extract_dlc_info",
    "r2_info_to_dlc",
    "r2_info_to_catalog_entry",
    "utc_timestamp",
    "write_json_atomic",
]

LOGGER = logging.getLogger("LauncherAdmin.DLCCatalog.manifests")

DEFAULT_MANIFEST_VERSION = "1.0.0"


def utc_timestamp(now: Optional[datetime] = None) -> str:
    """Return an ISO-8601 UTC timestamp with a ``Z`` suffix."""

    moment = now or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def manifest_total_size(manifest: Mapping[str, Any]) -> int:
    """Sum ``totalSize`` over the manifest's file list (missing entries count as zero)."""

    files = manifest.get("files")
    if not isinstance(files, list):
        return 0
    total = 0
    for entry in files:
        if not isinstance(entry, Mapping):
            continue
        size = entry.get("totalSize")
        if isinstance(size, bool) or not isinstance(size, (int, float)):
            continue
        total += int(size)
    return max(total, 0)


def manifest_version(manifest: Mapping[str, Any]) -> Optional[str]:
    version = manifest.get("version")
    if version is None:
        return None
    text = str(version).strip()
    return text or None


def extract_dlc_info(
    manifest: Mapping[str, Any],
    folder_name: str,
    manifest_url: str,
) -> R2DLCInfo:
    """Build an :class:`R2DLCInfo` from a DLC manifest.

    Declared ``dlc`` metadata takes precedence; type, level, parent, and name
    fall back to what the folder name implies.
    """

    raw_meta = manifest.get("dlc")
    meta: Mapping[str, Any] = raw_meta if isinstance(raw_meta, Mapping) else {}
    resolved = resolve_metadata(
        meta,
        infer_dlc_type(folder_name),
        infer_display_name(folder_name),
    )
    declared_folder = meta.get("folderName")
    if isinstance(declared_folder, str) and is_valid_folder_name(declared_folder.strip()):
        folder = declared_folder.strip()
    else:
        folder = folder_name

    return R2DLCInfo(
        folderName=folder,
        version=manifest_version(manifest) or DEFAULT_MANIFEST_VERSION,
        manifestUrl=manifest_url,
        type=resolved.type,
        level=resolved.level,
        name=resolved.name,
        parentId=resolved.parent_id,
        parentVersion=resolved.parent_version,
        requiredBaseVersion=resolved.required_base_version,
        description=resolved.description,
        iconUrl=resolved.icon_url,
        size=manifest_total_size(manifest),
        requiredDLCs=resolved.required_dlcs,
    )


def r2_info_to_dlc(info: R2DLCInfo, *, synced_at: Optional[str] = None) -> DLC:
    """Convert a discovery record into a stored DLC (enabled by default)."""

    dlc_type = info.type or DLCType.ENVIRONMENT
    return DLC(
        id=info.folder_name,
        name=info.name or info.folder_name,
        folderName=info.folder_name,
        type=dlc_type,
        level=dlc_type.level,
        parentId=info.parent_id,
        parentVersion=info.parent_version,
        version=info.version,
        manifestUrl=info.manifest_url,
        description=info.description or "",
        size=info.size or 0,
        iconUrl=info.icon_url or "",
        requiredBaseVersion=info.required_base_version,
        requiredDLCs=list(info.required_dlcs or []),
        enabled=True,
        metadata=DLCMetadata(detectedFromR2=True, lastSyncedAt=synced_at or utc_timestamp()),
    )


def r2_info_to_catalog_entry(info: R2DLCInfo) -> DLCCatalogEntry:
    dlc_type = info.type or DLCType.ENVIRONMENT
    return DLCCatalogEntry(
        id=info.folder_name,
        name=info.name or info.folder_name,
        folderName=info.folder_name,
        type=dlc_type,
        level=dlc_type.level,
        parentId=info.parent_id,
        parentVersion=info.parent_version,
        version=info.version,
        manifestUrl=info.manifest_url,
        requiredBaseVersion=info.required_base_version,
        requiredDLCs=list(info.required_dlcs or []),
        description=info.description or "",
        iconUrl=info.icon_url or "",
        size=info.size or 0,
        enabled=True,
    )


def write_json_atomic(path: Path, payload: object) -> Path:
    """Atomically persist ``payload`` as JSON to ``path``."""

    resolved = path.expanduser()
    resolved.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        "w", encoding="utf-8", dir=str(resolved.parent), delete=False
    ) as handle:
        json.dump(payload, handle, indent=2)
        handle.write("\n")
        handle.flush()
        try:
            os.fsync(handle.fileno())
        except (AttributeError, OSError):
            pass
        temp_name = handle.name
    Path(temp_name).replace(resolved)
    LOGGER.debug("json written", extra={"stage": "persist", "path": str(resolved)})
    return resolved
