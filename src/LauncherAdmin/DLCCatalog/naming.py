"""Folder-name conventions for DLC packages.

DLC folders follow ``DLC_<Env>`` for environments and
``DLC_<Env>_<Character>`` for characters.  The helpers here derive type,
level, parent, and a display name from that convention, and
:func:`resolve_metadata` layers manifest-declared values over the inferred
ones so precedence lives in a single place.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .models import FOLDER_NAME_PATTERN, DLCType, RequiredDLC

__all__ = [
    "DLC_PREFIX",
    "InferredType",
    "ResolvedMetadata",
    "HARD_DEFAULTS",
    "infer_dlc_type",
    "infer_display_name",
    "is_valid_folder_name",
    "resolve_metadata",
    "find_environment",
    "form_defaults",
]

DLC_PREFIX = "DLC_"


@dataclass(frozen=True)
class InferredType:
    type: DLCType
    level: int
    parent_id: Optional[str] = None


@dataclass
class ResolvedMetadata:
    """Fully-populated DLC metadata after applying every precedence layer."""

    type: DLCType
    level: int
    name: str
    parent_id: Optional[str] = None
    parent_version: Optional[str] = None
    required_base_version: Optional[str] = None
    description: str = ""
    icon_url: str = ""
    required_dlcs: List[RequiredDLC] = field(default_factory=list)


HARD_DEFAULTS: Mapping[str, Any] = {
    "type": DLCType.ENVIRONMENT,
    "description": "",
    "iconUrl": "",
    "requiredDLCs": [],
}


def _segments(folder_name: str) -> Optional[List[str]]:
    if not folder_name.startswith(DLC_PREFIX):
        return None
    return folder_name[len(DLC_PREFIX):].split("_")


def is_valid_folder_name(folder_name: str) -> bool:
    return bool(folder_name) and FOLDER_NAME_PATTERN.match(folder_name) is not None


def infer_dlc_type(folder_name: str) -> InferredType:
    """Infer type, level, and parent from ``folder_name``.

    Names without the ``DLC_`` prefix fall back to a standalone environment.
    """

    parts = _segments(folder_name)
    if parts is None or len(parts) == 1:
        return InferredType(type=DLCType.ENVIRONMENT, level=1)
    return InferredType(type=DLCType.CHARACTER, level=2, parent_id=f"{DLC_PREFIX}{parts[0]}")


def infer_display_name(folder_name: str) -> str:
    """Return a human-readable name such as ``"Rachael (Hospital)"``."""

    parts = _segments(folder_name)
    if parts is None:
        return folder_name
    if len(parts) == 1:
        return f"{parts[0]} Environment"
    return f"{' '.join(parts[1:])} ({parts[0]})"


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str) and not value.strip():
        return False
    return True


def _first(*candidates: Any) -> Any:
    for candidate in candidates:
        if _present(candidate):
            return candidate
    return None


def _coerce_required(raw: Any) -> List[RequiredDLC]:
    if not isinstance(raw, list):
        return []
    required: List[RequiredDLC] = []
    for item in raw:
        if isinstance(item, RequiredDLC):
            required.append(item)
        elif isinstance(item, Mapping) and _present(item.get("id")):
            required.append(
                RequiredDLC(id=str(item["id"]), minVersion=str(item.get("minVersion") or "0.0.0"))
            )
    return required


def resolve_metadata(
    manifest_meta: Optional[Mapping[str, Any]],
    inferred: InferredType,
    inferred_name: str,
    defaults: Mapping[str, Any] = HARD_DEFAULTS,
) -> ResolvedMetadata:
    """Merge manifest metadata, name-inferred metadata, and hard defaults.

    Manifest values win whenever present (``None`` and blank strings count as
    absent).  Name inference only fills ``type``, ``level``, ``parentId`` and
    ``name``; every other field falls straight through to ``defaults``.  A
    manifest that declares only ``type`` gets the level implied by that type
    rather than the inferred level, and the inferred ``parentId`` is only
    applied when the resolved type is a character.
    """

    meta: Mapping[str, Any] = manifest_meta or {}

    declared_type = meta.get("type")
    declared_level = meta.get("level")
    if _present(declared_type):
        dlc_type = DLCType(declared_type)
        level = int(declared_level) if _present(declared_level) else dlc_type.level
    elif _present(declared_level):
        level = int(declared_level)
        dlc_type = DLCType.for_level(level)
    else:
        dlc_type = DLCType(_first(inferred.type, defaults.get("type")))
        level = inferred.level

    # Environments never inherit a folder-derived parent.
    inferred_parent = inferred.parent_id if dlc_type is DLCType.CHARACTER else None

    required_raw = meta.get("requiredDLCs")
    if not isinstance(required_raw, list):
        required_raw = defaults.get("requiredDLCs")

    return ResolvedMetadata(
        type=dlc_type,
        level=level,
        name=str(_first(meta.get("name"), inferred_name, defaults.get("name"))),
        parent_id=_first(meta.get("parentId"), inferred_parent, defaults.get("parentId")),
        parent_version=_first(meta.get("parentVersion"), defaults.get("parentVersion")),
        required_base_version=_first(
            meta.get("requiredBaseVersion"), defaults.get("requiredBaseVersion")
        ),
        description=str(_first(meta.get("description"), defaults.get("description")) or ""),
        icon_url=str(_first(meta.get("iconUrl"), defaults.get("iconUrl")) or ""),
        required_dlcs=_coerce_required(required_raw),
    )


def find_environment(reference: Optional[str], environments: Iterable[Any]) -> Optional[Any]:
    """Return the environment whose ``id`` or ``folderName`` equals ``reference``."""

    if not reference:
        return None
    for env in environments:
        if reference in (env.id, env.folder_name):
            return env
    return None


def form_defaults(folder_name: str, environments: Iterable[Any] = ()) -> Dict[str, Any]:
    """Prefill values for a manually entered folder name.

    A character's parent resolves to an existing environment when one matches
    the folder convention, which also supplies ``parentVersion``.
    """

    inferred = infer_dlc_type(folder_name)
    payload: Dict[str, Any] = {
        "folderName": folder_name,
        "name": infer_display_name(folder_name),
        "type": inferred.type,
        "level": inferred.level,
    }
    if inferred.parent_id is not None:
        parent = find_environment(inferred.parent_id, environments)
        if parent is None:
            payload["parentId"] = inferred.parent_id
        else:
            payload["parentId"] = parent.id
            payload["parentVersion"] = parent.version
    return payload
