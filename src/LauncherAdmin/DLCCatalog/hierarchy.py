"""Environment → character hierarchy over a build's DLC collection.

Characters attach to an environment whose ``id`` or ``folderName`` equals
their ``parentId``.  Characters whose parent cannot be resolved are orphans:
they are kept and surfaced, never dropped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional, Union
from urllib.parse import urlsplit

from .errors import ConfirmationRequiredError, InvalidFormError
from .manifests import utc_timestamp
from .models import (
    DEFAULT_INSTALL_PATH,
    DLC,
    DLCCatalogEntry,
    DLCFormData,
    DLCMetadata,
    DLCType,
    RequiredDLC,
)
from .naming import find_environment, infer_dlc_type, is_valid_folder_name

__all__ = [
    "HierarchyNode",
    "build_dlc_hierarchy",
    "find_orphans",
    "dependents_of",
    "remove_dlc",
    "validate_form",
    "form_to_dlc",
    "upsert_dlc",
]

LOGGER = logging.getLogger("LauncherAdmin.DLCCatalog.hierarchy")

Record = Union[DLC, DLCCatalogEntry]


@dataclass
class HierarchyNode:
    dlc: Record
    children: List["HierarchyNode"] = field(default_factory=list)
    orphaned: bool = False


def _is_environment(record: Record) -> bool:
    return record.level == 1


def _matches_parent(child: Record, parent: Record) -> bool:
    return bool(child.parent_id) and child.parent_id in (parent.id, parent.folder_name)


def build_dlc_hierarchy(records: Iterable[Record]) -> List[HierarchyNode]:
    """Return environments with their characters, followed by orphaned characters."""

    items = list(records)
    environments = [record for record in items if _is_environment(record)]
    characters = [record for record in items if not _is_environment(record)]

    nodes: List[HierarchyNode] = []
    assigned = set()
    for env in environments:
        children = []
        for character in characters:
            if _matches_parent(character, env):
                children.append(HierarchyNode(dlc=character))
                assigned.add(character.id)
        nodes.append(HierarchyNode(dlc=env, children=children))

    for character in characters:
        if character.id not in assigned:
            nodes.append(HierarchyNode(dlc=character, orphaned=True))
    return nodes


def find_orphans(records: Iterable[Record]) -> List[Record]:
    """Characters without a parent, or whose parent is not an environment in the set."""

    items = list(records)
    environments = [record for record in items if _is_environment(record)]
    return [
        record
        for record in items
        if not _is_environment(record)
        and not any(_matches_parent(record, env) for env in environments)
    ]


def dependents_of(dlcs: Mapping[str, DLC], dlc_id: str) -> List[DLC]:
    target = dlcs.get(dlc_id)
    if target is None or not _is_environment(target):
        return []
    return [dlc for dlc in dlcs.values() if dlc.is_character and _matches_parent(dlc, target)]


def remove_dlc(dlcs: Mapping[str, DLC], dlc_id: str, *, cascade: bool = False) -> Dict[str, DLC]:
    """Return a copy of ``dlcs`` without ``dlc_id``.

    Removing an environment that still has characters requires
    ``cascade=True``; the characters are removed with it.
    """

    remaining = dict(dlcs)
    if dlc_id not in remaining:
        raise KeyError(dlc_id)

    dependents = dependents_of(remaining, dlc_id)
    if dependents and not cascade:
        raise ConfirmationRequiredError(
            f"DLC {dlc_id} has {len(dependents)} dependent character DLC(s); "
            "removing it also removes them"
        )
    for dependent in dependents:
        remaining.pop(dependent.id, None)
    del remaining[dlc_id]
    LOGGER.info(
        "DLC removed",
        extra={"stage": "edit", "dlc_id": dlc_id, "cascaded": [d.id for d in dependents]},
    )
    return remaining


def _is_absolute_url(value: str) -> bool:
    parts = urlsplit(value)
    return bool(parts.scheme and parts.netloc)


def validate_form(form: DLCFormData) -> Dict[str, str]:
    """Return ``{field: message}`` for every rule ``form`` breaks."""

    errors: Dict[str, str] = {}
    if not form.name.strip():
        errors["name"] = "Name is required"
    if not form.version.strip():
        errors["version"] = "Version is required"

    manifest_url = form.manifest_url.strip()
    if not manifest_url:
        errors["manifestUrl"] = "Manifest URL is required"
    elif not _is_absolute_url(manifest_url):
        errors["manifestUrl"] = "Invalid URL format"

    if not form.folder_name.strip():
        errors["folderName"] = "Folder name is required"
    elif not is_valid_folder_name(form.folder_name):
        errors["folderName"] = "Folder name can only contain letters, numbers, and underscores"

    dlc_type = form.type or infer_dlc_type(form.folder_name).type
    if dlc_type is DLCType.CHARACTER:
        if not (form.parent_id or "").strip():
            errors["parentId"] = "Parent environment is required for character DLCs"
        if not (form.parent_version or "").strip():
            errors["parentVersion"] = "Required parent version is needed"
    return errors


def form_to_dlc(
    form: DLCFormData,
    existing: Optional[DLC] = None,
    *,
    environments: Iterable[DLC] = (),
    now: Optional[datetime] = None,
) -> DLC:
    """Build a DLC from operator input, filling gaps from the folder-name convention.

    A character's parent resolves to a matching environment in
    ``environments`` (its ``id`` wins over the conventional folder name), and
    a missing ``parentVersion`` is taken from that environment.

    Raises:
        InvalidFormError: the completed form breaks a validation rule.
    """

    candidates = list(environments)
    inferred = infer_dlc_type(form.folder_name)
    if form.type is not None:
        dlc_type = form.type
    elif form.level is not None:
        dlc_type = DLCType.for_level(form.level)
    else:
        dlc_type = inferred.type

    parent_id: Optional[str] = None
    parent_version: Optional[str] = None
    if dlc_type is DLCType.CHARACTER:
        parent_id = (form.parent_id or "").strip() or None
        if parent_id is None and inferred.parent_id is not None:
            conventional = find_environment(inferred.parent_id, candidates)
            parent_id = conventional.id if conventional is not None else inferred.parent_id
        parent_version = (form.parent_version or "").strip() or None
        parent = find_environment(parent_id, candidates)
        if parent_version is None and parent is not None:
            parent_version = parent.version

    completed = form.model_copy(
        update={"type": dlc_type, "parent_id": parent_id, "parent_version": parent_version}
    )
    errors = validate_form(completed)
    if errors:
        raise InvalidFormError(errors)

    timestamp = utc_timestamp(now)
    if existing is not None:
        metadata = existing.metadata.model_copy(update={"updated_at": timestamp})
    else:
        metadata = DLCMetadata(createdAt=timestamp, updatedAt=timestamp)

    required: List[RequiredDLC] = []
    if parent_id and parent_version:
        required.append(RequiredDLC(id=parent_id, minVersion=parent_version))

    return DLC(
        id=existing.id if existing is not None else form.folder_name,
        name=form.name.strip(),
        folderName=form.folder_name,
        type=dlc_type,
        level=dlc_type.level,
        parentId=parent_id,
        parentVersion=parent_version,
        version=form.version.strip(),
        manifestUrl=form.manifest_url.strip(),
        installPath=existing.install_path if existing is not None else DEFAULT_INSTALL_PATH,
        description=form.description,
        iconUrl=form.icon_url,
        requiredBaseVersion=form.required_base_version,
        requiredDLCs=required,
        enabled=form.enabled,
        size=existing.size if existing is not None else 0,
        metadata=metadata,
    )


def upsert_dlc(
    dlcs: Mapping[str, DLC],
    form: DLCFormData,
    *,
    dlc_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Dict[str, DLC]:
    """Return a copy of ``dlcs`` with the DLC described by ``form`` created or replaced.

    Environments already in ``dlcs`` are the candidates for a character's parent.
    """

    key = dlc_id or form.folder_name
    updated = dict(dlcs)
    environments = [dlc for dlc in updated.values() if _is_environment(dlc)]
    dlc = form_to_dlc(form, updated.get(key), environments=environments, now=now)
    updated[dlc.id] = dlc
    return updated
