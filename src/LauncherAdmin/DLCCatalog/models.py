# === NAVMAP v1 ===
# {
#   "module": "LauncherAdmin.DLCCatalog.models",
#   "purpose": "Typed records for builds, DLC packages, discovery results, and the published catalog",
#   "sections": [
#     {"id": "enums", "name": "Enumerations", "anchor": "ENUM", "kind": "api"},
#     {"id": "dlc", "name": "DLC records", "anchor": "DLC", "kind": "api"},
#     {"id": "catalog", "name": "Catalog records", "anchor": "CAT", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Typed records shared by discovery, reconciliation, and catalog generation.

All records serialise with the camelCase keys used by the document store and
the published ``catalog.json``; Python code addresses them by snake_case
attribute names.  Stored records omit absent optionals (the document store
rejects undefined values) while catalog entries always carry
``parentId``/``parentVersion``/``requiredBaseVersion`` as explicit nulls.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .errors import UnknownBuildError

__all__ = [
    "FOLDER_NAME_PATTERN",
    "DEFAULT_INSTALL_PATH",
    "BuildName",
    "BUILD_NAMES",
    "DLCType",
    "RequiredDLC",
    "DLCMetadata",
    "DLC",
    "DLCFormData",
    "R2DLCInfo",
    "BuildTypeData",
    "BaseGameInfo",
    "DLCCatalogEntry",
    "BuildCatalog",
    "Catalog",
]

FOLDER_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")
DEFAULT_INSTALL_PATH = "Content/Paks"

_RECORD_CONFIG = ConfigDict(populate_by_name=True, extra="ignore", validate_assignment=True)

# --- Enumerations --------------------------------------------------------------


class BuildName(str, Enum):
    """The two independent deployment channels."""

    PRODUCTION = "production"
    STAGING = "staging"

    @classmethod
    def parse(cls, value: object) -> "BuildName":
        """Normalise ``value`` into a :class:`BuildName` or raise :class:`UnknownBuildError`."""

        if isinstance(value, BuildName):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        raise UnknownBuildError(value)

    def other(self) -> "BuildName":
        if self is BuildName.PRODUCTION:
            return BuildName.STAGING
        return BuildName.PRODUCTION

    def __str__(self) -> str:
        return self.value


BUILD_NAMES: Tuple[BuildName, ...] = (BuildName.PRODUCTION, BuildName.STAGING)


class DLCType(str, Enum):
    ENVIRONMENT = "environment"
    CHARACTER = "character"

    @property
    def level(self) -> int:
        """Hierarchy level implied by the type (1 environment, 2 character)."""

        return 1 if self is DLCType.ENVIRONMENT else 2

    @classmethod
    def for_level(cls, level: int) -> "DLCType":
        return cls.CHARACTER if level == 2 else cls.ENVIRONMENT

    def __str__(self) -> str:
        return self.value


# --- DLC records ---------------------------------------------------------------


class RequiredDLC(BaseModel):
    """One dependency edge: the DLC ``id`` and the minimum version it must have."""

    id: str
    min_version: str = Field(alias="minVersion")

    model_config = _RECORD_CONFIG


class DLCMetadata(BaseModel):
    """Bookkeeping timestamps kept alongside a stored DLC."""

    created_at: Optional[Any] = Field(default=None, alias="createdAt")
    updated_at: Optional[Any] = Field(default=None, alias="updatedAt")
    detected_from_r2: Optional[bool] = Field(default=None, alias="detectedFromR2")
    last_synced_at: Optional[Any] = Field(default=None, alias="lastSyncedAt")

    model_config = ConfigDict(populate_by_name=True, extra="allow")


def _derive_level(values: Any) -> Any:
    if isinstance(values, dict) and values.get("level") in (None, 0, ""):
        dlc_type = values.get("type")
        if dlc_type is not None:
            values = dict(values)
            values["level"] = DLCType(dlc_type).level
    return values


class DLC(BaseModel):
    """A downloadable package as stored in a build's DLC collection."""

    id: str = ""
    name: str = ""
    folder_name: str = Field(alias="folderName")
    type: DLCType
    level: int = Field(ge=1, le=2)
    parent_id: Optional[str] = Field(default=None, alias="parentId")
    parent_version: Optional[str] = Field(default=None, alias="parentVersion")
    version: str
    manifest_url: str = Field(default="", alias="manifestUrl")
    install_path: str = Field(default=DEFAULT_INSTALL_PATH, alias="installPath")
    description: str = ""
    size: int = Field(default=0, ge=0)
    icon_url: str = Field(default="", alias="iconUrl")
    required_base_version: Optional[str] = Field(default=None, alias="requiredBaseVersion")
    required_dlcs: List[RequiredDLC] = Field(default_factory=list, alias="requiredDLCs")
    enabled: bool = True
    metadata: DLCMetadata = Field(default_factory=DLCMetadata)

    model_config = _RECORD_CONFIG

    @model_validator(mode="before")
    @classmethod
    def _fill_derived_fields(cls, values: Any) -> Any:
        values = _derive_level(values)
        if isinstance(values, dict):
            folder = values.get("folderName", values.get("folder_name"))
            if folder and not values.get("id"):
                values = dict(values)
                values["id"] = folder
            if folder and not values.get("name"):
                values = dict(values)
                values["name"] = folder
        return values

    @field_validator("folder_name")
    @classmethod
    def _check_folder_name(cls, value: str) -> str:
        if not FOLDER_NAME_PATTERN.match(value):
            raise ValueError(f"folderName '{value}' must match {FOLDER_NAME_PATTERN.pattern}")
        return value

    @field_validator("parent_id", "parent_version", "required_base_version", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def _check_level_matches_type(self) -> "DLC":
        if self.level != self.type.level:
            raise ValueError(
                f"DLC {self.id}: level {self.level} does not agree with type '{self.type.value}'"
            )
        return self

    @property
    def is_character(self) -> bool:
        return self.type is DLCType.CHARACTER

    def to_document(self) -> Dict[str, Any]:
        """Serialise for the document store, omitting absent optionals."""

        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class DLCFormData(BaseModel):
    """Operator-entered values for creating or editing a DLC."""

    name: str
    folder_name: str = Field(alias="folderName")
    version: str
    type: Optional[DLCType] = None
    level: Optional[int] = Field(default=None, ge=1, le=2)
    parent_id: Optional[str] = Field(default=None, alias="parentId")
    parent_version: Optional[str] = Field(default=None, alias="parentVersion")
    manifest_url: str = Field(default="", alias="manifestUrl")
    description: str = ""
    icon_url: str = Field(default="", alias="iconUrl")
    required_base_version: Optional[str] = Field(default=None, alias="requiredBaseVersion")
    enabled: bool = True

    model_config = _RECORD_CONFIG


class R2DLCInfo(BaseModel):
    """Transient DLC descriptor recovered from the object store."""

    folder_name: str = Field(alias="folderName")
    version: str
    manifest_url: str = Field(alias="manifestUrl")
    type: Optional[DLCType] = None
    level: Optional[int] = None
    name: Optional[str] = None
    parent_id: Optional[str] = Field(default=None, alias="parentId")
    parent_version: Optional[str] = Field(default=None, alias="parentVersion")
    required_base_version: Optional[str] = Field(default=None, alias="requiredBaseVersion")
    description: Optional[str] = None
    icon_url: Optional[str] = Field(default=None, alias="iconUrl")
    size: Optional[int] = None
    required_dlcs: Optional[List[RequiredDLC]] = Field(default=None, alias="requiredDLCs")

    model_config = _RECORD_CONFIG


class BuildTypeData(BaseModel):
    """Per-build state held in the app document."""

    version: Optional[str] = None
    dlcs: Dict[str, DLC] = Field(default_factory=dict)

    model_config = _RECORD_CONFIG

    def folder_index(self) -> Dict[str, DLC]:
        """Map folder name to stored DLC."""

        return {dlc.folder_name: dlc for dlc in self.dlcs.values()}

    def to_document(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        if self.version is not None:
            payload["version"] = self.version
        payload["dlcs"] = {key: dlc.to_document() for key, dlc in self.dlcs.items()}
        return payload


# --- Catalog records -----------------------------------------------------------


class BaseGameInfo(BaseModel):
    version: str
    manifest_url: str = Field(alias="manifestUrl")
    min_launcher_version: str = Field(alias="minLauncherVersion")
    last_updated: Optional[str] = Field(default=None, alias="lastUpdated")

    model_config = _RECORD_CONFIG


class DLCCatalogEntry(BaseModel):
    """Flattened, client-facing projection of one DLC."""

    id: str
    name: str
    folder_name: str = Field(alias="folderName")
    type: DLCType
    level: int
    parent_id: Optional[str] = Field(default=None, alias="parentId")
    parent_version: Optional[str] = Field(default=None, alias="parentVersion")
    version: str
    manifest_url: str = Field(alias="manifestUrl")
    required_base_version: Optional[str] = Field(default=None, alias="requiredBaseVersion")
    required_dlcs: List[RequiredDLC] = Field(default_factory=list, alias="requiredDLCs")
    description: str = ""
    icon_url: str = Field(default="", alias="iconUrl")
    size: int = 0
    enabled: bool = True

    model_config = _RECORD_CONFIG


class BuildCatalog(BaseModel):
    base_game: BaseGameInfo = Field(alias="baseGame")
    dlcs: List[DLCCatalogEntry] = Field(default_factory=list)

    model_config = _RECORD_CONFIG


class Catalog(BaseModel):
    """The publishable ``catalog.json`` document."""

    catalog_version: str = Field(alias="catalogVersion")
    last_updated: str = Field(alias="lastUpdated")
    generated_by: str = Field(alias="generatedBy")
    builds: Dict[BuildName, BuildCatalog] = Field(default_factory=dict)

    model_config = _RECORD_CONFIG

    @field_validator("builds", mode="before")
    @classmethod
    def _normalise_build_keys(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {BuildName.parse(key): build for key, build in value.items() if build is not None}
        return value

    def build(self, name: object) -> Optional[BuildCatalog]:
        return self.builds.get(BuildName.parse(name))

    def to_document(self) -> Dict[str, Any]:
        """Serialise with explicit nulls and builds in canonical order."""

        payload = self.model_dump(by_alias=True, mode="json", exclude={"builds"})
        payload["builds"] = {
            build.value: self.builds[build].model_dump(by_alias=True, mode="json")
            for build in BUILD_NAMES
            if build in self.builds
        }
        return payload
