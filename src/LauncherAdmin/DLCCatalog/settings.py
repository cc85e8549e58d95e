# === NAVMAP v1 ===
# {
#   "module": "LauncherAdmin.DLCCatalog.settings",
#   "purpose": "Configuration models, YAML loading, and environment overrides for the DLC catalog engine",
#   "sections": [
#     {"id": "paths", "name": "Default paths", "anchor": "PTH", "kind": "constants"},
#     {"id": "models", "name": "Configuration models", "anchor": "MOD", "kind": "api"},
#     {"id": "env", "name": "Environment overrides", "anchor": "ENV", "kind": "api"},
#     {"id": "loading", "name": "Loading & caching", "anchor": "LOAD", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Configuration models and loaders for the DLC catalog engine.

Settings are plain pydantic models grouped by concern (object store bucket,
discovery, HTTP, catalog constants, logging, document store).  They can be
read from a YAML file, and a handful of operational knobs can be overridden
through ``DLCADMIN_*`` environment variables.
"""

from __future__ import annotations

import logging
import re
import threading
from pathlib import Path
from typing import Dict, List, Mapping, Optional

import platformdirs
import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError

__all__ = [
    "DATA_ROOT",
    "CACHE_DIR",
    "LOG_DIR",
    "STORE_DIR",
    "DEFAULT_PUBLIC_BASE_URL",
    "DEFAULT_SEED_FOLDERS",
    "BucketSettings",
    "DiscoverySettings",
    "HttpSettings",
    "CatalogSettings",
    "LoggingSettings",
    "StoreSettings",
    "AdminSettings",
    "EnvironmentOverrides",
    "load_raw_yaml",
    "build_settings",
    "load_settings",
    "get_default_settings",
    "invalidate_default_settings_cache",
]

LOGGER = logging.getLogger("LauncherAdmin.DLCCatalog.settings")

# --- Default paths -------------------------------------------------------------

DATA_ROOT = Path(platformdirs.user_data_dir("dlc-admin", appauthor=False))
CACHE_DIR = Path(platformdirs.user_cache_dir("dlc-admin", appauthor=False))
LOG_DIR = DATA_ROOT / "logs"
STORE_DIR = DATA_ROOT / "store"

DEFAULT_PUBLIC_BASE_URL = "https://pub-f87e49b41fad4c0fad84e94d65ed13cc.r2.dev"

# Well-known folder names probed in addition to the DLCs already tracked.
DEFAULT_SEED_FOLDERS: List[str] = [
    "DLC_Hospital",
    "DLC_Hospital_Betty",
    "DLC_Hospital_David",
    "DLC_Hospital_Joshua",
    "DLC_Hospital_Rachael",
    "DLC_Office",
    "DLC_School",
    "DLC_Home",
]

_FOLDER_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")
_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

# --- Configuration models ------------------------------------------------------


class BucketSettings(BaseModel):
    """Location and key layout of the public object store bucket."""

    public_base_url: str = Field(
        default=DEFAULT_PUBLIC_BASE_URL,
        description="Public HTTP base URL of the bucket (no trailing slash required)",
    )
    base_manifest_name: str = Field(default="roleplayai_manifest.json")
    dlc_manifest_name: str = Field(default="manifest.json")
    catalog_key: str = Field(default="catalog.json")

    @field_validator("public_base_url")
    @classmethod
    def validate_base_url(cls, value: str) -> str:
        """Require an absolute http(s) URL and strip trailing slashes."""

        stripped = value.strip().rstrip("/")
        if not stripped.startswith(("http://", "https://")):
            raise ValueError(f"public_base_url must be an absolute http(s) URL, got '{value}'")
        return stripped

    model_config = {"validate_assignment": True, "extra": "forbid"}


class DiscoverySettings(BaseModel):
    """Inputs controlling remote DLC discovery."""

    seed_folders: List[str] = Field(default_factory=lambda: list(DEFAULT_SEED_FOLDERS))
    catalog_cache_ttl_sec: float = Field(default=300.0, ge=0.0, le=86_400.0)

    @field_validator("seed_folders")
    @classmethod
    def validate_seed_folders(cls, value: List[str]) -> List[str]:
        for folder in value:
            if not _FOLDER_PATTERN.match(folder):
                raise ValueError(f"Invalid seed folder name '{folder}'")
        return value

    model_config = {"validate_assignment": True, "extra": "forbid"}


class HttpSettings(BaseModel):
    """HTTPX client limits and politeness settings."""

    timeout_sec: float = Field(default=30.0, gt=0.0, le=300.0)
    connect_timeout_sec: float = Field(default=5.0, gt=0.0, le=60.0)
    pool_timeout_sec: float = Field(default=5.0, gt=0.0, le=60.0)
    max_connections: int = Field(default=16, ge=1, le=256)
    max_keepalive_connections: int = Field(default=8, ge=0, le=256)
    keepalive_expiry_sec: float = Field(default=30.0, gt=0.0, le=600.0)
    http2_enabled: bool = Field(default=False)
    cache_enabled: bool = Field(
        default=True,
        description="Cache GET responses on disk and revalidate them with the bucket on every use",
    )
    cache_ttl_sec: int = Field(
        default=86_400,
        gt=0,
        description="Seconds a cached response is kept on disk before Hishel evicts it",
    )
    polite_headers: Dict[str, str] = Field(
        default_factory=lambda: {"User-Agent": "dlc-admin/1.0"},
    )

    def polite_http_headers(self) -> Dict[str, str]:
        """Return headers attached to every outgoing request."""

        return dict(self.polite_headers)

    model_config = {"validate_assignment": True, "extra": "forbid"}


class CatalogSettings(BaseModel):
    """Constants stamped into generated catalogs."""

    catalog_version: str = Field(default="1.0")
    generated_by: str = Field(default="admin-site")
    min_launcher_version: str = Field(default="1.0.0")

    model_config = {"validate_assignment": True, "extra": "forbid"}


class LoggingSettings(BaseModel):
    """Logging level, retention, and file rotation limits."""

    level: str = Field(default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)")
    log_dir: Optional[Path] = Field(default=None)
    max_log_size_mb: int = Field(default=50, gt=0)
    retention_days: int = Field(default=30, ge=1)

    @field_validator("level")
    @classmethod
    def validate_level(cls, value: str) -> str:
        upper = value.upper()
        if upper not in _LOG_LEVELS:
            raise ValueError(f"level must be one of {sorted(_LOG_LEVELS)}")
        return upper

    model_config = {"validate_assignment": True}


class StoreSettings(BaseModel):
    """Location of the JSON-file document store used by the CLI."""

    root: Path = Field(default=STORE_DIR)

    @field_validator("root", mode="before")
    @classmethod
    def expand_root(cls, value: object) -> Path:
        return Path(str(value)).expanduser()

    model_config = {"validate_assignment": True, "extra": "forbid"}


class AdminSettings(BaseModel):
    """Aggregate configuration for one admin session."""

    bucket: BucketSettings = Field(default_factory=BucketSettings)
    discovery: DiscoverySettings = Field(default_factory=DiscoverySettings)
    http: HttpSettings = Field(default_factory=HttpSettings)
    catalog: CatalogSettings = Field(default_factory=CatalogSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)

    model_config = {"validate_assignment": True, "extra": "forbid"}


# --- Environment overrides -----------------------------------------------------


class EnvironmentOverrides(BaseSettings):
    public_base_url: Optional[str] = Field(default=None, alias="DLCADMIN_PUBLIC_BASE_URL")
    log_level: Optional[str] = Field(default=None, alias="DLCADMIN_LOG_LEVEL")
    store_root: Optional[Path] = Field(default=None, alias="DLCADMIN_STORE_ROOT")
    timeout_sec: Optional[float] = Field(default=None, alias="DLCADMIN_TIMEOUT_SEC")

    model_config = SettingsConfigDict(env_prefix="DLCADMIN_", case_sensitive=False, extra="ignore")


def _apply_env_overrides(settings: AdminSettings) -> None:
    env = EnvironmentOverrides()

    if env.public_base_url is not None:
        settings.bucket.public_base_url = env.public_base_url
        LOGGER.info("Config overridden: public_base_url=%s", env.public_base_url, extra={"stage": "config"})
    if env.log_level is not None:
        settings.logging.level = env.log_level
        LOGGER.info("Config overridden: log_level=%s", env.log_level, extra={"stage": "config"})
    if env.store_root is not None:
        settings.store.root = env.store_root
        LOGGER.info("Config overridden: store_root=%s", env.store_root, extra={"stage": "config"})
    if env.timeout_sec is not None:
        settings.http.timeout_sec = env.timeout_sec
        LOGGER.info("Config overridden: timeout_sec=%s", env.timeout_sec, extra={"stage": "config"})


# --- Loading & caching ---------------------------------------------------------

_DEFAULT_SETTINGS_LOCK = threading.Lock()
_DEFAULT_SETTINGS_CACHE: Optional[AdminSettings] = None


def load_raw_yaml(config_path: Path) -> Mapping[str, object]:
    """Read a YAML settings file and return its top-level mapping."""

    resolved = Path(config_path).expanduser()
    if not resolved.exists():
        raise ConfigurationError(f"Configuration file not found: {resolved}")

    try:
        with resolved.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Configuration file '{resolved}' contains invalid YAML") from exc

    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ConfigurationError("Configuration file must contain a mapping at the root")
    return data


def build_settings(raw: Mapping[str, object], *, apply_env: bool = True) -> AdminSettings:
    """Materialise :class:`AdminSettings` from a raw mapping."""

    try:
        settings = AdminSettings.model_validate(dict(raw))
        if apply_env:
            _apply_env_overrides(settings)
    except ValidationError as exc:
        messages = []
        for error in exc.errors():
            location = " -> ".join(str(part) for part in error["loc"])
            messages.append(f"{location}: {error['msg']}")
        raise ConfigurationError(
            "Configuration validation failed:\n  " + "\n  ".join(messages)
        ) from exc
    return settings


def load_settings(config_path: Optional[Path] = None) -> AdminSettings:
    """Load settings from ``config_path`` (or defaults) and apply env overrides."""

    raw: Mapping[str, object] = {}
    if config_path is not None:
        raw = load_raw_yaml(config_path)
    return build_settings(raw)


def get_default_settings(*, copy: bool = False) -> AdminSettings:
    """Return memoised default settings with environment overrides applied."""

    global _DEFAULT_SETTINGS_CACHE  # noqa: PLW0603

    with _DEFAULT_SETTINGS_LOCK:
        if _DEFAULT_SETTINGS_CACHE is None:
            _DEFAULT_SETTINGS_CACHE = build_settings({})
        cached = _DEFAULT_SETTINGS_CACHE
    if copy:
        return cached.model_copy(deep=True)
    return cached


def invalidate_default_settings_cache() -> None:
    """Drop the memoised default settings."""

    global _DEFAULT_SETTINGS_CACHE  # noqa: PLW0603

    with _DEFAULT_SETTINGS_LOCK:
        _DEFAULT_SETTINGS_CACHE = None
