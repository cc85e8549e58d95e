# === NAVMAP v1 ===
# {
#   "module": "LauncherAdmin.DLCCatalog.discovery",
#   "purpose": "Recover the published DLC set of a build from a bucket that cannot be listed",
#   "sections": [
#     {"id": "cache", "name": "Published catalog cache", "anchor": "CACHE", "kind": "api"},
#     {"id": "service", "name": "Discovery service", "anchor": "SVC", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Remote DLC discovery.

The bucket cannot be listed, so discovery probes candidate folder names:
first the folders already tracked in stored state, then a configurable seed
list of well-known names.  Each candidate is resolved by a direct manifest
GET, falling back to the manifest URL recorded for it in the last published
``catalog.json``.  Candidates that resolve through neither path are treated
as absent.  Per-candidate failures are logged and skipped; an empty result
is valid and means the build currently publishes no DLCs.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from pydantic import ValidationError

from .errors import FetchFailure
from .manifests import extract_dlc_info, manifest_version
from .models import BUILD_NAMES, BuildName, R2DLCInfo
from .settings import DiscoverySettings
from .storage import PublicBucket

__all__ = ["Clock", "CatalogCache", "DiscoveryService"]

LOGGER = logging.getLogger("LauncherAdmin.DLCCatalog.discovery")

Clock = Callable[[], float]

# --- Published catalog cache ---------------------------------------------------


@dataclass
class CatalogCache:
    """Holds the last fetched ``catalog.json`` for ``ttl_sec`` seconds.

    Expiry is evaluated against ``clock`` at call time; nothing runs in the
    background.
    """

    ttl_sec: float = 300.0
    clock: Clock = time.monotonic
    value: Optional[Dict[str, Any]] = None
    fetched_at: Optional[float] = None

    def get(self) -> Optional[Dict[str, Any]]:
        if self.value is None or self.fetched_at is None:
            return None
        if self.clock() - self.fetched_at >= self.ttl_sec:
            return None
        return self.value

    def put(self, value: Dict[str, Any]) -> None:
        self.value = value
        self.fetched_at = self.clock()

    def invalidate(self) -> None:
        self.value = None
        self.fetched_at = None


# --- Discovery service ---------------------------------------------------------


@dataclass
class DiscoveryService:
    """Probe the bucket for base-game versions and DLC manifests."""

    bucket: PublicBucket
    seed_folders: Sequence[str] = field(default_factory=lambda: list(DiscoverySettings().seed_folders))
    cache: CatalogCache = field(default_factory=CatalogCache)

    @classmethod
    def from_settings(
        cls,
        bucket: PublicBucket,
        settings: Optional[DiscoverySettings] = None,
        *,
        clock: Optional[Clock] = None,
    ) -> "DiscoveryService":
        cfg = settings or DiscoverySettings()
        cache = CatalogCache(ttl_sec=cfg.catalog_cache_ttl_sec, clock=clock or time.monotonic)
        return cls(bucket=bucket, seed_folders=list(cfg.seed_folders), cache=cache)

    # --- Base game -------------------------------------------------------------

    def detect_version(self, build: object) -> Optional[str]:
        """Return the base-game version published for ``build`` or ``None``."""

        name = BuildName.parse(build)
        url = self.bucket.base_manifest_url(name)
        try:
            manifest = self.bucket.get_json(url)
        except FetchFailure as exc:
            LOGGER.info(
                "base manifest unavailable",
                extra={"stage": "discovery", "build": name.value, "url": url, "error": str(exc)},
            )
            return None
        return manifest_version(manifest)

    def detect_build_types(self) -> List[BuildName]:
        """Return the builds whose base-game manifest exists."""

        found: List[BuildName] = []
        for name in BUILD_NAMES:
            if self.bucket.exists(self.bucket.base_manifest_url(name)):
                found.append(name)
            else:
                LOGGER.info("build not found in bucket", extra={"stage": "discovery", "build": name.value})
        return found

    # --- Published catalog -----------------------------------------------------

    def fetch_published_catalog(self) -> Optional[Dict[str, Any]]:
        """Return the published ``catalog.json``, served from cache within the TTL."""

        cached = self.cache.get()
        if cached is not None:
            return cached

        url = self.bucket.catalog_url()
        try:
            # cache-busting query so intermediaries cannot serve a stale copy
            catalog = self.bucket.get_json(url, params={"t": str(int(time.time() * 1000))})
        except FetchFailure as exc:
            LOGGER.info(
                "published catalog unavailable; skipping catalog lookup",
                extra={"stage": "discovery", "url": url, "error": str(exc)},
            )
            return None
        self.cache.put(catalog)
        LOGGER.debug("published catalog fetched and cached", extra={"stage": "discovery", "url": url})
        return catalog

    def _catalog_manifest_url(self, build: BuildName, folder_name: str) -> Optional[str]:
        catalog = self.fetch_published_catalog()
        if not catalog:
            return None
        builds = catalog.get("builds")
        if not isinstance(builds, Mapping):
            return None
        build_catalog = builds.get(build.value)
        if not isinstance(build_catalog, Mapping):
            return None
        entries = build_catalog.get("dlcs")
        if not isinstance(entries, list):
            return None
        for entry in entries:
            if not isinstance(entry, Mapping):
                continue
            if entry.get("folderName") == folder_name or entry.get("id") == folder_name:
                url = entry.get("manifestUrl")
                if PublicBucket.is_absolute_url(url):
                    return str(url)
                return None
        return None

    # --- DLC manifests ---------------------------------------------------------

    def _parse(self, manifest: Mapping[str, Any], folder_name: str, url: str) -> Optional[R2DLCInfo]:
        try:
            return extract_dlc_info(manifest, folder_name, url)
        except (ValidationError, ValueError, TypeError) as exc:
            LOGGER.warning(
                "manifest metadata unusable",
                extra={"stage": "discovery", "folder": folder_name, "url": url, "error": str(exc)},
            )
            return None

    def read_dlc_manifest(self, build: object, folder_name: str) -> Optional[R2DLCInfo]:
        """Resolve ``folder_name`` in ``build``; ``None`` when it is absent.

        Strategies, first success wins: the conventional manifest key, then the
        manifest URL recorded for the folder in the published catalog.
        """

        name = BuildName.parse(build)
        direct_url = self.bucket.dlc_manifest_url(name, folder_name)
        try:
            manifest = self.bucket.get_json(direct_url)
        except FetchFailure as exc:
            LOGGER.debug(
                "direct manifest probe missed",
                extra={
                    "stage": "discovery",
                    "build": name.value,
                    "folder": folder_name,
                    "status": exc.status_code,
                },
            )
        else:
            return self._parse(manifest, folder_name, direct_url)

        catalog_url = self._catalog_manifest_url(name, folder_name)
        if catalog_url is None or catalog_url == direct_url:
            return None
        try:
            manifest = self.bucket.get_json(catalog_url)
        except FetchFailure as exc:
            LOGGER.info(
                "catalog manifest URL failed",
                extra={
                    "stage": "discovery",
                    "build": name.value,
                    "folder": folder_name,
                    "url": catalog_url,
                    "error": str(exc),
                },
            )
            return None
        LOGGER.info(
            "resolved via published catalog",
            extra={"stage": "discovery", "build": name.value, "folder": folder_name, "url": catalog_url},
        )
        return self._parse(manifest, folder_name, catalog_url)

    def candidate_folders(self, known_folders: Iterable[str] = ()) -> List[str]:
        """Known folders first, then seeds, de-duplicated in order."""

        seen = set()
        ordered: List[str] = []
        for folder in list(known_folders) + list(self.seed_folders):
            if not folder or folder in seen:
                continue
            seen.add(folder)
            ordered.append(folder)
        return ordered

    def detect_dlcs(self, build: object, known_folders: Iterable[str] = ()) -> List[R2DLCInfo]:
        """Probe every candidate folder sequentially and return the resolved DLCs."""

        name = BuildName.parse(build)
        candidates = self.candidate_folders(known_folders)
        LOGGER.info(
            "detecting DLCs",
            extra={"stage": "discovery", "build": name.value, "candidates": len(candidates)},
        )

        detected: List[R2DLCInfo] = []
        resolved_folders = set()
        for folder in candidates:
            info = self.read_dlc_manifest(name, folder)
            if info is None:
                continue
            if info.folder_name in resolved_folders:
                LOGGER.debug(
                    "duplicate folder suppressed",
                    extra={"stage": "discovery", "build": name.value, "folder": info.folder_name},
                )
                continue
            resolved_folders.add(info.folder_name)
            detected.append(info)
            LOGGER.info(
                "found DLC",
                extra={
                    "stage": "discovery",
                    "build": name.value,
                    "folder": info.folder_name,
                    "version": info.version,
                    "type": info.type.value if info.type else None,
                },
            )

        LOGGER.info(
            "detection complete",
            extra={"stage": "discovery", "build": name.value, "found": len(detected)},
        )
        return detected
