"""Preparing, exporting, and recording the publishable catalog.

The public bucket is read-only from here, so publishing means: regenerate
the catalog from stored build state, show the operator the validation
findings and what changes relative to the live ``catalog.json``, then write
the document to a file for upload and remember it as ``lastCatalog``.
Validation findings never block an export.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from .catalog import (
    CatalogDiff,
    ValidationReport,
    compare_catalogs,
    format_catalog_json,
    generate_catalog,
    summarize_catalog,
    validate_catalog,
)
from .documents import AppRepository
from .errors import FetchFailure
from .manifests import write_json_atomic
from .models import Catalog
from .settings import CatalogSettings
from .storage import PublicBucket

__all__ = ["PublishPreview", "CatalogPublisher"]

LOGGER = logging.getLogger("LauncherAdmin.DLCCatalog.publisher")


@dataclass
class PublishPreview:
    """Everything an operator reviews before exporting a catalog."""

    app_id: str
    catalog: Catalog
    report: ValidationReport
    diff: CatalogDiff
    current: Optional[Dict[str, Any]] = None

    @property
    def summary(self) -> Dict[str, Optional[Dict[str, Any]]]:
        return summarize_catalog(self.catalog)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "appId": self.app_id,
            "catalog": self.catalog.to_document(),
            "summary": self.summary,
            "valid": self.report.valid,
            "errors": list(self.report.errors),
            "changes": list(self.diff.changes),
            "published": self.current is not None,
        }


class CatalogPublisher:
    def __init__(
        self,
        repository: AppRepository,
        bucket: PublicBucket,
        *,
        catalog_settings: Optional[CatalogSettings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.repository = repository
        self.bucket = bucket
        self.catalog_settings = catalog_settings or CatalogSettings()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def fetch_current(self) -> Optional[Dict[str, Any]]:
        """Return the live ``catalog.json`` or ``None`` when nothing is published."""

        url = self.bucket.catalog_url()
        try:
            return self.bucket.get_json(url, params={"t": str(int(time.time() * 1000))})
        except FetchFailure as exc:
            LOGGER.info(
                "no published catalog",
                extra={"stage": "publish", "url": url, "status": exc.status_code},
            )
            return None

    def prepare(self, app_id: str) -> PublishPreview:
        document = self.repository.load(app_id)
        states = self.repository.build_states(document, app_id=app_id)
        catalog = generate_catalog(
            states,
            bucket=self.bucket,
            settings=self.catalog_settings,
            now=self._clock(),
        )
        report = validate_catalog(catalog)
        current = self.fetch_current()
        diff = compare_catalogs(current, catalog)
        if not report.valid:
            LOGGER.warning(
                "catalog has validation findings; export is still allowed",
                extra={"stage": "publish", "app_id": app_id, "errors": report.errors},
            )
        return PublishPreview(app_id=app_id, catalog=catalog, report=report, diff=diff, current=current)

    def export(self, preview: PublishPreview, path: Path) -> Path:
        """Write the previewed catalog to ``path`` for manual upload."""

        target = write_json_atomic(Path(path), preview.catalog.to_document())
        LOGGER.info(
            "catalog exported",
            extra={
                "stage": "publish",
                "app_id": preview.app_id,
                "path": str(target),
                "bytes": len(format_catalog_json(preview.catalog)),
            },
        )
        return target

    def record(self, app_id: str, catalog: Catalog) -> None:
        """Remember ``catalog`` as the app's last generated catalog."""

        self.repository.merge(
            app_id,
            {"lastCatalog": catalog.to_document(), "lastCatalogUpdated": catalog.last_updated},
            operation="record catalog",
        )
        LOGGER.info("catalog recorded", extra={"stage": "publish", "app_id": app_id})
