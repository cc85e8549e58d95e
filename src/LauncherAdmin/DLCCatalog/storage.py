"""Read-only access to the public object store bucket.

The bucket offers direct-key GET/HEAD only; there is no listing.  Key layout:

* ``{base}/{build}/roleplayai_manifest.json``: base-game manifest
* ``{base}/{build}/{folder}/manifest.json``: one DLC manifest per folder
* ``{base}/catalog.json``: the last published catalog
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

import httpx

from .errors import FetchFailure
from .models import BuildName
from .net import get_http_client
from .settings import BucketSettings, HttpSettings

__all__ = ["PublicBucket"]

LOGGER = logging.getLogger("LauncherAdmin.DLCCatalog.storage")


class PublicBucket:
    """URL synthesis plus JSON GET / HEAD probes against the bucket."""

    def __init__(
        self,
        settings: Optional[BucketSettings] = None,
        *,
        client: Optional[httpx.Client] = None,
        http_settings: Optional[HttpSettings] = None,
    ) -> None:
        self.settings = settings or BucketSettings()
        self._client = client
        self._http_settings = http_settings

    @property
    def base_url(self) -> str:
        return self.settings.public_base_url

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            return get_http_client(self._http_settings)
        return self._client

    # --- URL synthesis ---------------------------------------------------------

    def base_manifest_url(self, build: object) -> str:
        name = BuildName.parse(build)
        return f"{self.base_url}/{name.value}/{self.settings.base_manifest_name}"

    def dlc_manifest_url(self, build: object, folder_name: str) -> str:
        name = BuildName.parse(build)
        return f"{self.base_url}/{name.value}/{folder_name}/{self.settings.dlc_manifest_name}"

    def catalog_url(self) -> str:
        return f"{self.base_url}/{self.settings.catalog_key}"

    @staticmethod
    def is_absolute_url(url: Optional[str]) -> bool:
        return bool(url) and str(url).startswith(("http://", "https://"))

    # --- Probes ----------------------------------------------------------------

    def get_json(self, url: str, *, params: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        """GET ``url`` and return its JSON object body.

        Raises:
            FetchFailure: transport error, non-2xx status, or a body that is
                not a JSON object.
        """

        try:
            response = self.client.get(url, params=params)
        except httpx.HTTPError as exc:
            raise FetchFailure(f"GET {url} failed: {exc}", url=url) from exc

        if not response.is_success:
            raise FetchFailure(
                f"GET {url} returned HTTP {response.status_code}",
                url=url,
                status_code=response.status_code,
            )
        try:
            payload = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise FetchFailure(
                f"GET {url} returned malformed JSON", url=url, status_code=response.status_code
            ) from exc
        if not isinstance(payload, dict):
            raise FetchFailure(
                f"GET {url} returned {type(payload).__name__}, expected an object",
                url=url,
                status_code=response.status_code,
            )
        return payload

    def exists(self, url: str) -> bool:
        """HEAD ``url``; transport errors count as absent."""

        try:
            response = self.client.head(url)
        except httpx.HTTPError as exc:
            LOGGER.info("HEAD failed", extra={"stage": "probe", "url": url, "error": str(exc)})
            return False
        return response.is_success
