"""Testing utilities for exercising discovery and sync without a real bucket.

:class:`FakeBucket` serves JSON objects keyed by bucket path through an
``httpx.MockTransport`` and records every request, so tests can assert both
results and probing behaviour.  :func:`use_mock_http_client` temporarily
installs any transport as the shared HTTP client.
"""

from __future__ import annotations

import contextlib
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple, Union

import httpx

from .models import BuildName
from .settings import BucketSettings, HttpSettings
from .storage import PublicBucket

__all__ = [
    "FAKE_BASE_URL",
    "RequestRecord",
    "ObjectSpec",
    "FakeBucket",
    "use_mock_http_client",
]

FAKE_BASE_URL = "https://bucket.test"


@contextlib.contextmanager
def use_mock_http_client(transport: httpx.BaseTransport, **client_kwargs: Any) -> Iterator[httpx.Client]:
    """Temporarily install an HTTPX client backed by ``transport``."""

    from .net import configure_http_client, reset_http_client

    default_settings: Optional[HttpSettings] = client_kwargs.pop("default_settings", None)
    client = httpx.Client(transport=transport, **client_kwargs)
    configure_http_client(client=client, default_settings=default_settings)
    try:
        yield client
    finally:
        reset_http_client()
        client.close()


@dataclass
class RequestRecord:
    """Captured HTTP request issued against the fake bucket."""

    method: str
    path: str
    query: Dict[str, str]


@dataclass
class ObjectSpec:
    """Stored object: a JSON payload or raw bytes, served with ``status``."""

    body: Union[bytes, Mapping[str, Any], List[Any], str]
    status: int = 200
    headers: Dict[str, str] = field(default_factory=lambda: {"Content-Type": "application/json"})

    def serialise_body(self) -> bytes:
        if isinstance(self.body, bytes):
            return self.body
        if isinstance(self.body, str):
            return self.body.encode("utf-8")
        return json.dumps(self.body).encode("utf-8")


class FakeBucket:
    """In-memory stand-in for the public object store.

    Unknown keys answer ``404``.  Paths are bucket keys without a leading
    slash, e.g. ``"production/DLC_Hospital/manifest.json"``.
    """

    def __init__(self, base_url: str = FAKE_BASE_URL) -> None:
        self.base_url = base_url.rstrip("/")
        self.objects: Dict[str, ObjectSpec] = {}
        self.requests: List[RequestRecord] = []
        self.settings = BucketSettings(public_base_url=self.base_url)

    # --- Population ------------------------------------------------------------

    def put(self, path: str, body: Any, *, status: int = 200) -> None:
        self.objects[path.lstrip("/")] = ObjectSpec(body=body, status=status)

    def remove(self, path: str) -> None:
        self.objects.pop(path.lstrip("/"), None)

    def put_base_manifest(self, build: object, version: Optional[str], **extra: Any) -> None:
        name = BuildName.parse(build)
        payload: Dict[str, Any] = dict(extra)
        if version is not None:
            payload["version"] = version
        self.put(f"{name.value}/{self.settings.base_manifest_name}", payload)

    def put_dlc_manifest(
        self,
        build: object,
        folder_name: str,
        version: Optional[str] = "1.0.0",
        *,
        dlc: Optional[Mapping[str, Any]] = None,
        sizes: Tuple[int, ...] = (),
        path: Optional[str] = None,
    ) -> str:
        """Store a DLC manifest and return the absolute URL it is served from."""

        name = BuildName.parse(build)
        payload: Dict[str, Any] = {}
        if version is not None:
            payload["version"] = version
        if sizes:
            payload["files"] = [
                {"path": f"file{index}.pak", "totalSize": size} for index, size in enumerate(sizes)
            ]
        if dlc is not None:
            payload["dlc"] = dict(dlc)
        key = path or f"{name.value}/{folder_name}/{self.settings.dlc_manifest_name}"
        self.put(key, payload)
        return self.url(key)

    def put_catalog(self, catalog: Mapping[str, Any]) -> None:
        self.put(self.settings.catalog_key, catalog)

    def url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    # --- Inspection ------------------------------------------------------------

    def paths_requested(self, method: Optional[str] = None) -> List[str]:
        return [
            record.path
            for record in self.requests
            if method is None or record.method == method.upper()
        ]

    def count(self, path: str, method: str = "GET") -> int:
        return self.paths_requested(method).count(path.lstrip("/"))

    # --- Transport -------------------------------------------------------------

    def build_httpx_transport(self) -> httpx.MockTransport:
        bucket = self

        def _handler(request: httpx.Request) -> httpx.Response:
            path = request.url.path.lstrip("/")
            bucket.requests.append(
                RequestRecord(
                    method=request.method,
                    path=path,
                    query=dict(request.url.params),
                )
            )
            spec = bucket.objects.get(path)
            if spec is None:
                return httpx.Response(404, request=request, content=b"")
            if request.method == "HEAD":
                return httpx.Response(spec.status, headers=spec.headers, request=request)
            return httpx.Response(
                spec.status,
                headers=spec.headers,
                content=spec.serialise_body(),
                request=request,
            )

        return httpx.MockTransport(_handler)

    def client(self) -> httpx.Client:
        return httpx.Client(transport=self.build_httpx_transport())

    def public_bucket(self) -> PublicBucket:
        """Return a :class:`PublicBucket` wired to this fake."""

        return PublicBucket(self.settings, client=self.client())
