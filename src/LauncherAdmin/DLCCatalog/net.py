# === NAVMAP v1 ===
# {
#   "module": "LauncherAdmin.DLCCatalog.net",
#   "purpose": "Provide the shared HTTPX client (optionally Hishel-cached) used to probe the bucket",
#   "sections": [
#     {"id": "state", "name": "Module state", "anchor": "STATE", "kind": "constants"},
#     {"id": "hooks", "name": "Event hooks", "anchor": "HOOKS", "kind": "helpers"},
#     {"id": "build", "name": "Client construction", "anchor": "BUILD", "kind": "helpers"},
#     {"id": "api", "name": "Public API", "anchor": "API", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Shared HTTPX client for bucket probes.

Discovery issues many small GET/HEAD requests against the same host, so one
pooled client is shared per process.  With ``cache_enabled`` the transport is
wrapped in a Hishel cache that keeps manifests on disk for ``cache_ttl_sec`` and
revalidates them on every use, which turns repeated syncs into conditional
requests.
"""

from __future__ import annotations

import logging
import ssl
import threading
import time
from pathlib import Path
from typing import Optional

import certifi
import httpx
from hishel import CacheTransport, Controller, FileStorage

from .settings import CACHE_DIR, HttpSettings

__all__ = [
    "HTTP_CACHE_DIR",
    "configure_http_client",
    "reset_http_client",
    "get_http_client",
]

LOGGER = logging.getLogger("LauncherAdmin.DLCCatalog.net")

# --- Module state ----------------------------------------------------------------

HTTP_CACHE_DIR: Path = CACHE_DIR / "http"
_STARTED_KEY = "dlc_started"

_CLIENT_LOCK = threading.RLock()
_HTTP_CLIENT: Optional[httpx.Client] = None
_DEFAULT_SETTINGS = HttpSettings()

# --- Event hooks -----------------------------------------------------------------


def _stamp_request(request: httpx.Request) -> None:
    """Attach polite headers unless the caller set them, and start the timer."""

    for header, value in _DEFAULT_SETTINGS.polite_http_headers().items():
        request.headers.setdefault(header, value)
    request.extensions[_STARTED_KEY] = time.perf_counter()


def _log_response(response: httpx.Response) -> None:
    request = response.request
    started = request.extensions.get(_STARTED_KEY)
    elapsed = round(time.perf_counter() - started, 4) if isinstance(started, float) else None
    LOGGER.debug(
        "bucket response",
        extra={
            "stage": "http",
            "method": request.method,
            "url": str(request.url),
            "status": response.status_code,
            "cache_hit": bool(response.extensions.get("from_cache")),
            "elapsed_sec": elapsed,
        },
    )


# --- Client construction ---------------------------------------------------------


def _revalidating_controller() -> Controller:
    # Bucket objects carry no freshness headers; every cached hit is revalidated.
    return Controller(
        cacheable_methods=["GET", "HEAD"],
        cacheable_status_codes=[200, 203, 301, 308],
        cache_private=True,
        allow_heuristics=False,
        always_revalidate=True,
    )


def _cache_storage(settings: HttpSettings) -> FileStorage:
    HTTP_CACHE_DIR.mkdir(parents=True, exist_ok=True)
    return FileStorage(base_path=HTTP_CACHE_DIR, ttl=settings.cache_ttl_sec)


def _build_http_client(settings: HttpSettings) -> httpx.Client:
    verify = ssl.create_default_context(cafile=certifi.where())
    transport: httpx.BaseTransport = httpx.HTTPTransport(
        verify=verify,
        http2=settings.http2_enabled,
        retries=0,
    )
    if settings.cache_enabled:
        transport = CacheTransport(
            transport=transport,
            storage=_cache_storage(settings),
            controller=_revalidating_controller(),
        )

    return httpx.Client(
        transport=transport,
        follow_redirects=True,
        trust_env=True,
        timeout=httpx.Timeout(
            settings.timeout_sec,
            connect=settings.connect_timeout_sec,
            pool=settings.pool_timeout_sec,
        ),
        limits=httpx.Limits(
            max_connections=settings.max_connections,
            max_keepalive_connections=settings.max_keepalive_connections,
            keepalive_expiry=settings.keepalive_expiry_sec,
        ),
        event_hooks={"request": [_stamp_request], "response": [_log_response]},
    )


def _swap_client(client: Optional[httpx.Client]) -> None:
    """Replace the shared client, closing the old one. Caller holds the lock."""

    global _HTTP_CLIENT
    previous, _HTTP_CLIENT = _HTTP_CLIENT, client
    if previous is not None and previous is not client:
        try:
            previous.close()
        except RuntimeError as exc:
            LOGGER.debug("closing http client failed", extra={"stage": "http", "error": str(exc)})


# --- Public API ------------------------------------------------------------------


def configure_http_client(
    client: Optional[httpx.Client] = None,
    *,
    default_settings: Optional[HttpSettings] = None,
) -> None:
    """Install ``client`` as the shared client, or drop the current one.

    ``default_settings`` replaces the settings used for polite headers and for
    the next lazily built client.
    """

    global _DEFAULT_SETTINGS
    with _CLIENT_LOCK:
        if default_settings is not None:
            _DEFAULT_SETTINGS = default_settings
        _swap_client(client)


def reset_http_client() -> None:
    """Close the shared client and restore default settings."""

    global _DEFAULT_SETTINGS
    with _CLIENT_LOCK:
        _DEFAULT_SETTINGS = HttpSettings()
        _swap_client(None)


def get_http_client(settings: Optional[HttpSettings] = None) -> httpx.Client:
    """Return the shared client, building it from ``settings`` on first use."""

    global _DEFAULT_SETTINGS, _HTTP_CLIENT
    with _CLIENT_LOCK:
        if _HTTP_CLIENT is None:
            if settings is not None:
                _DEFAULT_SETTINGS = settings
            _HTTP_CLIENT = _build_http_client(_DEFAULT_SETTINGS)
            LOGGER.debug(
                "http client created",
                extra={"stage": "http", "cache_enabled": _DEFAULT_SETTINGS.cache_enabled},
            )
        return _HTTP_CLIENT
