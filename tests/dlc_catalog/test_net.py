"""Shared HTTP client lifecycle."""

from __future__ import annotations

import httpx
from hishel import CacheTransport, FileStorage

from LauncherAdmin.DLCCatalog import net
from LauncherAdmin.DLCCatalog.settings import HttpSettings
from LauncherAdmin.DLCCatalog.storage import PublicBucket
from LauncherAdmin.DLCCatalog.testing import use_mock_http_client


def _ok(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"version": "1.0.0"}, request=request)


def test_mock_client_is_shared_until_reset():
    with use_mock_http_client(httpx.MockTransport(_ok)) as client:
        assert net.get_http_client() is client
        assert PublicBucket(http_settings=HttpSettings()).client is client
    assert net._HTTP_CLIENT is None


def test_configure_replaces_and_closes_previous_client():
    first = httpx.Client(transport=httpx.MockTransport(_ok))
    second = httpx.Client(transport=httpx.MockTransport(_ok))
    net.configure_http_client(first)
    net.configure_http_client(second)
    assert first.is_closed
    assert net.get_http_client() is second
    net.configure_http_client(None)
    assert second.is_closed


def test_request_stamp_adds_polite_headers():
    net.configure_http_client(default_settings=HttpSettings(polite_headers={"User-Agent": "tests/0.1"}))
    request = httpx.Request("GET", "https://bucket.test/catalog.json")
    net._stamp_request(request)
    assert request.headers["User-Agent"] == "tests/0.1"
    assert isinstance(request.extensions["dlc_started"], float)

    explicit = httpx.Request("GET", "https://bucket.test/catalog.json", headers={"User-Agent": "mine"})
    net._stamp_request(explicit)
    assert explicit.headers["User-Agent"] == "mine"


def test_built_client_wraps_cache_transport():
    cached = net._build_http_client(HttpSettings(cache_enabled=True))
    plain = net._build_http_client(HttpSettings(cache_enabled=False))
    try:
        assert isinstance(cached._transport, CacheTransport)
        assert not isinstance(plain._transport, CacheTransport)
        assert net.HTTP_CACHE_DIR.exists()
    finally:
        cached.close()
        plain.close()


def test_get_http_client_builds_once():
    client = net.get_http_client(HttpSettings(cache_enabled=False))
    assert net.get_http_client() is client
    net.reset_http_client()
    assert client.is_closed


def test_cache_storage_expires_entries(monkeypatch):
    captured = {}

    def _storage(**kwargs):
        captured.update(kwargs)
        return FileStorage(**kwargs)

    monkeypatch.setattr(net, "FileStorage", _storage)
    client = net._build_http_client(HttpSettings(cache_enabled=True, cache_ttl_sec=600))
    client.close()

    assert captured == {"base_path": net.HTTP_CACHE_DIR, "ttl": 600}
    assert HttpSettings().cache_ttl_sec == 86_400
