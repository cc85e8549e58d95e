"""Shared fixtures for the DLC catalog test suite."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict

import pytest

from LauncherAdmin.DLCCatalog import net as net_mod
from LauncherAdmin.DLCCatalog.documents import AppRepository, InMemoryDocumentStore
from LauncherAdmin.DLCCatalog.logging_utils import LOGGER_NAME
from LauncherAdmin.DLCCatalog.models import DLC
from LauncherAdmin.DLCCatalog.settings import invalidate_default_settings_cache
from LauncherAdmin.DLCCatalog.testing import FakeBucket

FIXED_NOW = datetime(2024, 5, 6, 7, 8, 9, tzinfo=timezone.utc)
FIXED_STAMP = "2024-05-06T07:08:09Z"

_ENV_VARS = (
    "DLCADMIN_PUBLIC_BASE_URL",
    "DLCADMIN_LOG_LEVEL",
    "DLCADMIN_STORE_ROOT",
    "DLCADMIN_TIMEOUT_SEC",
    "DLCADMIN_CONFIG",
)


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch, tmp_path):
    """Keep env overrides, the shared HTTP client, and package loggers test-local."""

    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(net_mod, "HTTP_CACHE_DIR", tmp_path / "http-cache")
    net_mod.reset_http_client()
    invalidate_default_settings_cache()
    yield
    net_mod.reset_http_client()
    invalidate_default_settings_cache()
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        if getattr(handler, "_dlcadmin_managed", False):
            logger.removeHandler(handler)
            handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def fixed_stamp() -> str:
    return FIXED_STAMP


@pytest.fixture
def fake_bucket() -> FakeBucket:
    return FakeBucket()


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def repository(store: InMemoryDocumentStore) -> AppRepository:
    return AppRepository(store)


@pytest.fixture
def make_dlc() -> Callable[..., DLC]:
    """Build a stored DLC from a folder name plus field overrides."""

    def _make(folder_name: str, **overrides: Any) -> DLC:
        payload: Dict[str, Any] = {
            "folderName": folder_name,
            "type": "character" if folder_name.count("_") >= 2 else "environment",
            "version": "1.0.0",
        }
        if payload["type"] == "character":
            payload["parentId"] = "_".join(folder_name.split("_")[:2])
        payload.update(overrides)
        return DLC.model_validate(payload)

    return _make
