"""Settings models, YAML loading, and environment overrides."""

from __future__ import annotations

from pathlib import Path

import pytest

from LauncherAdmin.DLCCatalog.errors import ConfigurationError
from LauncherAdmin.DLCCatalog.settings import (
    DEFAULT_PUBLIC_BASE_URL,
    DEFAULT_SEED_FOLDERS,
    AdminSettings,
    BucketSettings,
    build_settings,
    get_default_settings,
    invalidate_default_settings_cache,
    load_settings,
)


def test_defaults():
    settings = AdminSettings()
    assert settings.bucket.public_base_url == DEFAULT_PUBLIC_BASE_URL
    assert settings.bucket.base_manifest_name == "roleplayai_manifest.json"
    assert settings.discovery.seed_folders == DEFAULT_SEED_FOLDERS
    assert settings.discovery.catalog_cache_ttl_sec == 300.0
    assert settings.catalog.generated_by == "admin-site"
    assert settings.http.polite_http_headers() == {"User-Agent": "dlc-admin/1.0"}


def test_base_url_is_normalised():
    assert BucketSettings(public_base_url=" https://bucket.test/ ").public_base_url == "https://bucket.test"


@pytest.mark.parametrize(
    "raw",
    [
        {"bucket": {"public_base_url": "bucket.test"}},
        {"bucket": {"unknown": 1}},
        {"discovery": {"seed_folders": ["DLC Hospital"]}},
        {"logging": {"level": "LOUD"}},
        {"surprise": {}},
    ],
)
def test_invalid_settings_raise_configuration_error(raw):
    with pytest.raises(ConfigurationError) as excinfo:
        build_settings(raw)
    assert "Configuration validation failed" in str(excinfo.value)


def test_environment_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("DLCADMIN_PUBLIC_BASE_URL", "https://override.test/")
    monkeypatch.setenv("DLCADMIN_LOG_LEVEL", "debug")
    monkeypatch.setenv("DLCADMIN_STORE_ROOT", str(tmp_path))
    monkeypatch.setenv("DLCADMIN_TIMEOUT_SEC", "12.5")

    settings = build_settings({})

    assert settings.bucket.public_base_url == "https://override.test"
    assert settings.logging.level == "DEBUG"
    assert settings.store.root == tmp_path
    assert settings.http.timeout_sec == 12.5
    assert build_settings({}, apply_env=False).logging.level == "INFO"


def test_invalid_environment_override(monkeypatch):
    monkeypatch.setenv("DLCADMIN_PUBLIC_BASE_URL", "ftp://nope")
    with pytest.raises(ConfigurationError):
        build_settings({})


def test_load_settings_from_yaml(tmp_path):
    config = tmp_path / "admin.yaml"
    config.write_text(
        "bucket:\n"
        "  public_base_url: https://bucket.test\n"
        "discovery:\n"
        "  seed_folders: [DLC_Home, DLC_Home_Sam]\n"
        "  catalog_cache_ttl_sec: 60\n"
        "store:\n"
        "  root: ~/dlc-store\n",
        encoding="utf-8",
    )

    settings = load_settings(config)

    assert settings.bucket.public_base_url == "https://bucket.test"
    assert settings.discovery.seed_folders == ["DLC_Home", "DLC_Home_Sam"]
    assert settings.discovery.catalog_cache_ttl_sec == 60.0
    assert settings.store.root == Path("~/dlc-store").expanduser()


def test_empty_yaml_gives_defaults(tmp_path):
    config = tmp_path / "empty.yaml"
    config.write_text("", encoding="utf-8")
    assert load_settings(config) == AdminSettings()


@pytest.mark.parametrize(
    ("content", "message"),
    [
        ("bucket: [unclosed", "invalid YAML"),
        ("- just\n- a list\n", "mapping at the root"),
    ],
)
def test_bad_yaml_files(tmp_path, content, message):
    config = tmp_path / "admin.yaml"
    config.write_text(content, encoding="utf-8")
    with pytest.raises(ConfigurationError) as excinfo:
        load_settings(config)
    assert message in str(excinfo.value)


def test_missing_config_file(tmp_path):
    with pytest.raises(ConfigurationError) as excinfo:
        load_settings(tmp_path / "nope.yaml")
    assert "not found" in str(excinfo.value)


def test_default_settings_are_memoised(monkeypatch):
    first = get_default_settings()
    assert get_default_settings() is first
    copy = get_default_settings(copy=True)
    assert copy is not first
    assert copy == first

    monkeypatch.setenv("DLCADMIN_LOG_LEVEL", "ERROR")
    assert get_default_settings().logging.level == "INFO"
    invalidate_default_settings_cache()
    assert get_default_settings().logging.level == "ERROR"
