from __future__ import annotations

import pytest


def test_settings_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    from kwgate.config.settings import DEFAULT_CHANNELS, load_settings

    for var in (
        "APP_CONFIG_PATH",
        "ACCESS_CHANNELS",
        "KWIRTH_PROBE_CLUSTERS",
        "KWIRTH_MIN_VERSION",
        "ACCESS_KEY_TTL_SECONDS",
        "HTTP_TIMEOUT_SECONDS",
        "IDENTITY_HEADER",
        "CATALOG_URL",
        "CATALOG_TOKEN",
    ):
        monkeypatch.delenv(var, raising=False)

    s = load_settings()
    assert s.app_config_path == "app-config.yaml"
    assert s.channels == DEFAULT_CHANNELS == ("log", "alert", "metrics")
    assert s.probe_clusters is True
    assert s.min_kwirth_version == "0.4.0"
    assert s.access_key_ttl_seconds == 3600
    assert s.identity_header == "x-identity-ref"
    assert s.catalog_url is None


def test_settings_parsing_and_clamps(monkeypatch: pytest.MonkeyPatch) -> None:
    from kwgate.config.settings import load_settings

    monkeypatch.setenv("ACCESS_CHANNELS", " Log, metrics ,,")
    monkeypatch.setenv("KWIRTH_PROBE_CLUSTERS", "false")
    monkeypatch.setenv("ACCESS_KEY_TTL_SECONDS", "5")
    monkeypatch.setenv("HTTP_TIMEOUT_SECONDS", "not-a-number")
    monkeypatch.setenv("CATALOG_URL", "http://backstage:7007/api/catalog/")

    s = load_settings()
    assert s.channels == ("log", "metrics")
    assert s.probe_clusters is False
    assert s.access_key_ttl_seconds == 60
    assert s.http_timeout_seconds == 10
    assert s.catalog_url == "http://backstage:7007/api/catalog"

    monkeypatch.setenv("ACCESS_KEY_TTL_SECONDS", "999999")
    load_settings.cache_clear()
    assert load_settings().access_key_ttl_seconds == 24 * 3600


def test_version_comparisons() -> None:
    from kwgate.core.versions import parse_version, version_great_or_equal_than, version_greater_than

    assert parse_version("0.4.41") == (0, 4, 41)
    assert parse_version("v1.2") == (1, 2, 0)
    assert parse_version("1.x.3") == (1, 0, 3)
    assert version_greater_than("0.4.41", "0.4.40")
    assert not version_greater_than("0.4.40", "0.4.40")
    assert version_great_or_equal_than("0.4.0", "0.4.0")
    assert version_great_or_equal_than("0.10.0", "0.9.9")
    assert not version_great_or_equal_than("0.3.99", "0.4.0")
