from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Tuple

DEFAULT_CHANNELS: Tuple[str, ...] = ("log", "alert", "metrics")


def _env_bool(name: str, default: bool = False) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "y", "on")


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(float(raw))
    except Exception:
        return default


def _split_csv(raw: str) -> Tuple[str, ...]:
    return tuple(x.strip().lower() for x in (raw or "").split(",") if x.strip())


@dataclass(frozen=True)
class Settings:
    # Policy source
    app_config_path: str
    channels: Tuple[str, ...]

    # Cluster probing at load time
    probe_clusters: bool
    min_kwirth_version: str

    # Access keys
    access_key_ttl_seconds: int
    http_timeout_seconds: int

    # Identity
    identity_header: str
    catalog_url: Optional[str]
    catalog_token: Optional[str]  # Bearer token for the catalog, if it requires one

    log_level: str


@lru_cache(maxsize=1)
def load_settings() -> Settings:
    """
    Load runtime settings from environment variables (ConfigMap/Secret friendly).

    Recommended vars:
    - APP_CONFIG_PATH=/etc/kwgate/app-config.yaml
    - ACCESS_CHANNELS=log,alert,metrics
    - KWIRTH_PROBE_CLUSTERS=1
    - KWIRTH_MIN_VERSION=0.4.0
    - ACCESS_KEY_TTL_SECONDS=3600
    - HTTP_TIMEOUT_SECONDS=10
    - IDENTITY_HEADER=x-identity-ref
    - CATALOG_URL=http://backstage:7007/api/catalog
    - LOG_LEVEL=info
    """
    channels = _split_csv(os.getenv("ACCESS_CHANNELS", ""))
    return Settings(
        app_config_path=(os.getenv("APP_CONFIG_PATH", "") or "").strip() or "app-config.yaml",
        channels=channels or DEFAULT_CHANNELS,
        probe_clusters=_env_bool("KWIRTH_PROBE_CLUSTERS", True),
        min_kwirth_version=(os.getenv("KWIRTH_MIN_VERSION", "") or "").strip() or "0.4.0",
        access_key_ttl_seconds=max(60, min(_env_int("ACCESS_KEY_TTL_SECONDS", 3600), 24 * 3600)),
        http_timeout_seconds=max(1, min(_env_int("HTTP_TIMEOUT_SECONDS", 10), 120)),
        identity_header=(os.getenv("IDENTITY_HEADER", "") or "").strip().lower() or "x-identity-ref",
        catalog_url=(os.getenv("CATALOG_URL", "") or "").strip().rstrip("/") or None,
        catalog_token=(os.getenv("CATALOG_TOKEN", "") or "").strip() or None,
        log_level=(os.getenv("LOG_LEVEL", "") or "info").strip().upper(),
    )
