"""
Access gate HTTP API.

The caller's canonical identity ref is expected in a header set by the authenticating proxy
in front of this service (`IDENTITY_HEADER`, default `x-identity-ref`).
"""

from __future__ import annotations

import logging
import os
import threading
import time
from typing import Any, Dict, List, Optional

from fastapi import Body, FastAPI, HTTPException, Query, Request
from pydantic import ValidationError

from kwgate.config.settings import load_settings
from kwgate.config.store import PolicyStore, make_table_builder
from kwgate.core.models import CatalogEntity
from kwgate.pipeline.access import AccessService
from kwgate.providers.catalog_provider import CatalogGroupProvider, StaticGroupProvider
from kwgate.providers.kwirth_provider import get_kwirth_provider
from kwgate.version import VERSION

logger = logging.getLogger(__name__)

app = FastAPI(title="kwgate", version=VERSION)

_service: Optional[AccessService] = None
_service_lock = threading.Lock()


def build_service() -> AccessService:
    settings = load_settings()
    kwirth = get_kwirth_provider(timeout_seconds=settings.http_timeout_seconds)
    store = PolicyStore(settings.app_config_path, make_table_builder(settings, kwirth))
    if settings.catalog_url:
        groups: Any = CatalogGroupProvider(
            settings.catalog_url, token=settings.catalog_token, timeout_seconds=settings.http_timeout_seconds
        )
    else:
        logger.warning("CATALOG_URL is not set; callers will be matched by their own identity ref only")
        groups = StaticGroupProvider()
    return AccessService(policy=store, kwirth=kwirth, groups=groups, key_ttl_seconds=settings.access_key_ttl_seconds)


def get_service() -> AccessService:
    global _service
    if _service is not None:
        return _service
    with _service_lock:
        if _service is None:
            _service = build_service()
        return _service


def set_service(service: Optional[AccessService]) -> None:
    """Install (or clear, with None) the service used by the endpoints."""
    global _service
    with _service_lock:
        _service = service


@app.on_event("startup")
def _startup_load_policy() -> None:
    """Fail fast: the server must not start without a valid policy."""
    svc = get_service()
    table = svc.policy.current()
    logger.info("Policy loaded: %d cluster(s): %s", len(table), ", ".join(table.clusters) or "(none)")


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    logger.debug(
        "%s %s -> %s (%.1fms)", request.method, request.url.path, response.status_code, (time.time() - start_time) * 1000
    )
    return response


@app.get("/healthz")
def healthz() -> Dict[str, Any]:
    return {"ok": True}


@app.get("/version")
def version() -> Dict[str, Any]:
    return {"version": VERSION}


@app.get("/info")
def info() -> Dict[str, Any]:
    table = get_service().policy.current()
    clusters: Dict[str, Any] = {}
    for cluster in table:
        clusters[cluster.name] = {
            "title": cluster.title,
            "url": cluster.home,
            "version": cluster.info.version if cluster.info else None,
            "lastVersion": cluster.info.last_version if cluster.info else None,
            "channels": [c.id for c in cluster.info.channels] if cluster.info else None,
        }
    return {"clusters": clusters, "loadedAt": table.loaded_at.isoformat()}


@app.post("/access")
def access(
    request: Request,
    body: Dict[str, Any] = Body(...),
    scopes: Optional[str] = Query(None),
    channel: Optional[str] = Query(None),
) -> List[Dict[str, Any]]:
    if not scopes or not channel:
        raise HTTPException(status_code=400, detail="'scopes' and 'channel' are required")

    settings = load_settings()
    identity_ref = (request.headers.get(settings.identity_header) or "").strip()
    if not identity_ref:
        raise HTTPException(status_code=401, detail="Unauthorized")

    try:
        entity = CatalogEntity.model_validate(body)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"Invalid entity: {e.errors()}")

    svc = get_service()
    svc.policy.reload_if_changed()

    req_scopes = [s.strip() for s in scopes.split(",")]
    result = svc.resolve(entity, channel.strip(), req_scopes, identity_ref)
    return [c.to_wire() for c in result]


def run(host: str = "0.0.0.0", port: int = 7007) -> None:
    import uvicorn

    log_level = os.getenv("LOG_LEVEL", "info").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger.setLevel(getattr(logging, log_level, logging.INFO))

    uvicorn_log_level = (
        log_level.lower() if log_level.lower() in ["critical", "error", "warning", "info", "debug", "trace"] else "info"
    )

    logger.info("Starting access gate on %s:%d (log_level=%s)", host, port, log_level)
    uvicorn.run(app, host=host, port=port, log_level=uvicorn_log_level)
