"""
FastAPI application for resource-cache.

Lifespan manages the httpx client, store, orchestrator and reactor task.
Routes: /v1/resources/{name} (+ fetch, clear, stale, adjust, state), /health.
Optional API key authentication on /v1/* endpoints.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Optional

import httpx
from fastapi import Body, Depends, FastAPI, HTTPException, Security
from fastapi.security import APIKeyHeader

from resource_cache.config import ServiceConfig, load_config
from resource_cache.models import (
    ErrorDetail,
    Replace,
    ResourceResponse,
    ResourceStatus,
    ResourceView,
)
from resource_cache.orchestrator import FetchOrchestrator
from resource_cache.source import HttpSource
from resource_cache.store import ResourceStore

logger = logging.getLogger(__name__)

# Global references set during lifespan
_store: Optional[ResourceStore] = None
_orchestrator: Optional[FetchOrchestrator] = None
_config: Optional[ServiceConfig] = None


async def _reactor(orchestrator: FetchOrchestrator, interval: float) -> None:
    """Re-evaluate periodically; time passing changes the view without a dispatch."""
    while True:
        await asyncio.sleep(interval)
        orchestrator.evaluate()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: load config, create HTTP client, store, orchestrator, reactor."""
    global _store, _orchestrator, _config

    # Configure logging
    log_level = os.environ.get("LOG_LEVEL", "info").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    _config = load_config()
    logger.info(
        "Loaded config: resource=%s, stale_after=%s, retry_after=%s, expire_after=%s",
        _config.resource.name,
        _config.resource.stale_after,
        _config.resource.retry_after,
        _config.resource.expire_after,
    )

    async with httpx.AsyncClient() as http_client:
        source = HttpSource(
            http_client=http_client,
            url=_config.source_url,
            params=_config.resource.dependency_keys,
            api_key=_config.source_api_key,
            data_field=_config.data_field,
            timeout=_config.request_timeout,
        )
        _store = ResourceStore(
            _config.build_resource_config(source),
            clock=time.time,
            state=_config.initial_state,
        )
        _orchestrator = FetchOrchestrator(_store)
        _orchestrator.start()
        reactor = asyncio.create_task(
            _reactor(_orchestrator, _config.reevaluate_interval)
        )
        logger.info("Resource cache ready")
        try:
            yield
        finally:
            reactor.cancel()
            _orchestrator.stop()
            await _orchestrator.drain()

    _store = None
    _orchestrator = None
    _config = None


app = FastAPI(
    title="Resource Cache API",
    version="1.0.0",
    description="""
Client-side cache for one remote resource, with TTL staleness, expiry and retry.

## Features

- **No timers**: staleness, expiry and retry readiness are derived from timestamps on read
- **Deduplicated**: at most one fetch is in flight at a time
- **Dependency aware**: changing a dependency value clears or stales the cached data
- **Errors as state**: fetch failures are reported, never raised

## Authentication

Optional API key via `X-API-Key` header. The `/health` endpoint is always unauthenticated.
    """.strip(),
    lifespan=lifespan,
    openapi_tags=[
        {
            "name": "resources",
            "description": "Cached resource state and commands",
        },
        {
            "name": "health",
            "description": "Service health check",
        },
    ],
    docs_url="/docs",
    redoc_url="/redoc",
)


# ---------------------------------------------------------------------------
# Authentication dependency
# ---------------------------------------------------------------------------

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def verify_api_key(
    api_key: Optional[str] = Security(api_key_header),
) -> None:
    """Check API key if one is configured."""
    if _config is None or _config.api_key is None:
        return  # No auth configured
    if api_key != _config.api_key:
        raise HTTPException(status_code=401, detail="Invalid or missing API key")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _timestamp(seconds: float) -> datetime:
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


def _status(view: ResourceView) -> ResourceStatus:
    if view.is_loading:
        return ResourceStatus.loading
    if view.has_error:
        return ResourceStatus.error
    if not view.is_present:
        return ResourceStatus.empty
    if view.is_stale:
        return ResourceStatus.stale
    return ResourceStatus.fresh


def build_response(name: str, view: ResourceView, now: float) -> ResourceResponse:
    """Convert a view into the API response model."""
    error = None
    if view.has_error:
        error = ErrorDetail(
            message=str(view.error),
            permanent=view.error_is_permanent,
            status_code=getattr(view.error, "status_code", None),
        )
    return ResourceResponse(
        name=name,
        as_of=_timestamp(now),
        status=_status(view),
        data=view.data,
        is_present=view.is_present,
        is_loading=view.is_loading,
        is_pending_for_fetch=view.is_pending_for_fetch,
        is_stale=view.is_stale,
        is_ready_for_retry=view.is_ready_for_retry,
        retry_at=_timestamp(view.retry_at) if view.retry_at is not None else None,
        error=error,
        dependency_values=view.dependency_values,
    )


def _get_store(name: str) -> ResourceStore:
    if _store is None or _orchestrator is None:
        raise HTTPException(status_code=503, detail="Service not ready")
    if name != _store.config.name:
        raise HTTPException(status_code=404, detail=f"Resource '{name}' not found")
    return _store


def _respond(store: ResourceStore) -> ResourceResponse:
    now = store.now()
    return build_response(store.config.name, store.view(now), now)


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@app.get(
    "/health",
    tags=["health"],
    summary="Health check",
    response_description="Service is healthy",
)
async def health():
    """
    Health check endpoint for monitoring and Docker health checks.

    Always returns HTTP 200 with a simple JSON response.
    No authentication required.
    """
    return {"status": "healthy"}


@app.get(
    "/v1/resources/{name}",
    response_model=ResourceResponse,
    dependencies=[Depends(verify_api_key)],
    tags=["resources"],
    summary="Get resource state",
    responses={
        404: {
            "description": "Resource name not configured",
            "content": {
                "application/json": {
                    "example": {"detail": "Resource 'unknown' not found"}
                }
            },
        },
    },
)
async def get_resource(name: str):
    """
    Return the current view of the resource.

    Reading never triggers a fetch by itself; the service fetches in the
    background whenever `is_pending_for_fetch` becomes true.
    """
    return _respond(_get_store(name))


@app.post(
    "/v1/resources/{name}/fetch",
    response_model=ResourceResponse,
    status_code=202,
    dependencies=[Depends(verify_api_key)],
    tags=["resources"],
    summary="Fetch now",
)
async def fetch_resource(name: str):
    """Start a fetch even if the data is fresh. Ignored while loading."""
    store = _get_store(name)
    _orchestrator.fetch()
    return _respond(store)


@app.post(
    "/v1/resources/{name}/clear",
    response_model=ResourceResponse,
    dependencies=[Depends(verify_api_key)],
    tags=["resources"],
    summary="Clear cached data",
)
async def clear_resource(name: str):
    store = _get_store(name)
    store.clear()
    return _respond(store)


@app.post(
    "/v1/resources/{name}/stale",
    response_model=ResourceResponse,
    dependencies=[Depends(verify_api_key)],
    tags=["resources"],
    summary="Mark cached data as stale",
)
async def mark_resource_stale(name: str):
    store = _get_store(name)
    store.mark_stale()
    return _respond(store)


@app.post(
    "/v1/resources/{name}/adjust",
    response_model=ResourceResponse,
    dependencies=[Depends(verify_api_key)],
    tags=["resources"],
    summary="Replace cached data",
)
async def adjust_resource(name: str, value: Any = Body(embed=True)):
    """Replace the cached data. Ignored when no data is present."""
    store = _get_store(name)
    store.adjust(Replace(value))
    return _respond(store)


@app.put(
    "/v1/resources/{name}/state",
    response_model=ResourceResponse,
    dependencies=[Depends(verify_api_key)],
    tags=["resources"],
    summary="Update dependency values",
)
async def update_resource_state(name: str, values: dict[str, Any] = Body()):
    """
    Merge values into the external state the dependencies read from.

    A changed dependency clears the cached data, or marks it stale when the
    dependency is configured with `stale_on_change`.
    """
    store = _get_store(name)
    store.update_state(values)
    return _respond(store)
