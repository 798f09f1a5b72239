"""FastAPI application factory (create_app)."""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.responses import Response

from mirrorgate.infrastructure.config import AppConfig
from mirrorgate.interfaces.app_state import AppState
from mirrorgate.interfaces.composition import lifespan

log = structlog.get_logger(__name__)


def create_app(config: AppConfig) -> FastAPI:
    """Create FastAPI app: configuration ONLY, NO resource initialization.

    Resources (HTTP client, cache, router) are created in lifespan().
    """
    app = FastAPI(
        title="mirrorgate",
        description="Health-checked, ranked failover proxy for federated API mirrors",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state = AppState()
    app.state.config = config

    from mirrorgate.interfaces.api.instances.router import router as instances_router
    from mirrorgate.interfaces.api.proxy.router import router as proxy_router
    from mirrorgate.interfaces.api.stats.router import router as stats_router

    app.include_router(instances_router, prefix="/api/v1")
    app.include_router(stats_router, prefix="/api/v1")
    app.include_router(proxy_router)

    @app.get("/api/v1/healthz")
    async def healthz() -> dict[str, str | int]:
        """Liveness probe: returns 200 as long as the process is running."""
        cache = getattr(app.state, "instance_cache", None)
        snapshot = cache.peek() if cache is not None else None
        return {
            "status": "ok",
            "instances": len(snapshot) if snapshot is not None else 0,
        }

    @app.get("/api/v1/readyz")
    async def readyz() -> Response:
        """Readiness probe: 200 once a snapshot is loaded, 503 otherwise."""
        cache = getattr(app.state, "instance_cache", None)
        if cache is not None and cache.peek() is not None:
            return JSONResponse({"status": "ready"}, status_code=200)
        return JSONResponse({"status": "not_ready"}, status_code=503)

    @app.middleware("http")
    async def log_requests(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ):
        start = time.perf_counter()
        try:
            response = await call_next(request)
            return response
        finally:
            duration_ms = (time.perf_counter() - start) * 1000.0
            status_code = getattr(locals().get("response", None), "status_code", 500)

            log.info(
                "http_request",
                method=request.method,
                path=request.url.path,
                query=str(request.url.query),
                status_code=status_code,
                duration_ms=round(duration_ms, 2),
                client_host=(request.client.host if request.client else None),
            )

    return app
