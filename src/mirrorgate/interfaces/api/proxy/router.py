"""Failover proxy endpoint: ``ANY /proxy/<suffix>``."""

from __future__ import annotations

import asyncio
from contextlib import suppress
from typing import cast

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from starlette.responses import Response

from mirrorgate.domain.entities import (
    ProxyRequest,
    RoutingExhaustedError,
    SnapshotUnavailableError,
)
from mirrorgate.infrastructure.proxy.headers import cors_headers
from mirrorgate.interfaces.app_state import AppState

log = structlog.get_logger(__name__)

router = APIRouter(tags=["proxy"])

PROXY_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]

# Routing-control parameters; never forwarded upstream.
_CONTROL_PARAMS = frozenset({"ins", "path"})

# How often a pending upstream call checks whether the client went away.
_DISCONNECT_POLL_SECONDS = 0.5


def _cors(state: AppState) -> dict[str, str]:
    proxy = state.config.proxy
    return cors_headers(proxy.allowed_methods, proxy.allowed_headers)


def _parse_index(raw: str | None, count: int) -> int:
    """Parse ``ins``; non-numeric -> 0, otherwise clamped to ``[0, count-1]``."""
    try:
        value = int(raw) if raw is not None else 0
    except ValueError:
        value = 0
    if count <= 0:
        return 0
    return max(0, min(count - 1, value))


def _error(status_code: int, body: dict[str, object], cors: dict[str, str]) -> Response:
    return JSONResponse(status_code=status_code, content=body, headers=cors)


@router.api_route("/proxy", methods=PROXY_METHODS)
@router.api_route("/proxy/{suffix:path}", methods=PROXY_METHODS)
async def proxy(request: Request, suffix: str = "") -> Response:
    """Forward the request to the best instance, failing over on 5xx/network errors.

    ``ins`` selects the starting index into the ranked list and ``path``
    overrides the forwarded suffix.  OPTIONS is answered locally.
    """
    state = cast(AppState, request.app.state)
    cors = _cors(state)

    if request.method == "OPTIONS":
        return Response(status_code=204, headers=cors)

    params = request.query_params
    forwarded_path = params["path"] if "path" in params else suffix
    query = tuple(
        (k, v) for k, v in params.multi_items() if k not in _CONTROL_PARAMS
    )
    proxy_request = ProxyRequest(
        method=request.method,
        path=forwarded_path,
        query=query,
        headers=tuple(request.headers.items()),
        body=await request.body(),
    )

    failover = state.failover_router
    try:
        count = await failover.instance_count()
    except SnapshotUnavailableError as e:
        log.error("proxy_snapshot_unavailable", error=str(e))
        return _error(503, {"error": "snapshot_unavailable", "message": str(e)}, cors)

    index = _parse_index(params.get("ins"), count)
    task = asyncio.create_task(failover.route(proxy_request, index))
    try:
        while not task.done():
            await asyncio.wait({task}, timeout=_DISCONNECT_POLL_SECONDS)
            if not task.done() and await request.is_disconnected():
                task.cancel()
                with suppress(asyncio.CancelledError):
                    await task
                log.info("proxy_client_disconnected", path=forwarded_path)
                return Response(status_code=499, headers=cors)
        result = task.result()
    except RoutingExhaustedError as e:
        return _error(
            502,
            {
                "error": "all_instances_failed",
                "attempts": e.attempts,
                "last_error": e.last_error,
            },
            cors,
        )
    except SnapshotUnavailableError as e:
        return _error(503, {"error": "snapshot_unavailable", "message": str(e)}, cors)
    finally:
        if not task.done():
            task.cancel()

    response = Response(content=result.content, status_code=result.status_code)
    for name, value in result.headers:
        if name.lower().startswith("access-control-"):
            continue
        response.headers.append(name, value)
    response.headers.update(cors)
    response.headers["x-mirrorgate-instance"] = result.api_url
    return response
