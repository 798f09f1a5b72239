"""Ranked instance list endpoints."""

from __future__ import annotations

from typing import cast

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from mirrorgate.domain.entities import SnapshotUnavailableError
from mirrorgate.infrastructure.persistence.snapshot_file import serialize_snapshot
from mirrorgate.interfaces.app_state import AppState

log = structlog.get_logger(__name__)

router = APIRouter(prefix="/instances", tags=["instances"])

_CORS = {"Access-Control-Allow-Origin": "*"}


@router.get("")
async def list_instances(request: Request) -> JSONResponse:
    """Return the current ranked Snapshot (rebuilt if the TTL expired)."""
    state = cast(AppState, request.app.state)
    try:
        snapshot = await state.instance_cache.get_snapshot()
    except SnapshotUnavailableError as e:
        return JSONResponse(
            status_code=503,
            content={"error": "snapshot_unavailable", "message": str(e)},
            headers=_CORS,
        )
    return JSONResponse(content=serialize_snapshot(snapshot), headers=_CORS)


@router.post("/refresh")
async def refresh_instances(request: Request) -> JSONResponse:
    """Rebuild immediately; readers keep the current snapshot meanwhile."""
    state = cast(AppState, request.app.state)
    try:
        snapshot = await state.instance_cache.refresh()
    except SnapshotUnavailableError as e:
        return JSONResponse(
            status_code=503,
            content={"error": "snapshot_unavailable", "message": str(e)},
            headers=_CORS,
        )
    log.info("instances_refreshed", instances=len(snapshot))
    return JSONResponse(
        content={
            "status": "refreshed",
            "generated_at": serialize_snapshot(snapshot)["generated_at"],
            "instances": len(snapshot),
        },
        headers=_CORS,
    )
