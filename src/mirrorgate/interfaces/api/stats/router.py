"""Runtime metrics endpoint."""

from __future__ import annotations

from typing import cast

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from mirrorgate.interfaces.app_state import AppState

router = APIRouter(prefix="/stats", tags=["stats"])


@router.get("/metrics")
async def metrics(request: Request) -> JSONResponse:
    """Return in-memory proxy, upstream and rebuild counters."""
    state = cast(AppState, request.app.state)
    collector = getattr(state, "metrics", None)
    if collector is None:
        return JSONResponse(status_code=503, content={"error": "metrics_not_ready"})

    payload = collector.snapshot()
    cache = getattr(state, "instance_cache", None)
    snapshot = cache.peek() if cache is not None else None
    payload["snapshot"] = {
        "loaded": snapshot is not None,
        "instances": len(snapshot) if snapshot is not None else 0,
        "generated_at": (
            snapshot.generated_at.isoformat() if snapshot is not None else None
        ),
    }
    return JSONResponse(content=payload)
