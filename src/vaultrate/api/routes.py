"""JSON, health and server-sent-event endpoints over the rate cache.

Handlers only read from app.state.rate_cache; they never touch the chain.
"""

from __future__ import annotations

import asyncio
import json
import time
from collections.abc import AsyncIterator
from dataclasses import asdict

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, StreamingResponse

from vaultrate.cache.rate_cache import RateCache
from vaultrate.exceptions import NotFoundError, RateTrackerError
from vaultrate.models import HOUR_SECONDS

log = structlog.get_logger(__name__)

router = APIRouter()


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@router.get("/rate")
async def get_rate(request: Request) -> JSONResponse:
    """Latest sampled rate."""
    cache: RateCache = request.app.state.rate_cache
    try:
        sample = await cache.get_latest()
    except NotFoundError as exc:
        return _error(404, str(exc))
    except RateTrackerError as exc:
        log.warning("rate_read_failed", error=str(exc))
        return _error(500, str(exc))
    return JSONResponse(content=asdict(sample))


@router.get("/rate/history")
async def get_rate_history(request: Request) -> JSONResponse:
    """Hourly samples over the history window, oldest first."""
    cache: RateCache = request.app.state.rate_cache
    hours = request.app.state.settings.api.history_hours
    to_ts = int(time.time())
    from_ts = to_ts - hours * HOUR_SECONDS
    try:
        history = await cache.get_range(from_ts, to_ts)
    except RateTrackerError as exc:
        log.warning("rate_history_read_failed", error=str(exc))
        return _error(500, str(exc))
    return JSONResponse(content=[asdict(sample) for sample in history])


async def rate_events(
    request: Request, cache: RateCache, interval: float
) -> AsyncIterator[str]:
    """Yield one SSE frame with the latest rate per interval until the client leaves."""
    while not await request.is_disconnected():
        try:
            sample = await cache.get_latest()
            payload = json.dumps(asdict(sample))
        except RateTrackerError as exc:
            payload = json.dumps({"error": str(exc)})
        yield f"data: {payload}\n\n"
        await asyncio.sleep(interval)


@router.get("/sse/rate")
async def stream_rate(request: Request) -> StreamingResponse:
    """Server-sent event stream of the latest rate."""
    cache: RateCache = request.app.state.rate_cache
    interval = request.app.state.settings.api.stream_interval
    return StreamingResponse(
        rate_events(request, cache, interval),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


@router.get("/health")
async def health(request: Request) -> JSONResponse:
    """Liveness plus cache store reachability."""
    cache: RateCache = request.app.state.rate_cache
    try:
        await cache.store.ping()
    except RateTrackerError as exc:
        return JSONResponse(
            status_code=503, content={"status": "degraded", "cache": str(exc)}
        )
    return JSONResponse(content={"status": "ok", "cache": "ok"})
