"""Liveness and readiness probes.

- /health: liveness, 200 whenever the process serves requests
- /healthz: readiness; 503 when the store or the shared rate-limit
  counters are unreachable
"""

from collections.abc import Awaitable, Callable
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

router = APIRouter()


async def _probe(ping: Callable[[], Awaitable[Any]]) -> tuple[bool, str]:
    try:
        await ping()
    except Exception as e:
        return (False, f"error: {type(e).__name__}")
    return (True, "ok")


async def check_store(request: Request) -> tuple[bool, str]:
    """Round-trip to the persistence store.

    Returns:
        (is_ok, status_message)
    """
    return await _probe(request.app.state.store.ping)


async def check_redis(request: Request) -> tuple[bool, str]:
    """Round-trip to Redis when counters are shared there.

    Returns:
        (is_ok, status_message); "not_configured" for in-process counters
    """
    ping = getattr(request.app.state.counter_store, "ping", None)
    if ping is None:
        return (True, "not_configured")
    return await _probe(ping)


@router.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/healthz", response_model=None)
async def healthz(request: Request) -> dict[str, Any] | JSONResponse:
    """Readiness check with per-component status."""
    store_ok, store_status = await check_store(request)
    redis_ok, redis_status = await check_redis(request)

    body = {
        "status": "ok" if store_ok and redis_ok else "degraded",
        "components": {"store": store_status, "redis": redis_status},
    }
    if body["status"] != "ok":
        return JSONResponse(content=body, status_code=503)
    return body
