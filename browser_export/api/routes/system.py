"""Introspection and health routes."""

from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, Request

from ... import __version__
from ..schemas import HealthResponse

router = APIRouter(tags=["System"])

ROUTE_DOCS: Dict[str, Dict[str, Any]] = {
    "/": {
        "GET": {
            "description": "Returns this routing information for introspection.",
        },
    },
    "/health": {
        "GET": {
            "description": "Returns the health status of the server and its browser.",
        },
    },
}


@router.get(
    "/",
    summary="Route introspection",
    description="Returns the routing information of the server, with payload examples and schemas",
)
async def introspect(request: Request) -> Dict[str, Any]:
    return request.app.state.route_docs


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Returns the current health status of the server and its browser",
)
async def health_check(request: Request) -> HealthResponse:
    """Health check endpoint for monitoring and operational purposes."""
    engine = request.app.state.engine
    stats = engine.get_stats()
    browser_running = bool(stats.get("browser_running", False))

    return HealthResponse(
        status="healthy" if browser_running else "unhealthy",
        version=__version__,
        timestamp=datetime.utcnow(),
        browser_running=browser_running,
        exports={
            key: stats.get(key, 0)
            for key in ("exports_attempted", "exports_successful", "exports_failed", "exports_timeout")
        },
        uptime_seconds=(datetime.utcnow() - request.app.state.started_at).total_seconds(),
    )
