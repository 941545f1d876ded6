# app/api/health.py
"""
Health check endpoints.
"""
from datetime import datetime, timezone
from fastapi import APIRouter, Request

from app.db import get_connection_error, is_connected

router = APIRouter(tags=["Health"])


@router.get("/healthz")
async def healthz():
    """Simple health check."""
    return {"ok": True, "timestamp": datetime.now(timezone.utc).isoformat()}


@router.get("/api/health")
async def api_health(request: Request):
    """API health check with dependency status."""
    services = getattr(request.app.state, "services", None)
    return {
        "status": "healthy" if is_connected() else "degraded",
        "database": {"connected": is_connected(), "error": get_connection_error()},
        "liveSandboxes": services.sandboxes.active_count() if services else 0,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
