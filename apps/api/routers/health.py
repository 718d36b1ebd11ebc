"""
Health check endpoints.
"""

import os
from pathlib import Path

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text
import redis.asyncio as redis

from config import settings
from database import engine

router = APIRouter()


async def _share_store_status() -> str:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        return f"down: {str(e)}"
    return "up"


def _blob_storage_status() -> str:
    if settings.SHARE_STORAGE_BACKEND == "supabase":
        if settings.SUPABASE_URL and settings.SUPABASE_SERVICE_KEY:
            return "configured"
        return "missing credentials"

    root = Path(settings.SHARE_STORAGE_DIR)
    target = root if root.exists() else root.parent
    return "up" if os.access(target, os.W_OK) else f"not writable: {root}"


async def _rate_limit_backend_status() -> str:
    client = redis.from_url(settings.REDIS_URL)
    try:
        await client.ping()
    except Exception as e:
        return f"down: {str(e)} (local quotas in use)"
    finally:
        await client.aclose()
    return "up"


@router.get("/health")
async def health_check():
    """
    Health check endpoint.
    The share store and blob storage decide the overall status; Redis only
    backs rate limiting, so an outage there is reported but never degrades.
    """
    share_store = await _share_store_status()
    blob_storage = _blob_storage_status()
    healthy = share_store == "up" and blob_storage in ("up", "configured")

    return {
        "status": "healthy" if healthy else "degraded",
        "api": "up",
        "share_store": share_store,
        "blob_storage": {"backend": settings.SHARE_STORAGE_BACKEND, "status": blob_storage},
        "rate_limit_backend": await _rate_limit_backend_status(),
        "sweeper": {
            "enabled": settings.SHARE_SWEEP_ENABLED,
            "interval_minutes": settings.SHARE_SWEEP_INTERVAL_MINUTES,
        },
    }


@router.get("/health/ready")
async def readiness_check():
    """Kubernetes-style readiness check."""
    problems = {}
    share_store = await _share_store_status()
    if share_store != "up":
        problems["share_store"] = share_store
    blob_storage = _blob_storage_status()
    if blob_storage not in ("up", "configured"):
        problems["blob_storage"] = blob_storage

    if problems:
        return JSONResponse(status_code=503, content={"ready": False, "problems": problems})
    return {"ready": True}


@router.get("/health/live")
async def liveness_check():
    """Kubernetes-style liveness check."""
    return {"alive": True}
