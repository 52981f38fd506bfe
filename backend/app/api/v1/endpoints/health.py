from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from supabase import Client  # noqa: TCH002

from app.config import Settings, get_settings
from app.dependencies import get_admin_client

router = APIRouter()


@router.get("/")
async def health_check():
    """Health check endpoint."""
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={
            "status": "healthy",
            "service": "marketplace-api",
            "version": "0.1.0",
        },
    )


@router.get("/ready")
async def readiness_check(
    settings: Settings = Depends(get_settings),
    client: Client = Depends(get_admin_client),
):
    """Readiness check: database table and image bucket reachability."""
    db_status = "connected"
    try:
        await asyncio.wait_for(
            asyncio.to_thread(lambda: client.table(settings.items_table).select("id").limit(1).execute()),
            timeout=settings.database_timeout_seconds,
        )
    except Exception as e:
        db_status = f"error: {type(e).__name__}"

    storage_status = "connected"
    try:
        await asyncio.wait_for(
            asyncio.to_thread(lambda: client.storage.get_bucket(settings.image_bucket)),
            timeout=settings.storage_timeout_seconds,
        )
    except Exception as e:
        storage_status = f"error: {type(e).__name__}"

    ready = db_status == "connected" and storage_status == "connected"
    return JSONResponse(
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "ready" if ready else "degraded",
            "database": db_status,
            "storage": storage_status,
            "api_prefix": settings.api_prefix,
        },
    )
