"""Health check route."""

from datetime import datetime, timezone

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from mahallu_api import __version__
from mahallu_api.database import db_manager

router = APIRouter(tags=["System"])


@router.get("/health", summary="Liveness and database connectivity")
async def health_check():
    """
    Report API and database status.

    Returns 503 when the database does not answer a ping.
    """
    database_ok = await db_manager.health_check()
    return JSONResponse(
        status_code=200 if database_ok else 503,
        content={
            "success": database_ok,
            "message": "Mahallu API is running" if database_ok else "Database unavailable",
            "data": {
                "version": __version__,
                "database": "connected" if database_ok else "disconnected",
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        },
    )
