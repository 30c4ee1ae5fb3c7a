"""
Health check endpoints.

- GET /api/health       — cheap: process alive, version, uptime
- GET /api/health/deep  — database round-trip
"""
import logging
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlmodel import Session

from copallet.config import settings
from copallet.core.database import get_session
from copallet.core.structured_logging import APP_VERSION, SERVICE_NAME, get_uptime_s

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check():
    """Cheap health check, no I/O."""
    return {
        "status": "ok",
        "app": settings.app_name,
        "version": APP_VERSION,
        "service": SERVICE_NAME,
        "uptime_s": round(get_uptime_s(), 1),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/health/deep")
def deep_health_check(db: Session = Depends(get_session)):
    """Check that the database answers."""
    start = time.monotonic()
    try:
        db.connection().execute(text("SELECT 1"))
        database = {"status": "ok", "latency_ms": round((time.monotonic() - start) * 1000, 1)}
    except Exception as e:
        logger.error("Database health check failed: %s", e)
        database = {"status": "down", "error": str(e)[:200]}

    return {
        "status": "ok" if database["status"] == "ok" else "degraded",
        "version": APP_VERSION,
        "components": {"database": database},
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
