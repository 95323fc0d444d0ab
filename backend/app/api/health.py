"""
Health check endpoint.
Verifies database and Redis (Celery broker) connectivity.
"""
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
import redis.asyncio as aioredis

from app.auth.firebase import is_firebase_initialized
from app.database import get_db
from app.config import settings

router = APIRouter()


async def _check_redis() -> str:
    client = aioredis.from_url(settings.redis_url, socket_connect_timeout=2)
    try:
        await client.ping()
        return "connected"
    finally:
        await client.aclose()


@router.get("")
async def health_check(db: AsyncSession = Depends(get_db)):
    """
    Health check endpoint.
    Returns 503 with per-component status when any dependency is down.
    """
    health_status = {
        "status": "healthy",
        "database": "unknown",
        "redis": "unknown",
        "authorization": settings.authorization_mode.value,
        "session_cookies": "enabled" if is_firebase_initialized() else "disabled",
    }

    try:
        await db.execute(text("SELECT 1"))
        health_status["database"] = "connected"
    except Exception as e:
        health_status["database"] = f"error: {str(e)}"
        health_status["status"] = "unhealthy"

    try:
        health_status["redis"] = await _check_redis()
    except Exception as e:
        health_status["redis"] = f"error: {str(e)}"
        health_status["status"] = "unhealthy"

    if health_status["status"] == "unhealthy":
        return JSONResponse(status_code=503, content=health_status)

    return health_status
