"""
API router aggregator.
Includes all route modules.
"""
from fastapi import APIRouter
from app.api import health, keys, usage, title, transcribe, cron

api_router = APIRouter()

# Include route modules
api_router.include_router(health.router, prefix="/health", tags=["health"])
api_router.include_router(keys.router, tags=["keys"])
api_router.include_router(usage.router, tags=["usage"])
api_router.include_router(title.router, tags=["ai"])
api_router.include_router(transcribe.router, tags=["ai"])
api_router.include_router(cron.router, prefix="/cron", tags=["cron"])
