"""
Celery task for the monthly usage reset.
Scheduled by beat (see workers/celery_app.py); the cron endpoint runs the
same reset on demand.
"""
import asyncio
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from app.config import settings
from app.services.reset_service import reset_period_usage
from app.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


async def run_reset(database_url: Optional[str] = None) -> dict:
    """
    Run one reset against a fresh engine.

    Prefork workers cannot share the API's engine or event loop, so the
    engine lives and dies with this call.
    """
    worker_engine = create_async_engine(database_url or settings.database_url, echo=False)
    session_local = async_sessionmaker(worker_engine, class_=AsyncSession, expire_on_commit=False)
    try:
        async with session_local() as db:
            summary = await reset_period_usage(db)
    finally:
        await worker_engine.dispose()

    return {
        "users_reset": summary.users_reset,
        "free_tier_users_reset": summary.free_tier_users_reset,
    }


@celery_app.task(name="reset_usage")
def reset_usage_task() -> dict:
    """
    Reset monthly token and audio usage.

    Not retried: the reset is all-or-nothing and the next scheduled run (or
    a manual cron call) picks up a failed month.
    """
    logger.info("Starting scheduled usage reset", extra={"event": "usage_reset_started"})
    return asyncio.run(run_reset())
