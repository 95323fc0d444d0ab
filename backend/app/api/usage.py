"""
Usage and subscription endpoints.
Return the caller's counters and billing state.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.auth.dependencies import get_current_user_id
from app.schemas.usage import UsageResponse, SubscriptionStatusResponse
from app.services.usage_service import UsageService

router = APIRouter()


@router.get("/usage", response_model=UsageResponse)
async def get_usage(
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """
    Get token and audio usage for the authenticated user.
    Users who have never made a metered request get the legacy plan defaults.
    """
    summary = await UsageService.get_usage_summary(db, user_id)
    return UsageResponse.model_validate(summary)


@router.get("/subscription", response_model=SubscriptionStatusResponse)
async def get_subscription(
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Get subscription status for the authenticated user."""
    summary = await UsageService.get_subscription_status(db, user_id)
    return SubscriptionStatusResponse.model_validate(summary)
