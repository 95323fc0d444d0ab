"""
Scheduled job endpoints.
Called by an external scheduler with the shared cron secret.
"""
import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_bearer_token
from app.config import settings
from app.database import get_db
from app.exceptions import InternalError
from app.schemas.usage import ResetResponse
from app.services.reset_service import reset_period_usage

logger = logging.getLogger(__name__)

router = APIRouter()


def is_authorized_cron_request(authorization: Optional[str]) -> bool:
    """Constant-time check of the bearer token against CRON_SECRET."""
    expected = settings.cron_secret
    token = get_bearer_token(authorization)
    if not expected or not token:
        return False
    return hmac.compare_digest(token.encode("utf-8"), expected.encode("utf-8"))


@router.get("/reset-tokens", response_model=ResetResponse)
async def reset_tokens(
    authorization: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
):
    """
    Reset monthly token and audio usage.
    Any request without the exact secret is rejected before the store is touched.
    """
    if not is_authorized_cron_request(authorization):
        logger.warning("Rejected unauthorized reset request", extra={"event": "cron_rejected"})
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={"error": "Unauthorized"},
        )

    try:
        summary = await reset_period_usage(db)
    except InternalError:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": "Failed to reset token usage"},
        )

    return ResetResponse(
        success=True,
        message="Token and audio transcription usage reset successful",
        users_reset=summary.users_reset,
        free_tier_users_reset=summary.free_tier_users_reset,
    )
