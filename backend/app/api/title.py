"""
Title suggestion endpoint (token-metered).
"""
from functools import lru_cache

from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.ext.asyncio import AsyncSession

from app.ai.openai_provider import OpenAIProvider
from app.auth.dependencies import get_current_user_id
from app.database import get_db
from app.schemas.ai import TitleRequest, TitleResponse, UsageInfo
from app.services.metering_pipeline import MeteringPipeline, get_metering_pipeline
from app.services.usage_service import ResourceKind

router = APIRouter()


@lru_cache()
def get_chat_provider() -> OpenAIProvider:
    return OpenAIProvider()


@router.post("/title", response_model=TitleResponse)
async def generate_title(
    request: TitleRequest,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    pipeline: MeteringPipeline = Depends(get_metering_pipeline),
    provider: OpenAIProvider = Depends(get_chat_provider),
):
    """
    Suggest a title for a note.

    Token cost is only known after the model answers, so the gate only
    requires a positive balance; the tokens are counted afterwards.
    """
    await pipeline.authorize(db, user_id, ResourceKind.TOKENS)

    result = await run_in_threadpool(provider.generate_title, request.content, request.instructions, user_id)

    usage = await pipeline.record_usage(db, user_id, ResourceKind.TOKENS, result.total_tokens)
    return TitleResponse(
        title=result.text,
        usage=UsageInfo(remaining=usage.remaining, needs_upgrade=usage.needs_upgrade),
    )
