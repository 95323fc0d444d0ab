"""
Periodic usage reset.

Runs at each billing boundary (Celery beat, or the cron endpoint). Paid
recurring subscribers get a fresh monthly allotment plus any unused top-up;
active free-tier records go back to the free allotment. Everything else,
inactive records included, is left exactly as it was.
"""
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import case, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.exceptions import InternalError
from app.models.usage_record import (
    UsageRecord,
    SubscriptionStatus,
    ACTIVE_SUBSCRIPTION_STATUSES,
    PAID_PAYMENT_STATUSES,
    RECURRING_BILLING_CYCLES,
)
from app.utils.logging import log_usage_reset
from app.utils.metrics import usage_resets_total

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResetSummary:
    users_reset: int
    free_tier_users_reset: int


def _positive_part(expr):
    return case((expr > 0, expr), else_=0)


def carried_ceiling(monthly_limit: int):
    """
    New max_token_usage for a paid subscriber.

        monthly + max(0, max(0, max - monthly) - max(0, usage - monthly))

    Top-up tokens bought beyond the monthly allotment survive the reset
    only to the extent they were not consumed. Built with CASE so the
    same statement runs on PostgreSQL and SQLite.
    """
    top_up = _positive_part(UsageRecord.max_token_usage - monthly_limit)
    overage = _positive_part(UsageRecord.token_usage - monthly_limit)
    return monthly_limit + _positive_part(top_up - overage)


async def reset_period_usage(
    db: AsyncSession,
    monthly_token_limit: Optional[int] = None,
    monthly_audio_minutes: Optional[int] = None,
) -> ResetSummary:
    """
    Reset counters for every eligible record in one transaction.

    Raises:
        InternalError: If either update fails; nothing is committed
    """
    monthly_tokens = monthly_token_limit if monthly_token_limit is not None else settings.monthly_token_limit
    monthly_audio = monthly_audio_minutes if monthly_audio_minutes is not None else settings.monthly_audio_minutes
    start_time = time.time()
    now = datetime.utcnow()

    subscriber_reset = (
        update(UsageRecord)
        .where(UsageRecord.subscription_status.in_(ACTIVE_SUBSCRIPTION_STATUSES))
        .where(UsageRecord.payment_status.in_(PAID_PAYMENT_STATUSES))
        .where(UsageRecord.billing_cycle.in_(RECURRING_BILLING_CYCLES))
        .values({
            # Right-hand sides see the pre-update row, so the ceiling uses the old usage
            UsageRecord.token_usage: 0,
            UsageRecord.max_token_usage: carried_ceiling(monthly_tokens),
            UsageRecord.audio_transcription_minutes: 0,
            UsageRecord.max_audio_transcription_minutes: monthly_audio,
            UsageRecord.updated_at: now,
        })
        .execution_options(synchronize_session=False)
    )

    free_tier_reset = (
        update(UsageRecord)
        .where(UsageRecord.current_plan == settings.free_tier_plan)
        .where(UsageRecord.subscription_status == SubscriptionStatus.ACTIVE.value)
        .where(UsageRecord.payment_status.not_in(PAID_PAYMENT_STATUSES))
        .values({
            UsageRecord.token_usage: 0,
            UsageRecord.max_token_usage: settings.free_tier_token_limit,
            UsageRecord.audio_transcription_minutes: 0,
            UsageRecord.updated_at: now,
        })
        .execution_options(synchronize_session=False)
    )

    try:
        users_reset = (await db.execute(subscriber_reset)).rowcount
        free_tier_users_reset = (await db.execute(free_tier_reset)).rowcount
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Usage reset failed, rolled back: {e}", exc_info=True)
        raise InternalError("Failed to reset token usage")

    usage_resets_total.labels(tier="subscriber").inc(users_reset)
    usage_resets_total.labels(tier="free").inc(free_tier_users_reset)
    log_usage_reset(
        logger,
        users_reset=users_reset,
        free_tier_users_reset=free_tier_users_reset,
        duration_ms=(time.time() - start_time) * 1000,
    )
    return ResetSummary(users_reset=users_reset, free_tier_users_reset=free_tier_users_reset)
