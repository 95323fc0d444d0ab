"""
Usage service for metered resources.
Owns every read and write of UsageRecord counters: lazy record creation,
atomic increments and subscription lookups.
"""
import enum
import logging
import math
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import insert_on_conflict_do_nothing
from app.exceptions import InternalError, UsageCheckFailed
from app.models.base import generate_uuid
from app.models.usage_record import (
    UsageRecord,
    SubscriptionStatus,
    PaymentStatus,
    BillingCycle,
    ACTIVE_SUBSCRIPTION_STATUSES,
    PAID_PAYMENT_STATUSES,
    RECURRING_BILLING_CYCLES,
)

logger = logging.getLogger(__name__)

DEFAULT_PLAN_LABEL = "Legacy Plan"


class ResourceKind(str, enum.Enum):
    """Metered resources."""
    TOKENS = "tokens"
    AUDIO_MINUTES = "audio_minutes"


# (counter, ceiling) per resource
_COLUMNS = {
    ResourceKind.TOKENS: (UsageRecord.token_usage, UsageRecord.max_token_usage),
    ResourceKind.AUDIO_MINUTES: (
        UsageRecord.audio_transcription_minutes,
        UsageRecord.max_audio_transcription_minutes,
    ),
}


class UsageService:
    """Service for usage bookkeeping with atomic operations."""

    @staticmethod
    def sanitize_amount(amount: Any) -> int:
        """
        Coerce a consumed amount to a non-negative integer.

        Numeric strings are converted; fractions are floored; anything
        non-numeric, non-finite or negative becomes 0.
        """
        if isinstance(amount, bool):
            return 0
        try:
            value = float(amount)
        except (TypeError, ValueError):
            return 0
        if not math.isfinite(value) or value < 0:
            return 0
        return int(math.floor(value))

    @staticmethod
    async def ensure_user_record(db: AsyncSession, user_id: str) -> UsageRecord:
        """
        Guarantee a usage record exists for user_id and return it.

        Uses INSERT ... ON CONFLICT DO NOTHING so concurrent first requests
        for the same user never race into a duplicate key.

        Raises:
            InternalError: If the store fails
        """
        values = {
            "id": generate_uuid(),
            "user_id": user_id,
            "token_usage": 0,
            "max_token_usage": settings.default_max_token_usage,
            "audio_transcription_minutes": 0,
            "max_audio_transcription_minutes": settings.default_max_audio_minutes,
            "subscription_status": SubscriptionStatus.INACTIVE.value,
            "payment_status": PaymentStatus.UNPAID.value,
            "billing_cycle": BillingCycle.NONE.value,
            "created_at": datetime.utcnow(),
            "updated_at": datetime.utcnow(),
        }
        try:
            result = await db.execute(
                insert_on_conflict_do_nothing(db, UsageRecord.__table__, values, index_elements=["user_id"])
            )
            created = result.rowcount == 1
            record = (
                await db.execute(select(UsageRecord).where(UsageRecord.user_id == user_id))
            ).scalar_one()
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"Failed to ensure usage record for user {user_id}: {e}", exc_info=True)
            raise InternalError("Failed to initialize usage record")

        if created:
            logger.info(
                f"Created usage record for user {user_id}",
                extra={"event": "usage_record_created", "user_id": user_id},
            )
        return record

    @staticmethod
    async def get_usage_record(db: AsyncSession, user_id: str) -> Optional[UsageRecord]:
        """Current record for user_id, or None. Storage errors propagate."""
        result = await db.execute(select(UsageRecord).where(UsageRecord.user_id == user_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def increment_usage(
        db: AsyncSession,
        user_id: str,
        resource: ResourceKind,
        amount: Any,
    ) -> int:
        """
        Atomically add amount to the resource counter.

        The increment is a single UPDATE ... SET counter = counter + :amount,
        so concurrent requests for the same user never lose updates.
        Counters are not clamped at the ceiling.

        Args:
            db: Database session
            user_id: User ID
            resource: Which counter to increment
            amount: Consumed amount, sanitized before use

        Returns:
            Remaining balance after the increment (never negative)

        Raises:
            SQLAlchemyError: If the store fails
            InternalError: If the user has no usage record
        """
        counter, ceiling = _COLUMNS[resource]
        amount = UsageService.sanitize_amount(amount)

        try:
            await db.execute(
                update(UsageRecord)
                .where(UsageRecord.user_id == user_id)
                .values({counter: counter + amount, UsageRecord.updated_at: datetime.utcnow()})
            )
            row = (
                await db.execute(select(counter, ceiling).where(UsageRecord.user_id == user_id))
            ).one_or_none()
            await db.commit()
        except SQLAlchemyError:
            await db.rollback()
            raise

        if row is None:
            raise InternalError(f"No usage record for user {user_id}")

        used, maximum = row
        return max(0, (maximum or 0) - (used or 0))

    @staticmethod
    def remaining(record: UsageRecord, resource: ResourceKind) -> int:
        """Remaining balance of a loaded record."""
        if resource is ResourceKind.AUDIO_MINUTES:
            return record.remaining_audio_minutes
        return record.remaining_tokens

    @staticmethod
    def needs_upgrade(record: UsageRecord) -> bool:
        """
        Account-level gate independent of the raw balance.

        True for a lapsed subscriber: the record is on a recurring billing
        cycle but no longer billable (payment failed or subscription ended).
        """
        return record.billing_cycle in RECURRING_BILLING_CYCLES and not record.is_billable

    @staticmethod
    async def get_subscription_status(db: AsyncSession, user_id: str) -> Dict[str, Any]:
        """
        Subscription summary for user_id.

        Unknown users get inactive defaults. A storage error is reported as
        paymentStatus "error" instead of raising.
        """
        summary = {
            "subscriptionStatus": SubscriptionStatus.INACTIVE.value,
            "paymentStatus": PaymentStatus.UNPAID.value,
            "currentProduct": None,
            "billingCycle": BillingCycle.NONE.value,
            "active": False,
        }
        try:
            record = await UsageService.get_usage_record(db, user_id)
        except SQLAlchemyError as e:
            logger.error(f"Error fetching subscription status for user {user_id}: {e}", exc_info=True)
            summary["paymentStatus"] = PaymentStatus.ERROR.value
            return summary

        if record is None:
            return summary

        return {
            "subscriptionStatus": record.subscription_status,
            "paymentStatus": record.payment_status,
            "currentProduct": record.current_product,
            "billingCycle": record.billing_cycle,
            "active": (
                record.subscription_status in ACTIVE_SUBSCRIPTION_STATUSES
                and record.payment_status in PAID_PAYMENT_STATUSES
            ),
        }

    @staticmethod
    async def get_usage_summary(db: AsyncSession, user_id: str) -> Dict[str, Any]:
        """
        Counters, ceilings and plan for user_id.
        Users without a record get the legacy plan defaults.

        Raises:
            UsageCheckFailed: If the record cannot be read
        """
        try:
            record = await UsageService.get_usage_record(db, user_id)
        except SQLAlchemyError as e:
            logger.error(f"Error fetching usage for user {user_id}: {e}", exc_info=True)
            raise UsageCheckFailed()
        if record is None:
            return {
                "tokenUsage": 0,
                "maxTokenUsage": settings.default_max_token_usage,
                "audioTranscriptionMinutes": 0,
                "maxAudioTranscriptionMinutes": settings.default_max_audio_minutes,
                "subscriptionStatus": SubscriptionStatus.INACTIVE.value,
                "currentPlan": DEFAULT_PLAN_LABEL,
                "isActive": False,
            }
        return {
            "tokenUsage": record.token_usage or 0,
            "maxTokenUsage": record.max_token_usage or settings.default_max_token_usage,
            "audioTranscriptionMinutes": record.audio_transcription_minutes or 0,
            "maxAudioTranscriptionMinutes": record.max_audio_transcription_minutes or 0,
            "subscriptionStatus": record.subscription_status or SubscriptionStatus.INACTIVE.value,
            "currentPlan": record.current_plan or DEFAULT_PLAN_LABEL,
            "isActive": record.subscription_status == SubscriptionStatus.ACTIVE.value,
        }
