"""
Quota gate: decides whether a metered request may reach the AI provider.
Runs before the provider call; the actual deduction happens afterwards.
"""
import enum
import logging
import math
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import QuotaExceeded, NeedsUpgrade, UsageCheckFailed
from app.services.usage_service import UsageService, ResourceKind
from app.utils.logging import log_quota_rejected
from app.utils.metrics import quota_decisions_total

logger = logging.getLogger(__name__)

__all__ = [
    "QuotaDecision",
    "QuotaCheck",
    "ResourceKind",
    "check_quota",
    "enforce",
    "estimate_audio_minutes",
]

BYTES_PER_MB = 1024 * 1024

# Minutes of audio per megabyte
COMPRESSED_MINUTES_PER_MB = 1.0
UNCOMPRESSED_MINUTES_PER_MB = 0.1
UNCOMPRESSED_EXTENSIONS = {"wav", "wave", "aiff", "aif", "pcm"}


class QuotaDecision(str, enum.Enum):
    """Outcome of a quota check."""
    PROCEED = "proceed"
    QUOTA_EXCEEDED = "quota_exceeded"
    NEEDS_UPGRADE = "needs_upgrade"
    USAGE_CHECK_FAILED = "usage_check_failed"


@dataclass(frozen=True)
class QuotaCheck:
    decision: QuotaDecision
    remaining: int = 0
    required: int = 0

    @property
    def allowed(self) -> bool:
        return self.decision is QuotaDecision.PROCEED


def estimate_audio_minutes(size_bytes: int, extension: str = "") -> int:
    """
    Estimate audio duration from file size.

    Compressed formats run about 1 MB per minute, uncompressed PCM formats
    about 10 MB per minute. Rounded up; any non-empty file costs at least
    one minute.
    """
    if not size_bytes or size_bytes <= 0:
        return 0
    ext = (extension or "").lower().lstrip(".")
    minutes_per_mb = UNCOMPRESSED_MINUTES_PER_MB if ext in UNCOMPRESSED_EXTENSIONS else COMPRESSED_MINUTES_PER_MB
    minutes = math.ceil(round(size_bytes / BYTES_PER_MB * minutes_per_mb, 6))
    return max(1, minutes)


async def check_quota(
    db: AsyncSession,
    user_id: str,
    resource: ResourceKind,
    required: int = 0,
) -> QuotaCheck:
    """
    Decide whether user_id may consume resource.

    Token routes pass required=0 because their cost is only known after the
    provider responds; they proceed whenever any balance is left. Audio
    routes pass the estimated minutes, which must be strictly less than
    the remaining balance.

    Never raises: storage errors come back as USAGE_CHECK_FAILED.
    """
    try:
        record = await UsageService.get_usage_record(db, user_id)
    except SQLAlchemyError as e:
        logger.error(f"Usage check failed for user {user_id}: {e}", exc_info=True)
        check = QuotaCheck(QuotaDecision.USAGE_CHECK_FAILED, required=required)
        quota_decisions_total.labels(resource=resource.value, decision=check.decision.value).inc()
        return check

    if record is None:
        # Ensurer runs first, so a missing record is a storage inconsistency
        logger.error(f"No usage record for user {user_id} at quota check")
        check = QuotaCheck(QuotaDecision.USAGE_CHECK_FAILED, required=required)
    else:
        remaining = UsageService.remaining(record, resource)
        if UsageService.needs_upgrade(record):
            check = QuotaCheck(QuotaDecision.NEEDS_UPGRADE, remaining, required)
        elif remaining > required:
            check = QuotaCheck(QuotaDecision.PROCEED, remaining, required)
        else:
            check = QuotaCheck(QuotaDecision.QUOTA_EXCEEDED, remaining, required)

    quota_decisions_total.labels(resource=resource.value, decision=check.decision.value).inc()
    if not check.allowed:
        log_quota_rejected(
            logger,
            user_id=user_id,
            resource=resource.value,
            decision=check.decision.value,
            remaining=check.remaining,
            required=required,
        )
    return check


_EXCEEDED_MESSAGES = {
    ResourceKind.TOKENS: "Token limit exceeded. Please upgrade your plan for more tokens.",
    ResourceKind.AUDIO_MINUTES: "Audio transcription quota exceeded",
}


def enforce(check: QuotaCheck, resource: ResourceKind = ResourceKind.TOKENS) -> None:
    """
    Raise the exception matching a rejected check; return on PROCEED.

    Raises:
        QuotaExceeded: Insufficient remaining balance (429)
        NeedsUpgrade: Account-level gate (429)
        UsageCheckFailed: Usage could not be read (500)
    """
    if check.decision is QuotaDecision.PROCEED:
        return
    if check.decision is QuotaDecision.QUOTA_EXCEEDED:
        raise QuotaExceeded(_EXCEEDED_MESSAGES[resource], remaining=check.remaining, required=check.required)
    if check.decision is QuotaDecision.NEEDS_UPGRADE:
        raise NeedsUpgrade()
    raise UsageCheckFailed()
