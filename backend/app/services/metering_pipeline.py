"""
Metering pipeline shared by every metered route.

    resolve identity -> ensure record -> check quota -> [provider call]
    -> record usage -> respond

Identity resolution lives in app.auth; this module owns the rest. The
authorization mode is fixed when the pipeline is built, so every route
bypasses (or enforces) in exactly the same way.

Policy: strict before the provider call, lenient after it. authorize()
raises on any doubt; record_usage() never raises, because the user already
has the provider's output and losing it would be worse than an uncounted
token.
"""
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings, AuthorizationMode
from app.services.analytics_service import AnalyticsService, get_analytics_service
from app.services.quota_service import QuotaCheck, QuotaDecision, check_quota, enforce
from app.services.usage_service import UsageService, ResourceKind
from app.utils.logging import log_usage_recorded, log_usage_recording_failed
from app.utils.metrics import usage_consumed_total, usage_recording_failures_total

logger = logging.getLogger(__name__)

ANALYTICS_EVENTS = {
    ResourceKind.TOKENS: ("token_usage", "tokens"),
    ResourceKind.AUDIO_MINUTES: ("audio_transcription_usage", "minutes"),
}


@dataclass(frozen=True)
class UsageResult:
    """Outcome of recording consumption. Analytics never appears here."""
    remaining: int
    usage_error: bool = False
    needs_upgrade: bool = False


class MeteringPipeline:
    """Quota enforcement and usage accounting for one authorization mode."""

    def __init__(self, mode: AuthorizationMode, analytics: Optional[AnalyticsService] = None):
        self.mode = mode
        self.analytics = analytics

    @property
    def enforced(self) -> bool:
        return self.mode is AuthorizationMode.ENFORCED

    async def authorize(
        self,
        db: AsyncSession,
        user_id: str,
        resource: ResourceKind,
        required: int = 0,
    ) -> QuotaCheck:
        """
        Ensure the user's record exists and gate the request.

        Raises:
            InternalError: Record could not be created
            QuotaExceeded / NeedsUpgrade / UsageCheckFailed: Gate rejected
        """
        if not self.enforced:
            return QuotaCheck(QuotaDecision.PROCEED, required=required)

        await UsageService.ensure_user_record(db, user_id)
        check = await check_quota(db, user_id, resource, required)
        enforce(check, resource)
        return check

    async def record_usage(
        self,
        db: AsyncSession,
        user_id: str,
        resource: ResourceKind,
        amount: Any,
    ) -> UsageResult:
        """Add consumed amount to the user's counter. Never raises."""
        if not self.enforced:
            return UsageResult(remaining=0, usage_error=False)

        amount = UsageService.sanitize_amount(amount)
        try:
            remaining = await UsageService.increment_usage(db, user_id, resource, amount)
        except Exception as e:
            usage_recording_failures_total.labels(resource=resource.value).inc()
            log_usage_recording_failed(logger, user_id=user_id, resource=resource.value, amount=amount, error=str(e))
            return UsageResult(remaining=0, usage_error=True)

        usage_consumed_total.labels(resource=resource.value).inc(amount)
        log_usage_recorded(logger, user_id=user_id, resource=resource.value, amount=amount, remaining=remaining)
        self._emit(user_id, resource, amount, remaining)
        return UsageResult(remaining=remaining, usage_error=False, needs_upgrade=remaining == 0)

    def _emit(self, user_id: str, resource: ResourceKind, amount: int, remaining: int) -> None:
        if self.analytics is None:
            return
        event, amount_field = ANALYTICS_EVENTS[resource]
        try:
            self.analytics.dispatch(user_id, event, {amount_field: amount, "remaining": remaining})
        except Exception as e:
            logger.warning(f"Could not schedule analytics event {event}: {e}")


@lru_cache()
def get_metering_pipeline() -> MeteringPipeline:
    """Pipeline built once from settings."""
    return MeteringPipeline(settings.authorization_mode, analytics=get_analytics_service())
