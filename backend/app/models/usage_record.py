"""
UsageRecord model: per-user token and audio consumption for the current billing period.
One row per external identity (user_id from the key verification service or session).
"""
from sqlalchemy import Column, String, Integer, DateTime, Index, CheckConstraint
from datetime import datetime
import enum

from app.models.base import Base, generate_uuid


class SubscriptionStatus(str, enum.Enum):
    """Known subscription states. Billing events may store other values verbatim."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUCCEEDED = "succeeded"
    PAID = "paid"
    ERROR = "error"


class PaymentStatus(str, enum.Enum):
    """Known payment states."""
    PAID = "paid"
    SUCCEEDED = "succeeded"
    PENDING = "pending"
    UNPAID = "unpaid"
    ERROR = "error"


class BillingCycle(str, enum.Enum):
    """Recurrence of the subscription attached to a record."""
    MONTHLY = "monthly"
    YEARLY = "yearly"
    SUBSCRIPTION = "subscription"
    LIFETIME = "lifetime"
    NONE = "none"
    DEFAULT = "default"


ACTIVE_SUBSCRIPTION_STATUSES = (SubscriptionStatus.ACTIVE.value, SubscriptionStatus.SUCCEEDED.value)
PAID_PAYMENT_STATUSES = (PaymentStatus.PAID.value, PaymentStatus.SUCCEEDED.value)
RECURRING_BILLING_CYCLES = (
    BillingCycle.MONTHLY.value,
    BillingCycle.YEARLY.value,
    BillingCycle.SUBSCRIPTION.value,
)


class UsageRecord(Base):
    """Usage counters and ceilings for one user."""

    __tablename__ = "user_usage"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(255), nullable=False, unique=True)

    # Counters for the current period
    token_usage = Column(Integer, nullable=False, default=0)
    max_token_usage = Column(Integer, nullable=False, default=0)
    audio_transcription_minutes = Column(Integer, nullable=False, default=0)
    max_audio_transcription_minutes = Column(Integer, nullable=False, default=0)

    # Billing state, written by billing events
    subscription_status = Column(String(32), nullable=False, default=SubscriptionStatus.INACTIVE.value)
    payment_status = Column(String(32), nullable=False, default=PaymentStatus.UNPAID.value)
    billing_cycle = Column(String(32), nullable=False, default=BillingCycle.NONE.value)
    current_product = Column(String(255), nullable=True)
    current_plan = Column(String(255), nullable=True)
    last_payment = Column(DateTime, nullable=True)  # Advisory only

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_user_usage_user_id", "user_id"),
        CheckConstraint("token_usage >= 0", name="ck_user_usage_token_usage_non_negative"),
        CheckConstraint(
            "audio_transcription_minutes >= 0",
            name="ck_user_usage_audio_minutes_non_negative",
        ),
    )

    @property
    def is_billable(self) -> bool:
        """Active subscription backed by a successful payment."""
        return (
            self.subscription_status in ACTIVE_SUBSCRIPTION_STATUSES
            and self.payment_status in PAID_PAYMENT_STATUSES
        )

    @property
    def remaining_tokens(self) -> int:
        return max(0, (self.max_token_usage or 0) - (self.token_usage or 0))

    @property
    def remaining_audio_minutes(self) -> int:
        return max(0, (self.max_audio_transcription_minutes or 0) - (self.audio_transcription_minutes or 0))

    def __repr__(self):
        return (
            f"<UsageRecord(user_id={self.user_id}, tokens={self.token_usage}/{self.max_token_usage}, "
            f"audio={self.audio_transcription_minutes}/{self.max_audio_transcription_minutes})>"
        )
