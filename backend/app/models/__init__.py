"""
Database models package.
"""
from app.models.base import Base
from app.models.usage_record import (
    UsageRecord,
    SubscriptionStatus,
    PaymentStatus,
    BillingCycle,
)

__all__ = [
    "Base",
    "UsageRecord",
    "SubscriptionStatus",
    "PaymentStatus",
    "BillingCycle",
]
