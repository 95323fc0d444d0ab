"""
Business logic services.
"""
from app.services.usage_service import UsageService, ResourceKind
from app.services.metering_pipeline import MeteringPipeline, UsageResult, get_metering_pipeline
from app.services.reset_service import ResetSummary, reset_period_usage

__all__ = [
    "UsageService",
    "ResourceKind",
    "MeteringPipeline",
    "UsageResult",
    "get_metering_pipeline",
    "ResetSummary",
    "reset_period_usage",
]
