"""
Pydantic schemas for API request/response validation.
"""
from app.schemas.usage import (
    CheckKeyResponse,
    UsageResponse,
    SubscriptionStatusResponse,
    ResetResponse,
)
from app.schemas.ai import (
    UsageInfo,
    TitleRequest,
    TitleResponse,
    TranscribeJSONRequest,
    TranscribeResponse,
)

__all__ = [
    "CheckKeyResponse",
    "UsageResponse",
    "SubscriptionStatusResponse",
    "ResetResponse",
    "UsageInfo",
    "TitleRequest",
    "TitleResponse",
    "TranscribeJSONRequest",
    "TranscribeResponse",
]
