"""
Pydantic schemas for key, usage and reset endpoints.
Responses are serialized with camelCase keys, which the plugin reads.
"""
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from typing import Optional


class CamelModel(BaseModel):
    """Base schema: snake_case attributes, camelCase JSON."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CheckKeyResponse(CamelModel):
    """Schema for key check response."""
    message: str
    user_id: str


class UsageResponse(CamelModel):
    """Schema for usage response."""
    token_usage: int
    max_token_usage: int
    audio_transcription_minutes: int
    max_audio_transcription_minutes: int
    subscription_status: str
    current_plan: str
    is_active: bool


class SubscriptionStatusResponse(CamelModel):
    """Schema for subscription status response."""
    subscription_status: str
    payment_status: str
    current_product: Optional[str] = None
    billing_cycle: str
    active: bool


class ResetResponse(CamelModel):
    """Schema for the scheduled reset response."""
    success: bool
    message: str
    users_reset: int
    free_tier_users_reset: int
