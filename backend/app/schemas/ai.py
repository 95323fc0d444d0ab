"""
Pydantic schemas for metered AI endpoints.
"""
from pydantic import Field
from typing import Optional

from app.schemas.usage import CamelModel


class UsageInfo(CamelModel):
    """Balance after the request was counted."""
    remaining: int
    needs_upgrade: bool = False


class TitleRequest(CamelModel):
    """Schema for title generation."""
    content: str = Field(..., min_length=1, description="Note content to name")
    instructions: Optional[str] = Field(None, description="Optional naming guidance")


class TitleResponse(CamelModel):
    """Schema for title generation response."""
    title: str
    usage: UsageInfo


class TranscribeJSONRequest(CamelModel):
    """JSON body for base64 uploads from the audio recorder."""
    audio: str = Field(..., min_length=1, description="Base64 audio, optionally as a data URL")
    extension: str = Field("webm", description="Audio file extension")


class TranscribeResponse(CamelModel):
    """Schema for transcription response."""
    text: str
    length: int
