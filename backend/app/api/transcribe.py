"""
Audio transcription endpoint (audio-metered).
Accepts a multipart upload (`audio` field) or a JSON body with base64 audio.
"""
import base64
import binascii
from functools import lru_cache
from typing import Tuple

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.datastructures import UploadFile

from app.ai.groq_provider import GroqWhisperProvider
from app.auth.dependencies import get_current_user_id
from app.config import settings
from app.database import get_db
from app.exceptions import InvalidRequest
from app.schemas.ai import TranscribeJSONRequest, TranscribeResponse
from app.services.metering_pipeline import MeteringPipeline, get_metering_pipeline
from app.services.quota_service import estimate_audio_minutes
from app.services.usage_service import ResourceKind

router = APIRouter()

DEFAULT_EXTENSION = "webm"


@lru_cache()
def get_transcription_provider() -> GroqWhisperProvider:
    return GroqWhisperProvider()


def _max_audio_bytes() -> int:
    return settings.max_audio_file_mb * 1024 * 1024


def _too_large() -> InvalidRequest:
    return InvalidRequest(
        f"Audio file is too large. Please use a file smaller than {settings.max_audio_file_mb}MB. "
        "Consider compressing or splitting the audio file."
    )


async def _read_multipart(request: Request) -> Tuple[bytes, str]:
    form = await request.form()
    upload = form.get("audio")
    if not isinstance(upload, UploadFile):
        raise InvalidRequest("No audio file provided")
    if upload.size is not None and upload.size > _max_audio_bytes():
        raise _too_large()
    filename = upload.filename or ""
    extension = filename.rsplit(".", 1)[-1].lower() if "." in filename else DEFAULT_EXTENSION
    return await upload.read(), extension


async def _read_json(request: Request) -> Tuple[bytes, str]:
    try:
        body = TranscribeJSONRequest.model_validate(await request.json())
    except (ValidationError, ValueError):
        raise InvalidRequest("Missing audio data")

    # Data URLs carry a "data:audio/webm;base64," prefix
    encoded = body.audio.split(";base64,")[-1]
    # Decoded size is 3/4 of the encoded length
    if len(encoded) // 4 * 3 > _max_audio_bytes():
        raise _too_large()
    try:
        audio_bytes = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError):
        raise InvalidRequest("Invalid base64 data")
    return audio_bytes, body.extension.lower().lstrip(".") or DEFAULT_EXTENSION


@router.post("/transcribe", response_model=TranscribeResponse)
async def transcribe(
    request: Request,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    pipeline: MeteringPipeline = Depends(get_metering_pipeline),
    provider: GroqWhisperProvider = Depends(get_transcription_provider),
):
    """
    Transcribe an audio file.

    The duration is estimated from the file size and must be less than the
    remaining audio balance before the provider is called.
    """
    content_type = request.headers.get("content-type", "")
    if "multipart/form-data" in content_type:
        audio_bytes, extension = await _read_multipart(request)
    elif "application/json" in content_type:
        audio_bytes, extension = await _read_json(request)
    else:
        raise InvalidRequest("Unsupported content type")

    if not audio_bytes:
        raise InvalidRequest("No audio file provided")

    if len(audio_bytes) > _max_audio_bytes():
        raise _too_large()

    minutes = estimate_audio_minutes(len(audio_bytes), extension)
    await pipeline.authorize(db, user_id, ResourceKind.AUDIO_MINUTES, required=minutes)

    text = await run_in_threadpool(
        provider.transcribe_from_bytes, audio_bytes, f"audio.{extension}", None, user_id
    )

    await pipeline.record_usage(db, user_id, ResourceKind.AUDIO_MINUTES, minutes)
    return TranscribeResponse(text=text, length=len(text))
