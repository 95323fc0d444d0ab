"""
Speech-to-text for the transcribe route.
Groq Whisper is tried first; OpenAI Whisper takes over when Groq is not
configured or its request fails.
"""
import logging
import time
from dataclasses import dataclass
from typing import Any, List, Optional
from groq import Groq
from openai import OpenAI

from app.config import settings
from app.exceptions import ProviderError
from app.utils.metrics import (
    ai_provider_requests_total,
    ai_provider_failures_total,
    ai_provider_latency_seconds
)
from app.utils.logging import log_provider_request, log_provider_failure

logger = logging.getLogger(__name__)

GROQ_WHISPER_MODEL = "whisper-large-v3-turbo"
OPENAI_WHISPER_MODEL = "whisper-1"


@dataclass(frozen=True)
class WhisperBackend:
    name: str
    client: Any
    model: str


class GroqWhisperProvider:
    """Transcribes audio bytes using the first configured backend that answers."""

    def __init__(self, backends: Optional[List[WhisperBackend]] = None):
        if backends is None:
            backends = []
            if settings.groq_api_key:
                backends.append(WhisperBackend("groq", Groq(api_key=settings.groq_api_key), GROQ_WHISPER_MODEL))
            if settings.openai_api_key:
                client = OpenAI(api_key=settings.openai_api_key, base_url=settings.openai_api_base)
                backends.append(WhisperBackend("openai", client, OPENAI_WHISPER_MODEL))
        self.backends = backends

    def is_configured(self) -> bool:
        return bool(self.backends)

    def transcribe_from_bytes(
        self,
        audio_bytes: bytes,
        filename: str = "audio.webm",
        language: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> str:
        """
        Transcribe audio from bytes.

        Args:
            audio_bytes: Raw audio file
            filename: Sent to the API, which infers the format from the extension
            language: ISO language code, auto-detected when None
            user_id: For logging only

        Raises:
            ProviderError: If no backend is configured or every backend failed
        """
        if not self.backends:
            raise ProviderError("Neither Groq nor OpenAI API key configured")

        last_error = None
        for backend in self.backends:
            try:
                return self._call(backend, audio_bytes, filename, language, user_id)
            except Exception as e:
                last_error = e
                logger.info(f"Transcription with {backend.name} failed, trying next backend")

        raise ProviderError(f"Failed to transcribe audio: {last_error}")

    def _call(
        self,
        backend: WhisperBackend,
        audio_bytes: bytes,
        filename: str,
        language: Optional[str],
        user_id: Optional[str],
    ) -> str:
        labels = {"provider": backend.name, "operation": "transcribe"}
        ai_provider_requests_total.labels(**labels).inc()

        params = {"model": backend.model, "file": (filename, audio_bytes)}
        if language:
            params["language"] = language

        start_time = time.time()
        try:
            transcription = backend.client.audio.transcriptions.create(**params)
        except Exception as e:
            elapsed = time.time() - start_time
            ai_provider_failures_total.labels(**labels).inc()
            ai_provider_latency_seconds.labels(**labels).observe(elapsed)
            log_provider_failure(
                logger, provider=backend.name, operation="transcribe",
                error=str(e), duration_ms=elapsed * 1000, user_id=user_id,
            )
            raise

        elapsed = time.time() - start_time
        ai_provider_latency_seconds.labels(**labels).observe(elapsed)
        text = transcription.text or ""
        log_provider_request(
            logger, provider=backend.name, operation="transcribe",
            duration_ms=elapsed * 1000, user_id=user_id, length=len(text),
        )
        return text
