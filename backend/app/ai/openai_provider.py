"""
OpenAI provider implementation.
Uses the OpenAI SDK for short chat completions (note titles).
"""
from dataclasses import dataclass
from typing import Optional
import logging
import time
from openai import OpenAI

from app.config import settings
from app.exceptions import ProviderError
from app.utils.metrics import (
    ai_provider_requests_total,
    ai_provider_failures_total,
    ai_provider_latency_seconds,
    ai_provider_tokens_total,
)
from app.utils.logging import log_provider_request, log_provider_failure

logger = logging.getLogger(__name__)

MAX_CONTENT_CHARS = 8000
MAX_TITLE_CHARS = 120


@dataclass(frozen=True)
class CompletionResult:
    """Model output plus the tokens it cost."""
    text: str
    total_tokens: int


class OpenAIProvider:
    """
    OpenAI chat provider.

    API keys are stored in environment variables and never exposed to clients.
    """

    def __init__(self):
        """Initialize OpenAI provider with API key from settings."""
        self.api_key = settings.openai_api_key
        self.chat_model = settings.openai_chat_model

        if self.api_key:
            self.client = OpenAI(api_key=self.api_key, base_url=settings.openai_api_base)
        else:
            self.client = None

    def is_configured(self) -> bool:
        """Check if OpenAI API key is configured."""
        return bool(self.api_key) and self.client is not None

    def generate_title(
        self,
        content: str,
        instructions: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> CompletionResult:
        """
        Suggest a file title for a note.

        Args:
            content: Note body, truncated to MAX_CONTENT_CHARS
            instructions: Optional user guidance for naming
            user_id: For logging only

        Returns:
            CompletionResult with the title and usage.total_tokens

        Raises:
            ProviderError: If not configured or the API call fails
        """
        if not self.is_configured():
            raise ProviderError("OpenAI API key not configured")

        if len(content) > MAX_CONTENT_CHARS:
            content = content[:MAX_CONTENT_CHARS]
            logger.warning(f"Content truncated to {MAX_CONTENT_CHARS} characters for title")

        system_prompt = (
            "You name notes. Reply with a short, descriptive file name for the note, "
            "without extension, quotes or trailing punctuation."
        )
        if instructions:
            system_prompt += f"\n\nFollow these naming instructions: {instructions}"

        start_time = time.time()
        ai_provider_requests_total.labels(provider="openai", operation="title").inc()
        try:
            response = self.client.chat.completions.create(
                model=self.chat_model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": content},
                ],
                max_tokens=40,
                temperature=0.3,
            )
        except Exception as e:
            duration = time.time() - start_time
            ai_provider_failures_total.labels(provider="openai", operation="title").inc()
            ai_provider_latency_seconds.labels(provider="openai", operation="title").observe(duration)
            log_provider_failure(
                logger,
                provider="openai",
                operation="title",
                error=str(e),
                duration_ms=duration * 1000,
                user_id=user_id,
            )
            raise ProviderError(f"Failed to generate title: {str(e)}")

        duration = time.time() - start_time
        ai_provider_latency_seconds.labels(provider="openai", operation="title").observe(duration)

        title = (response.choices[0].message.content or "").strip().strip('"').strip()
        title = title[:MAX_TITLE_CHARS]

        usage = getattr(response, "usage", None)
        total_tokens = getattr(usage, "total_tokens", 0) or 0
        if usage is not None:
            ai_provider_tokens_total.labels(provider="openai", operation="title", token_type="input").inc(
                getattr(usage, "prompt_tokens", 0) or 0
            )
            ai_provider_tokens_total.labels(provider="openai", operation="title", token_type="output").inc(
                getattr(usage, "completion_tokens", 0) or 0
            )

        log_provider_request(
            logger,
            provider="openai",
            operation="title",
            duration_ms=duration * 1000,
            user_id=user_id,
            total_tokens=total_tokens,
        )
        return CompletionResult(text=title, total_tokens=total_tokens)
