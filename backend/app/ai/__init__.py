"""
AI provider module.
Chat completions via OpenAI; transcription via Groq Whisper with OpenAI fallback.
"""
from app.ai.openai_provider import OpenAIProvider, CompletionResult
from app.ai.groq_provider import GroqWhisperProvider

__all__ = ["OpenAIProvider", "CompletionResult", "GroqWhisperProvider"]
