"""LLM integration for the chat relay."""

from chat_relay.llm.gemini_client import (
    GeminiClient,
    GenerationClient,
    ProviderError,
    gemini_available,
    get_gemini_client,
)

__all__ = [
    "GeminiClient",
    "GenerationClient",
    "ProviderError",
    "gemini_available",
    "get_gemini_client",
]
