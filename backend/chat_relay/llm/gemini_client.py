"""Gemini client wrapper for streamed chat generation."""

import logging
from collections.abc import AsyncIterator, Sequence
from typing import Protocol

from google import genai
from google.genai import types

from chat_relay.config import get_settings
from chat_relay.llm.chat.models import Turn, TurnRole

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    """The generation call could not be made or its stream aborted."""

    def __init__(self, message: str, provider: str | None = None):
        super().__init__(message)
        self.provider = provider


class GenerationClient(Protocol):
    """Anything that turns an ordered list of turns into a text stream."""

    def stream(self, preamble: str, turns: Sequence[Turn]) -> AsyncIterator[str]:
        """Submit turns and yield text fragments until the provider ends the stream.

        Raises:
            ProviderError: If the call fails or the stream terminates abnormally.
        """
        ...


def _to_content(turn: Turn) -> types.Content:
    role = "model" if turn.role == TurnRole.ASSISTANT else "user"
    return types.Content(role=role, parts=[types.Part(text=turn.text)])


class GeminiClient:
    """Wrapper around Google GenAI client for streamed chat replies."""

    provider = "gemini"

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ):
        """Initialize the client.

        Args:
            api_key: Gemini API key. If not provided, uses GEMINI_API_KEY
                (or GOOGLE_API_KEY) from settings.
            model: Model name. Defaults to the configured GEMINI_MODEL.
            temperature: Optional sampling temperature (0-2).
            max_tokens: Optional cap on tokens in each reply.
        """
        self.api_key = api_key or get_settings().gemini_api_key
        if not self.api_key:
            raise ValueError(
                "Gemini API key required. Set GEMINI_API_KEY environment variable "
                "or pass api_key parameter."
            )
        self.model = model or get_settings().gemini_model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._client = genai.Client(api_key=self.api_key)

    async def stream(self, preamble: str, turns: Sequence[Turn]) -> AsyncIterator[str]:
        """Stream a reply for the given conversation.

        The preamble is sent as the system instruction; it is never part of
        the turn list.

        Args:
            preamble: Fixed instruction prepended to every request
            turns: Conversation so far, oldest first

        Yields:
            Non-empty text fragments in arrival order

        Raises:
            ProviderError: If the request cannot be made or the stream breaks
        """
        config = types.GenerateContentConfig(
            system_instruction=preamble,
            temperature=self.temperature,
            max_output_tokens=self.max_tokens,
        )
        contents = [_to_content(turn) for turn in turns]

        try:
            response = await self._client.aio.models.generate_content_stream(
                model=self.model,
                contents=contents,
                config=config,
            )
        except Exception as e:
            logger.error(f"Gemini request failed: {e}")
            raise ProviderError(f"Gemini request failed: {e}", provider=self.provider) from e

        try:
            async for chunk in response:
                text = chunk.text
                if text:
                    yield text
        except Exception as e:
            logger.error(f"Gemini stream aborted: {e}")
            raise ProviderError(f"Gemini stream aborted: {e}", provider=self.provider) from e


# Global client instance (lazy initialization)
_gemini_client: GeminiClient | None = None


def get_gemini_client() -> GeminiClient | None:
    """Get or create the global Gemini client instance.

    Returns None if no API key is set, so the relay can still start and
    answer every prompt with the error message.
    """
    global _gemini_client
    if _gemini_client is None:
        try:
            _gemini_client = GeminiClient()
        except ValueError:
            logger.warning("No Gemini API key configured, generation is unavailable")
            return None
    return _gemini_client


def gemini_available() -> bool:
    """Check if Gemini is available (API key is set)."""
    return bool(get_settings().gemini_api_key)
