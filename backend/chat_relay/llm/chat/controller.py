"""SessionController drives one request cycle per incoming prompt."""

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from chat_relay.config import get_settings
from chat_relay.llm.chat.formatting import format_response
from chat_relay.llm.chat.models import Turn, TurnRole
from chat_relay.llm.chat.store import ConversationStore, get_conversation_store
from chat_relay.llm.gemini_client import GenerationClient, ProviderError, get_gemini_client

logger = logging.getLogger(__name__)

# Fixed instruction sent with every request, never stored in history
SYSTEM_PREAMBLE = (
    "You are a helpful AI assistant. Format your responses in a clear, organized "
    "way with appropriate emojis and sections. Keep responses concise but informative."
)

RESPONSE_EVENT = "response"
TERMINAL_MARKER = "Finished"
ERROR_MESSAGE = "❌ Sorry, there was an error processing your request."

DEFAULT_EVICTION_DELAY = 3600  # seconds

# Singleton controller instance
_controller: "SessionController | None" = None


class TransportSendError(Exception):
    """Sending to a session failed because its connection went away."""

    def __init__(self, message: str, session_id: str | None = None):
        super().__init__(message)
        self.session_id = session_id


class ChatTransport(Protocol):
    """The controller's view of one live connection."""

    session_id: str

    @property
    def is_connected(self) -> bool: ...

    async def send(self, event: str, data: Any) -> None:
        """Emit a named event. Raises TransportSendError if the peer is gone."""
        ...


class CycleState(str, Enum):
    """Where a request cycle is (or stopped)."""

    IDLE = "idle"
    AWAITING_HISTORY = "awaiting_history"
    STREAMING = "streaming"
    FORMATTING = "formatting"
    DELIVERING = "delivering"
    FAILED = "failed"


@dataclass
class CycleResult:
    """Outcome of one request cycle."""

    session_id: str
    final_state: CycleState
    delivered: bool
    text: str | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.final_state == CycleState.IDLE


class SessionController:
    """Orchestrates prompt -> history -> generation -> formatting -> delivery.

    Replies are buffered until the provider stream ends, then sent as one
    ``response`` event followed by a separate ``Finished`` event. Cycles on
    the same session run one at a time; cycles on different sessions never
    wait on each other. A failed cycle only affects its own session.
    """

    def __init__(
        self,
        store: ConversationStore,
        client: GenerationClient | None,
        preamble: str = SYSTEM_PREAMBLE,
        formatter: Callable[[str], str] = format_response,
        eviction_delay: float = DEFAULT_EVICTION_DELAY,
    ):
        """Initialize the controller.

        Args:
            store: Where per-session history lives.
            client: Generation provider. None makes every cycle fail cleanly.
            preamble: Instruction prepended to every request.
            formatter: Applied to the assembled reply before delivery.
            eviction_delay: Grace period (seconds) before a disconnected
                session's history is evicted.
        """
        self._store = store
        self._client = client
        self._preamble = preamble
        self._formatter = formatter
        self._eviction_delay = eviction_delay

    @property
    def store(self) -> ConversationStore:
        return self._store

    async def handle_prompt(self, transport: ChatTransport, prompt: str) -> CycleResult:
        """Run one full request cycle for a prompt.

        Never raises for provider or transport failures; the client always
        gets the terminal marker if it is still connected.
        """
        async with self._store.session_lock(transport.session_id):
            return await self._run_cycle(transport, prompt)

    async def _run_cycle(self, transport: ChatTransport, prompt: str) -> CycleResult:
        session_id = transport.session_id
        state = CycleState.AWAITING_HISTORY

        try:
            self._store.append(session_id, Turn(role=TurnRole.USER, text=prompt))
            generation = self._store.generation(session_id)
            history = self._store.snapshot(session_id)

            state = CycleState.STREAMING
            raw_text = await self._generate(history)

            state = CycleState.FORMATTING
            formatted = self._formatter(raw_text)
        except Exception as e:
            logger.exception(f"Error in chat cycle for session {session_id} ({state.value}): {e}")
            delivered = await self._deliver(transport, ERROR_MESSAGE)
            return CycleResult(
                session_id=session_id,
                final_state=CycleState.FAILED,
                delivered=delivered,
                error=str(e),
            )

        state = CycleState.DELIVERING
        delivered = await self._deliver(transport, formatted)

        # Raw text, not the decorated one, goes back to the model next turn.
        # A history cleared or evicted mid-cycle stays gone.
        self._store.append_if_current(
            session_id, Turn(role=TurnRole.ASSISTANT, text=raw_text), generation
        )
        logger.info(
            f"Completed chat cycle for session {session_id} "
            f"({len(raw_text)} chars, delivered={delivered})"
        )

        return CycleResult(
            session_id=session_id,
            final_state=CycleState.IDLE,
            delivered=delivered,
            text=raw_text,
        )

    async def _generate(self, history: Sequence[Turn]) -> str:
        """Drain the provider stream into one string."""
        if self._client is None:
            raise ProviderError("No generation provider configured")

        chunks: list[str] = []
        async for fragment in self._client.stream(self._preamble, history):
            chunks.append(fragment)
        return "".join(chunks)

    async def _deliver(self, transport: ChatTransport, text: str) -> bool:
        """Send text then the terminal marker, if the session is still live.

        Returns:
            True if both messages were sent.
        """
        session_id = transport.session_id
        if not transport.is_connected:
            logger.info(f"Session {session_id} disconnected, dropping response")
            return False

        try:
            await transport.send(RESPONSE_EVENT, text)
            await transport.send(RESPONSE_EVENT, TERMINAL_MARKER)
        except TransportSendError as e:
            logger.debug(f"Send to session {session_id} failed: {e}")
            return False
        except Exception as e:
            logger.exception(f"Unexpected error sending to session {session_id}: {e}")
            return False
        return True

    def handle_new_chat(self, session_id: str) -> bool:
        """Start a fresh conversation for the session.

        Returns:
            True if there was history to discard.
        """
        return self._store.clear(session_id)

    def handle_disconnect(self, session_id: str, reason: str | None = None) -> None:
        """Schedule eviction of a disconnected session's history.

        In-flight cycles keep running; their output is dropped at delivery.
        """
        logger.info(f"Client disconnected: {session_id} (reason: {reason})")
        self._store.schedule_eviction(session_id, self._eviction_delay)


def get_session_controller() -> SessionController:
    """Get the singleton session controller.

    Returns:
        The global SessionController wired to the global store and Gemini client.
    """
    global _controller
    if _controller is None:
        _controller = SessionController(
            store=get_conversation_store(),
            client=get_gemini_client(),
            eviction_delay=get_settings().eviction_delay_seconds,
        )
    return _controller


def reset_session_controller() -> None:
    """Drop the singleton so the next call rewires it."""
    global _controller
    _controller = None
