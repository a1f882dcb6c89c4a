"""Pytest configuration and fixtures."""

from collections.abc import AsyncIterator, Sequence
from typing import Any

import pytest

from chat_relay.config import get_settings
from chat_relay.llm import gemini_client as gemini_module
from chat_relay.llm.chat import controller as controller_module
from chat_relay.llm.chat import store as store_module
from chat_relay.llm.chat.controller import SessionController, TransportSendError
from chat_relay.llm.chat.models import Turn
from chat_relay.llm.chat.store import ConversationStore
from chat_relay.llm.gemini_client import ProviderError


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeGenerationClient:
    """Yields canned fragments and records every request."""

    def __init__(
        self,
        fragments: Sequence[str] = ("Hello", ", ", "world"),
        fail_after: int | None = None,
        fail_on_submit: bool = False,
    ):
        self.fragments = list(fragments)
        self.fail_after = fail_after
        self.fail_on_submit = fail_on_submit
        self.calls: list[tuple[str, tuple[Turn, ...]]] = []

    async def stream(self, preamble: str, turns: Sequence[Turn]) -> AsyncIterator[str]:
        self.calls.append((preamble, tuple(turns)))
        if self.fail_on_submit:
            raise ProviderError("provider unavailable", provider="fake")
        for i, fragment in enumerate(self.fragments):
            if self.fail_after is not None and i >= self.fail_after:
                raise ProviderError("stream aborted", provider="fake")
            yield fragment


class FakeTransport:
    """Collects outbound events; can simulate a dropped connection."""

    def __init__(self, session_id: str = "session-1", connected: bool = True):
        self.session_id = session_id
        self.connected = connected
        self.fail_sends = False
        self.sent: list[tuple[str, Any]] = []

    @property
    def is_connected(self) -> bool:
        return self.connected

    async def send(self, event: str, data: Any) -> None:
        if self.fail_sends:
            raise TransportSendError("socket closed", session_id=self.session_id)
        self.sent.append((event, data))

    @property
    def messages(self) -> list[Any]:
        return [data for _, data in self.sent]


@pytest.fixture(autouse=True)
def reset_singletons(monkeypatch: pytest.MonkeyPatch, tmp_path):
    """Keep tests away from the real provider, stray .env files and shared globals."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
    get_settings.cache_clear()
    store_module._store = None
    controller_module._controller = None
    gemini_module._gemini_client = None
    yield
    get_settings.cache_clear()
    store_module._store = None
    controller_module._controller = None
    gemini_module._gemini_client = None


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> ConversationStore:
    return ConversationStore(max_turns=None, clock=clock)


@pytest.fixture
def generation_client() -> FakeGenerationClient:
    return FakeGenerationClient()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def controller(
    store: ConversationStore, generation_client: FakeGenerationClient
) -> SessionController:
    return SessionController(store=store, client=generation_client, eviction_delay=3600)
