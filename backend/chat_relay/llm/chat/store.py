"""ConversationStore owns per-session turn history and its lifecycle."""

import asyncio
import logging
import time
from collections import deque
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from chat_relay.config import get_settings
from chat_relay.llm.chat.models import SessionInfo, Turn, TurnRole

logger = logging.getLogger(__name__)

# Default cap on turns kept per session (oldest dropped first)
DEFAULT_MAX_TURNS = 100

# Singleton store instance
_store: "ConversationStore | None" = None


class _History:
    """Mutable history record. Never handed out; callers get snapshots."""

    def __init__(self, max_turns: int | None, generation: int):
        self.turns: deque[Turn] = deque(maxlen=max_turns)
        self.generation = generation
        self.created_at = datetime.now()
        self.last_activity = self.created_at


class ConversationStore:
    """In-memory mapping of session id to ordered conversation history.

    Responsibilities:
    - Create history lazily on first use
    - Append turns in order, bounded by a sliding window
    - Clear history on request
    - Evict history after a post-disconnect grace delay

    Every operation is total: unknown session ids are never an error.
    History is ephemeral and lost on restart.
    """

    def __init__(
        self,
        max_turns: int | None = DEFAULT_MAX_TURNS,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the store.

        Args:
            max_turns: Turns kept per session. None means unbounded.
            clock: Monotonic seconds source used for eviction deadlines.
        """
        if max_turns is not None and max_turns < 1:
            raise ValueError("max_turns must be positive or None")
        self._max_turns = max_turns
        self._clock = clock
        self._histories: dict[str, _History] = {}
        self._evictions: dict[str, float] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._eviction_task: asyncio.Task | None = None
        self._next_generation = 0

    @property
    def active_session_count(self) -> int:
        """Number of sessions currently holding history."""
        return len(self._histories)

    @property
    def max_turns(self) -> int | None:
        return self._max_turns

    def _get_or_create(self, session_id: str) -> _History:
        history = self._histories.get(session_id)
        if history is None:
            self._next_generation += 1
            history = _History(self._max_turns, self._next_generation)
            self._histories[session_id] = history
            logger.debug(f"Created history for session {session_id}")
        return history

    def ensure(self, session_id: str) -> tuple[Turn, ...]:
        """Return the session's history, creating an empty one if absent."""
        return tuple(self._get_or_create(session_id).turns)

    def append(self, session_id: str, turn: Turn) -> None:
        """Append a turn to the end of the session's history.

        Creates the history first if needed. When the turn cap is reached the
        oldest turn is dropped, along with any assistant turns that would
        then lead the window, so a capped history always opens on a user turn.
        """
        self._append_to(session_id, self._get_or_create(session_id), turn)

    def append_if_current(self, session_id: str, turn: Turn, generation: int) -> bool:
        """Append only if the session still holds the history ``generation`` names.

        A history that was cleared or evicted since ``generation`` was read is
        not recreated.

        Returns:
            True if the turn was appended.
        """
        history = self._histories.get(session_id)
        if history is None or history.generation != generation:
            logger.info(f"History for session {session_id} replaced, dropping {turn.role} turn")
            return False
        self._append_to(session_id, history, turn)
        return True

    def generation(self, session_id: str) -> int | None:
        """Identity of the session's current history, None if it has none."""
        history = self._histories.get(session_id)
        return history.generation if history is not None else None

    def _append_to(self, session_id: str, history: _History, turn: Turn) -> None:
        turns = history.turns
        at_cap = turns.maxlen is not None and len(turns) == turns.maxlen
        turns.append(turn)
        if at_cap:
            logger.debug(f"History for session {session_id} at cap, dropping oldest turn")
            while len(turns) > 1 and turns[0].role == TurnRole.ASSISTANT:
                turns.popleft()
        history.last_activity = datetime.now()

    def snapshot(self, session_id: str) -> tuple[Turn, ...]:
        """Get an immutable copy of the session's history.

        Returns:
            Turns in insertion order; empty if the session is unknown.
        """
        history = self._histories.get(session_id)
        if history is None:
            return ()
        return tuple(history.turns)

    def clear(self, session_id: str) -> bool:
        """Remove the session's history entirely.

        A pending eviction is left in place.

        Returns:
            True if there was history to remove.
        """
        removed = self._histories.pop(session_id, None) is not None
        if removed:
            logger.info(f"Cleared history for session {session_id}")
        return removed

    def session_lock(self, session_id: str) -> asyncio.Lock:
        """Get the exclusive execution token for one session.

        Sessions never share a lock, so cycles on different sessions stay
        independent.
        """
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock

    def schedule_eviction(self, session_id: str, delay: float) -> None:
        """Arrange for the session's history to be removed after ``delay`` seconds.

        Later activity on the session does not cancel the eviction. Scheduling
        again replaces the previous deadline.
        """
        self._evictions[session_id] = self._clock() + delay
        logger.info(f"Scheduled eviction of session {session_id} in {delay}s")

    def cancel_eviction(self, session_id: str) -> bool:
        """Cancel a pending eviction.

        Returns:
            True if an eviction was pending.
        """
        return self._evictions.pop(session_id, None) is not None

    def eviction_pending(self, session_id: str) -> bool:
        return session_id in self._evictions

    def evict_expired(self) -> int:
        """Remove every session whose eviction deadline has passed.

        Returns:
            Number of sessions evicted.
        """
        now = self._clock()
        expired_ids = [sid for sid, due in self._evictions.items() if due <= now]

        for session_id in expired_ids:
            del self._evictions[session_id]
            self._histories.pop(session_id, None)
            lock = self._locks.get(session_id)
            if lock is not None and not lock.locked():
                del self._locks[session_id]
            logger.info(f"Evicted session {session_id}")

        if expired_ids:
            logger.info(f"Evicted {len(expired_ids)} disconnected session(s)")

        return len(expired_ids)

    def list_sessions(self) -> list[SessionInfo]:
        """List sessions currently holding history."""
        now = self._clock()
        wall_now = datetime.now()
        infos = []
        for session_id, history in self._histories.items():
            due = self._evictions.get(session_id)
            infos.append(
                SessionInfo(
                    session_id=session_id,
                    turn_count=len(history.turns),
                    created_at=history.created_at,
                    last_activity=history.last_activity,
                    eviction_due_at=(
                        wall_now + timedelta(seconds=max(due - now, 0.0))
                        if due is not None
                        else None
                    ),
                )
            )
        return infos

    def get_stats(self) -> dict[str, Any]:
        """Get store statistics.

        Returns:
            Dictionary of stats.
        """
        return {
            "active_sessions": len(self._histories),
            "total_turns": sum(len(h.turns) for h in self._histories.values()),
            "pending_evictions": len(self._evictions),
            "max_turns": self._max_turns,
            "eviction_task_running": self._eviction_task is not None,
        }

    async def start_eviction_task(self, interval: float = 60) -> None:
        """Start the background eviction task."""
        if self._eviction_task is None:
            self._eviction_task = asyncio.create_task(self._eviction_loop(interval))
            logger.info("Started session eviction background task")

    async def stop_eviction_task(self) -> None:
        """Stop the background eviction task."""
        if self._eviction_task:
            self._eviction_task.cancel()
            try:
                await self._eviction_task
            except asyncio.CancelledError:
                pass
            self._eviction_task = None
            logger.info("Stopped session eviction background task")

    async def _eviction_loop(self, interval: float) -> None:
        """Background loop that evicts expired sessions."""
        while True:
            try:
                await asyncio.sleep(interval)
                self.evict_expired()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.exception(f"Error in session eviction task: {e}")

    async def shutdown(self) -> None:
        """Stop background work and drop all history."""
        await self.stop_eviction_task()
        count = len(self._histories)
        self._histories.clear()
        self._evictions.clear()
        self._locks.clear()
        logger.info(f"Conversation store shutdown complete ({count} session(s) dropped)")


def get_conversation_store() -> ConversationStore:
    """Get the singleton conversation store.

    Returns:
        The global ConversationStore.
    """
    global _store
    if _store is None:
        _store = ConversationStore(max_turns=get_settings().history_cap)
    return _store


async def init_conversation_store() -> ConversationStore:
    """Initialize the store and start background eviction.

    Returns:
        The initialized ConversationStore.
    """
    store = get_conversation_store()
    await store.start_eviction_task(get_settings().eviction_interval_seconds)
    return store


async def shutdown_conversation_store() -> None:
    """Shutdown the conversation store."""
    global _store
    if _store:
        await _store.shutdown()
        _store = None
