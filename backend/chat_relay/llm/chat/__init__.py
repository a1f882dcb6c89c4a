"""Conversation state for relayed chat sessions.

This module provides the session-scoped pieces of the relay:
- ConversationStore: Per-session turn history with lazy creation and eviction
- format_response: Cosmetic reformatting of assembled replies

The request cycle itself lives in chat_relay.llm.chat.controller.
"""

from chat_relay.llm.chat.formatting import EMOJI_MAP, format_response
from chat_relay.llm.chat.models import RelayEvent, SessionInfo, Turn, TurnRole
from chat_relay.llm.chat.store import ConversationStore, get_conversation_store

__all__ = [
    "EMOJI_MAP",
    "ConversationStore",
    "RelayEvent",
    "SessionInfo",
    "Turn",
    "TurnRole",
    "format_response",
    "get_conversation_store",
]
