"""Pydantic models for relayed conversations."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class TurnRole(str, Enum):
    """Author of a conversation turn."""

    USER = "user"
    ASSISTANT = "assistant"


class Turn(BaseModel):
    """A single message in a conversation history."""

    role: TurnRole
    text: str
    timestamp: datetime = Field(default_factory=datetime.now)

    class Config:
        use_enum_values = True
        frozen = True


class SessionInfo(BaseModel):
    """Information about a session that currently holds history."""

    session_id: str
    turn_count: int
    created_at: datetime
    last_activity: datetime
    eviction_due_at: datetime | None = None


class RelayEvent(BaseModel):
    """A named event on the chat socket, in either direction."""

    event: str
    data: Any = None

    class Config:
        extra = "allow"
