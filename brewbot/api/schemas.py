"""Pydantic models for the API layer.

Defines request/response schemas for all endpoints.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from brewbot.agent.controller import ChatMessage


class ChatRequest(BaseModel):
    """Incoming chat message from the frontend."""
    message: str = Field(..., min_length=1, max_length=2000, description="User prompt")


class ChatResponse(BaseModel):
    """Outcome of one turn."""
    conversation_id: str
    outcome: Literal["completed", "aborted", "failed"]
    text: str
    error: str | None = None
    latency_ms: int
    tools_called: list[str] = Field(default_factory=list)


class MessageRecord(BaseModel):
    """Single message in a conversation log."""
    role: Literal["user", "assistant"]
    content: str
    timestamp: datetime

    @classmethod
    def from_chat_message(cls, message: ChatMessage) -> "MessageRecord":
        return cls(role=message.role, content=message.text, timestamp=message.created_at)


class ConversationState(BaseModel):
    """Live state the UI renders: log, responding flag and current error."""
    conversation_id: str
    messages: list[MessageRecord]
    responding: bool
    phase: str
    error: str | None = None


class CancelResponse(BaseModel):
    cancelled: bool


class HistoryResponse(BaseModel):
    """Persisted history for a conversation."""
    conversation_id: str
    messages: list[MessageRecord]
