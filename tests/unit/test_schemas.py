"""Unit tests for Pydantic API schemas."""

import pytest
from datetime import datetime
from pydantic import ValidationError

from brewbot.agent.controller import ChatMessage
from brewbot.api.schemas import ChatRequest, ChatResponse, ConversationState, MessageRecord


class TestChatRequest:

    def test_valid_request(self):
        req = ChatRequest(message="Two iced lattes please")
        assert req.message == "Two iced lattes please"

    def test_empty_message_rejected(self):
        with pytest.raises(ValidationError):
            ChatRequest(message="")

    def test_message_max_length(self):
        with pytest.raises(ValidationError):
            ChatRequest(message="x" * 2001)

    def test_message_at_max_length(self):
        req = ChatRequest(message="x" * 2000)
        assert len(req.message) == 2000


class TestChatResponse:

    def test_serialization(self):
        resp = ChatResponse(
            conversation_id="abc",
            outcome="completed",
            text="Added 2 iced lattes.",
            latency_ms=1200,
            tools_called=["add_to_cart"],
        )
        data = resp.model_dump()
        assert data["outcome"] == "completed"
        assert data["error"] is None
        assert data["tools_called"] == ["add_to_cart"]

    def test_unknown_outcome_rejected(self):
        with pytest.raises(ValidationError):
            ChatResponse(conversation_id="abc", outcome="paused", text="", latency_ms=0)

    def test_defaults(self):
        resp = ChatResponse(conversation_id="abc", outcome="aborted", text="Hel", latency_ms=5)
        assert resp.tools_called == []


class TestMessageRecord:

    def test_from_chat_message(self):
        message = ChatMessage(role="assistant", text="Hello")
        record = MessageRecord.from_chat_message(message)
        assert record.role == "assistant"
        assert record.content == "Hello"
        assert record.timestamp == message.created_at

    def test_invalid_role(self):
        with pytest.raises(ValidationError):
            MessageRecord(role="system", content="hi", timestamp=datetime.now())


class TestConversationState:

    def test_empty_conversation(self):
        state = ConversationState(conversation_id="abc", messages=[], responding=False, phase="idle")
        assert state.error is None
        assert state.model_dump()["messages"] == []
