"""Model runtime: sessions, blocking and streaming generation.

The controller talks to the language model only through the ModelRuntime
protocol below. LangChainRuntime implements it on top of LLMAdapter:
a session owns the LangChain transcript, `respond` returns one complete
reply, and `stream_response` turns provider delta chunks into cumulative
snapshots (each snapshot is the full text so far, never a fragment).
"""

from collections.abc import AsyncIterator, Sequence
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any, Protocol
from uuid import uuid4

import structlog
from langchain_core.messages import (
    AIMessage,
    AIMessageChunk,
    BaseMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
    message_chunk_to_message,
)
from langchain_core.tools import BaseTool

from brewbot.core.llm_adapter import Availability, LLMAdapter

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class GenerationOptions:
    """Per-request generation parameters."""
    temperature: float = 0.7

    def as_kwargs(self) -> dict[str, Any]:
        return {"temperature": self.temperature}


@dataclass(frozen=True)
class ToolCallRequest:
    """A tool invocation emitted by the model.

    `arguments` is the parsed argument object, or the raw text when the
    model produced JSON that could not be parsed.
    """
    name: str
    arguments: dict[str, Any] | str
    call_id: str


@dataclass
class ModelReply:
    """One reply (or cumulative streaming snapshot) from the model."""
    content: str = ""
    tool_calls: list[ToolCallRequest] = field(default_factory=list)
    complete: bool = True


@dataclass
class ModelSession:
    """Binds instructions and tools to the model and holds the transcript."""
    instructions: str
    tools: tuple[BaseTool, ...] = ()
    models: Any = None
    transcript: list[BaseMessage] = field(default_factory=list)
    session_id: str = field(default_factory=lambda: uuid4().hex)

    def __post_init__(self):
        if not self.transcript:
            self.transcript.append(SystemMessage(content=self.instructions))

    def mark(self) -> int:
        """Current transcript length, for rollback()."""
        return len(self.transcript)

    def rollback(self, mark: int) -> None:
        """Drop everything appended after `mark`."""
        del self.transcript[mark:]

    def add_prompt(self, prompt: str) -> None:
        self.transcript.append(HumanMessage(content=prompt))

    def add_reply(self, message: AIMessage) -> None:
        self.transcript.append(message)

    def add_tool_result(self, request: ToolCallRequest, text: str) -> None:
        self.transcript.append(
            ToolMessage(content=text, tool_call_id=request.call_id, name=request.name)
        )


class ModelRuntime(Protocol):
    """What the controller needs from a language model."""

    def create_session(self, instructions: str, tools: Sequence[BaseTool]) -> ModelSession: ...

    async def respond(
        self, session: ModelSession, prompt: str | None, options: GenerationOptions
    ) -> ModelReply: ...

    def stream_response(
        self, session: ModelSession, prompt: str | None, options: GenerationOptions
    ) -> AsyncIterator[ModelReply]: ...

    def availability(self) -> Availability: ...


def content_text(content: str | list) -> str:
    """Flatten LangChain message content (str or content blocks) to plain text."""
    if isinstance(content, str):
        return content
    parts = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


def tool_requests(message: AIMessage) -> list[ToolCallRequest]:
    """Extract tool calls (including unparseable ones) from an AI message."""
    requests = []
    for call in message.tool_calls:
        requests.append(ToolCallRequest(
            name=call["name"],
            arguments=call.get("args") or {},
            call_id=call.get("id") or f"call_{uuid4().hex[:12]}",
        ))
    for call in message.invalid_tool_calls:
        requests.append(ToolCallRequest(
            name=call.get("name") or "",
            arguments=call.get("args") or "",
            call_id=call.get("id") or f"call_{uuid4().hex[:12]}",
        ))
    return requests


class LangChainRuntime:
    """ModelRuntime backed by the failover LLMAdapter."""

    def __init__(self, adapter: LLMAdapter):
        self.adapter = adapter

    def availability(self) -> Availability:
        return self.adapter.availability()

    def create_session(self, instructions: str, tools: Sequence[BaseTool]) -> ModelSession:
        session = ModelSession(
            instructions=instructions,
            tools=tuple(tools),
            models=self.adapter.bind_tools(tools),
        )
        logger.info("runtime.session_created", session_id=session.session_id,
                    tools=[t.name for t in tools])
        return session

    async def respond(
        self, session: ModelSession, prompt: str | None, options: GenerationOptions
    ) -> ModelReply:
        if prompt is not None:
            session.add_prompt(prompt)
        message = await self.adapter.ainvoke_with_failover(
            session.models, list(session.transcript), **options.as_kwargs()
        )
        session.add_reply(message)
        return ModelReply(content=content_text(message.content), tool_calls=tool_requests(message))

    async def stream_response(
        self, session: ModelSession, prompt: str | None, options: GenerationOptions
    ) -> AsyncIterator[ModelReply]:
        if prompt is not None:
            session.add_prompt(prompt)

        accumulated: AIMessageChunk | None = None
        last_text = ""
        chunks = self.adapter.astream_with_failover(
            session.models, list(session.transcript), **options.as_kwargs()
        )
        async with aclosing(chunks):
            async for chunk in chunks:
                accumulated = chunk if accumulated is None else accumulated + chunk
                text = content_text(accumulated.content)
                if text != last_text:
                    last_text = text
                    yield ModelReply(content=text, complete=False)

        if accumulated is None:
            message = AIMessage(content="")
        else:
            message = message_chunk_to_message(accumulated)
        session.add_reply(message)
        yield ModelReply(content=content_text(message.content), tool_calls=tool_requests(message))
