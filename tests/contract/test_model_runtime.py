"""Contract tests for the LangChain model runtime (fake chat models, no network)."""

import pytest
from langchain_core.language_models.fake_chat_models import GenericFakeChatModel
from langchain_core.messages import (
    AIMessage,
    AIMessageChunk,
    HumanMessage,
    SystemMessage,
    ToolMessage,
)

from brewbot.core.llm_adapter import BoundModels, LLMAdapter
from brewbot.core.model_runtime import (
    GenerationOptions,
    LangChainRuntime,
    ToolCallRequest,
    content_text,
)

OPTIONS = GenerationOptions(temperature=0.5)


class ChunkModel:
    """Streams a fixed list of AIMessageChunks."""

    def __init__(self, chunks):
        self.chunks = chunks

    async def astream(self, messages, **kwargs):
        for chunk in self.chunks:
            yield chunk


@pytest.fixture
def adapter(monkeypatch):
    monkeypatch.setenv("CEREBRAS_API_KEY", "test-cerebras-key")
    monkeypatch.delenv("GROQ_API_KEY", raising=False)
    return LLMAdapter()


def bind(mocker, adapter, model):
    return mocker.patch.object(adapter, "bind_tools", return_value=BoundModels(primary=model, fallback=None))


def fake_model(*messages):
    return GenericFakeChatModel(messages=iter(messages))


async def collect(stream):
    return [reply async for reply in stream]


class TestCreateSession:

    def test_binds_tools_and_instructions(self, mocker, adapter, registry):
        bound = bind(mocker, adapter, fake_model())
        session = LangChainRuntime(adapter).create_session("Sell coffee.", registry.descriptors())

        bound.assert_called_once()
        assert [t.name for t in session.tools] == registry.names
        assert isinstance(session.transcript[0], SystemMessage)
        assert session.transcript[0].content == "Sell coffee."
        assert session.mark() == 1

    def test_availability_delegates(self, adapter):
        assert LangChainRuntime(adapter).availability().is_available


@pytest.mark.asyncio
class TestRespond:

    async def test_plain_answer(self, mocker, adapter, registry):
        bind(mocker, adapter, fake_model(AIMessage(content="We have lattes.")))
        runtime = LangChainRuntime(adapter)
        session = runtime.create_session("Sell coffee.", registry.descriptors())

        reply = await runtime.respond(session, "menu?", OPTIONS)

        assert reply.content == "We have lattes."
        assert reply.tool_calls == []
        assert reply.complete
        assert [type(m) for m in session.transcript] == [SystemMessage, HumanMessage, AIMessage]

    async def test_tool_calls_extracted(self, mocker, adapter, registry):
        bind(mocker, adapter, fake_model(AIMessage(
            content="",
            tool_calls=[{"name": "get_menu", "args": {}, "id": "call_1"}],
        )))
        runtime = LangChainRuntime(adapter)
        session = runtime.create_session("Sell coffee.", registry.descriptors())

        reply = await runtime.respond(session, "menu?", OPTIONS)

        assert reply.tool_calls == [ToolCallRequest(name="get_menu", arguments={}, call_id="call_1")]

    async def test_continue_after_tool_result(self, mocker, adapter, registry):
        bind(mocker, adapter, fake_model(
            AIMessage(content="", tool_calls=[{"name": "view_cart", "args": {}, "id": "call_1"}]),
            AIMessage(content="Your cart is empty."),
        ))
        runtime = LangChainRuntime(adapter)
        session = runtime.create_session("Sell coffee.", registry.descriptors())

        first = await runtime.respond(session, "cart?", OPTIONS)
        session.add_tool_result(first.tool_calls[0], "Cart is empty")
        second = await runtime.respond(session, None, OPTIONS)

        assert second.content == "Your cart is empty."
        tool_message = session.transcript[3]
        assert isinstance(tool_message, ToolMessage)
        assert tool_message.tool_call_id == "call_1"
        assert len([m for m in session.transcript if isinstance(m, HumanMessage)]) == 1

    async def test_rollback_drops_turn(self, mocker, adapter, registry):
        bind(mocker, adapter, fake_model(AIMessage(content="hi")))
        runtime = LangChainRuntime(adapter)
        session = runtime.create_session("Sell coffee.", registry.descriptors())
        mark = session.mark()

        await runtime.respond(session, "hello", OPTIONS)
        session.rollback(mark)

        assert len(session.transcript) == 1


@pytest.mark.asyncio
class TestStreamResponse:

    async def test_snapshots_are_cumulative(self, mocker, adapter, registry):
        bind(mocker, adapter, fake_model(AIMessage(content="Two iced lattes coming up")))
        runtime = LangChainRuntime(adapter)
        session = runtime.create_session("Sell coffee.", registry.descriptors())

        replies = await collect(runtime.stream_response(session, "order", OPTIONS))

        partials = [r.content for r in replies if not r.complete]
        assert len(partials) > 1
        for earlier, later in zip(partials, partials[1:]):
            assert later.startswith(earlier)
        assert replies[-1].complete
        assert replies[-1].content == "Two iced lattes coming up"
        assert session.transcript[-1].content == "Two iced lattes coming up"

    async def test_streamed_tool_call(self, mocker, adapter, registry):
        bind(mocker, adapter, ChunkModel([
            AIMessageChunk(content="", tool_call_chunks=[
                {"name": "add_to_cart", "args": '{"item_id": "latte", ', "id": "call_7", "index": 0},
            ]),
            AIMessageChunk(content="", tool_call_chunks=[
                {"name": None, "args": '"temperature": "hot", "sweetness": "regular", "quantity": 1}',
                 "id": None, "index": 0},
            ]),
        ]))
        runtime = LangChainRuntime(adapter)
        session = runtime.create_session("Sell coffee.", registry.descriptors())

        replies = await collect(runtime.stream_response(session, "a hot latte", OPTIONS))

        assert len(replies) == 1
        call = replies[0].tool_calls[0]
        assert call.name == "add_to_cart"
        assert call.call_id == "call_7"
        assert call.arguments == {"item_id": "latte", "temperature": "hot", "sweetness": "regular", "quantity": 1}
        assert session.transcript[-1].tool_calls[0]["id"] == "call_7"

    async def test_unparseable_tool_arguments_kept_raw(self, mocker, adapter, registry):
        bind(mocker, adapter, ChunkModel([
            AIMessageChunk(content="", tool_call_chunks=[
                {"name": "add_to_cart", "args": "<<item latte>>", "id": "call_8", "index": 0},
            ]),
        ]))
        runtime = LangChainRuntime(adapter)
        session = runtime.create_session("Sell coffee.", registry.descriptors())

        replies = await collect(runtime.stream_response(session, "a latte", OPTIONS))

        call = replies[-1].tool_calls[0]
        assert call.name == "add_to_cart"
        assert call.arguments == "<<item latte>>"

    async def test_empty_stream(self, mocker, adapter, registry):
        bind(mocker, adapter, ChunkModel([]))
        runtime = LangChainRuntime(adapter)
        session = runtime.create_session("Sell coffee.", registry.descriptors())

        replies = await collect(runtime.stream_response(session, "hello", OPTIONS))

        assert [(r.content, r.complete) for r in replies] == [("", True)]


class TestContentText:

    def test_string(self):
        assert content_text("hello") == "hello"

    def test_blocks(self):
        assert content_text([{"type": "text", "text": "Hel"}, "lo", {"type": "image_url"}]) == "Hello"
