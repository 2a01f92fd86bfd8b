"""Shared fixtures for all tests."""

import asyncio
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field
from decimal import Decimal

import pytest
from langchain_core.messages import AIMessage
from langchain_core.tools import BaseTool

from brewbot.agent.tools import ToolRegistry, build_tools
from brewbot.core.cart_store import CartStore
from brewbot.core.catalog import Catalog, MenuItem, SweetnessVariant, TemperatureVariant
from brewbot.core.llm_adapter import Available, Availability
from brewbot.core.model_runtime import (
    GenerationOptions,
    ModelReply,
    ModelSession,
    ToolCallRequest,
)


@pytest.fixture
def catalog() -> Catalog:
    """Small menu covering every variant restriction."""
    items = [
        MenuItem(
            id="latte", name="Latte", price=Decimal("35"),
            description="Espresso with steamed milk",
            temperatures=(TemperatureVariant.HOT, TemperatureVariant.ICED),
            sweetness=(SweetnessVariant.NO_SUGAR, SweetnessVariant.LIGHT,
                       SweetnessVariant.REGULAR, SweetnessVariant.EXTRA),
        ),
        MenuItem(
            id="cappuccino", name="Cappuccino", price=Decimal("32"),
            description="Espresso with milk foam",
            temperatures=(TemperatureVariant.HOT,),
            sweetness=(SweetnessVariant.NO_SUGAR, SweetnessVariant.LIGHT, SweetnessVariant.REGULAR),
        ),
        MenuItem(
            id="espresso", name="Espresso", price=Decimal("4.50"),
            description="Single shot",
            temperatures=(TemperatureVariant.HOT,),
            sweetness=(SweetnessVariant.NO_SUGAR,),
        ),
    ]
    return Catalog(items)


@pytest.fixture
def cart(catalog) -> CartStore:
    return CartStore(catalog)


@pytest.fixture
def registry(catalog, cart) -> ToolRegistry:
    return ToolRegistry(build_tools(catalog, cart))


def tool_call(name: str, arguments: dict | str | None = None, call_id: str | None = None) -> ToolCallRequest:
    return ToolCallRequest(name=name, arguments=arguments if arguments is not None else {},
                           call_id=call_id or f"call_{name}")


@dataclass
class Step:
    """One scripted model reply.

    `chunks` are the streaming deltas (defaults to the whole text at once).
    `hold` blocks the call until the turn is cancelled. `error` is raised
    after any chunks have been delivered.
    """
    text: str = ""
    tool_calls: list[ToolCallRequest] = field(default_factory=list)
    chunks: list[str] | None = None
    hold: bool = False
    error: Exception | None = None


class ScriptedRuntime:
    """ModelRuntime that plays back scripted Steps in order."""

    def __init__(self, steps: Sequence[Step] = ()):
        self.steps = list(steps)
        self.availability_value: Availability = Available()
        self.sessions: list[ModelSession] = []
        self.prompts: list[str | None] = []
        self.options: list[GenerationOptions] = []

    def script(self, *steps: Step) -> None:
        self.steps.extend(steps)

    def availability(self) -> Availability:
        return self.availability_value

    def create_session(self, instructions: str, tools: Sequence[BaseTool]) -> ModelSession:
        session = ModelSession(instructions=instructions, tools=tuple(tools))
        self.sessions.append(session)
        return session

    def _next(self, session: ModelSession, prompt: str | None, options: GenerationOptions) -> Step:
        if prompt is not None:
            session.add_prompt(prompt)
        self.prompts.append(prompt)
        self.options.append(options)
        return self.steps.pop(0)

    async def respond(self, session: ModelSession, prompt: str | None, options: GenerationOptions) -> ModelReply:
        step = self._next(session, prompt, options)
        if step.hold:
            await asyncio.Event().wait()
        if step.error is not None:
            raise step.error
        session.add_reply(AIMessage(content=step.text))
        return ModelReply(content=step.text, tool_calls=list(step.tool_calls))

    async def stream_response(
        self, session: ModelSession, prompt: str | None, options: GenerationOptions
    ) -> AsyncIterator[ModelReply]:
        step = self._next(session, prompt, options)
        text = ""
        for delta in step.chunks if step.chunks is not None else ([step.text] if step.text else []):
            await asyncio.sleep(0)
            text += delta
            yield ModelReply(content=text, complete=False)
        if step.hold:
            await asyncio.Event().wait()
        if step.error is not None:
            raise step.error
        session.add_reply(AIMessage(content=text))
        yield ModelReply(content=text, tool_calls=list(step.tool_calls))


@pytest.fixture
def runtime() -> ScriptedRuntime:
    return ScriptedRuntime()
