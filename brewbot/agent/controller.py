"""Generation session controller.

Turns one user prompt into a model turn: sends it to the live session,
executes any tool calls the model asks for through the ToolRegistry, feeds
the results back, and writes the answer into the last assistant message.

Per-turn states:

    IDLE → AWAITING_MODEL → (TOOL_REQUESTED → DISPATCHING → AWAITING_MODEL)*
         → STREAMING → IDLE

with ABORTED entered from any non-idle state when cancellation is observed.
Only one turn runs at a time. Cancellation is cooperative: cancel_active()
sets a flag that is checked between streamed snapshots and around every tool
dispatch, and cancels the turn task if it is waiting on the model.
"""

import asyncio
import time
from collections.abc import Callable
from contextlib import aclosing
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Literal
from uuid import uuid4

import structlog

from brewbot.agent.session_manager import GenerationConfig, SessionManager
from brewbot.agent.tools import ToolRegistry
from brewbot.core.cart_store import CartStore
from brewbot.core.llm_adapter import ModelUnavailableError
from brewbot.core.model_runtime import (
    GenerationOptions,
    ModelReply,
    ModelRuntime,
    ModelSession,
)

logger = structlog.get_logger(__name__)

DEFAULT_MAX_TOOL_ROUNDS = 8


class TurnPhase(str, Enum):
    IDLE = "idle"
    AWAITING_MODEL = "awaiting_model"
    TOOL_REQUESTED = "tool_requested"
    DISPATCHING = "dispatching"
    STREAMING = "streaming"
    ABORTED = "aborted"


class TurnOutcome(str, Enum):
    COMPLETED = "completed"
    ABORTED = "aborted"
    FAILED = "failed"


class TurnInProgressError(Exception):
    """A prompt was submitted while another turn is still running."""
    pass


class ToolLoopLimitError(Exception):
    """The model kept requesting tools past the configured round limit."""
    pass


@dataclass
class ChatMessage:
    """Single entry in the conversation log."""
    role: Literal["user", "assistant"]
    text: str
    id: str = field(default_factory=lambda: uuid4().hex)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class TurnEvent:
    """Progress notification for UI listeners."""
    kind: Literal["partial", "tool_start", "tool_end"]
    content: str = ""
    tool: str | None = None


@dataclass
class TurnResult:
    outcome: TurnOutcome
    text: str = ""
    tools_called: list[str] = field(default_factory=list)
    error: str | None = None
    latency_ms: int = 0


TurnListener = Callable[[TurnEvent], None]


class ChatController:
    """Owns the message log and runs one tool-augmented turn at a time."""

    def __init__(
        self,
        runtime: ModelRuntime,
        registry: ToolRegistry,
        cart: CartStore,
        config: GenerationConfig | None = None,
        max_tool_rounds: int = DEFAULT_MAX_TOOL_ROUNDS,
    ):
        self.runtime = runtime
        self.registry = registry
        self.cart = cart
        self.sessions = SessionManager(runtime, registry)
        self.max_tool_rounds = max_tool_rounds

        self._config = config or GenerationConfig()
        self._messages: list[ChatMessage] = []
        self._listeners: list[TurnListener] = []
        self._active: asyncio.Task | None = None
        self._cancel_requested = False

        self.conversation_id = uuid4().hex
        self.phase = TurnPhase.IDLE
        self.responding = False
        self.error: str | None = None

    # State exposed to the UI

    @property
    def messages(self) -> list[ChatMessage]:
        return list(self._messages)

    @property
    def config(self) -> GenerationConfig:
        return self._config

    def update_config(self, config: GenerationConfig) -> None:
        """Apply new settings; the next submit runs on a fresh session.

        Raises:
            TurnInProgressError: If a turn is running on the current session.
        """
        if self.responding:
            raise TurnInProgressError("Settings cannot change while a response is being generated")
        if config == self._config:
            return
        self._config = config
        self.sessions.invalidate()
        logger.info("controller.config_updated", temperature=config.temperature,
                    streaming=config.streaming)

    def add_listener(self, listener: TurnListener) -> Callable[[], None]:
        """Register a TurnEvent callback. Returns a function that removes it."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    # Commands

    async def submit(self, prompt: str) -> TurnResult:
        """Run one turn for `prompt` and return how it ended.

        Raises:
            TurnInProgressError: If a turn is already running.
            ValueError: If the prompt is blank.
        """
        if self.responding:
            raise TurnInProgressError("A response is already being generated")
        if not prompt.strip():
            raise ValueError("Prompt must not be empty")

        availability = self.runtime.availability()
        if not availability.is_available:
            message = f"The language model is not available. Reason: {availability.reason.description}"
            logger.warning("controller.model_unavailable", reason=availability.reason.value)
            self.error = message
            return TurnResult(outcome=TurnOutcome.FAILED, error=message)

        self.error = None
        self.responding = True
        self._cancel_requested = False
        self._messages.append(ChatMessage(role="user", text=prompt))
        placeholder = ChatMessage(role="assistant", text="")
        self._messages.append(placeholder)

        turn = asyncio.create_task(self._run_turn(prompt, placeholder, self._config))
        self._active = turn
        try:
            return await turn
        finally:
            self._active = None
            if turn.cancelled():
                # Cancelled before the turn body ran, so nothing reset the flags.
                self.responding = False
                self.phase = TurnPhase.IDLE

    def cancel_active(self) -> bool:
        """Request cancellation of the running turn. Returns False if idle."""
        if not self.responding:
            return False
        self._cancel_requested = True
        task = self._active
        if (task is not None and not task.done() and self.phase is not TurnPhase.IDLE
                and task is not asyncio.current_task()):
            task.cancel()
        logger.info("controller.cancel_requested", conversation_id=self.conversation_id)
        return True

    async def reset_conversation(self) -> None:
        """Cancel any running turn, then clear the log, the cart and the session."""
        task = self._active
        if self.cancel_active() and task is not None:
            await asyncio.wait({task})
        self._messages.clear()
        self.cart.clear()
        self.sessions.invalidate()
        self.error = None
        self.conversation_id = uuid4().hex
        logger.info("controller.conversation_reset", conversation_id=self.conversation_id)

    # Turn execution

    async def _run_turn(self, prompt: str, placeholder: ChatMessage, config: GenerationConfig) -> TurnResult:
        start = time.monotonic()
        tools_called: list[str] = []
        session: ModelSession | None = None
        mark = 0
        log = logger.bind(conversation_id=self.conversation_id, streaming=config.streaming)
        log.info("controller.turn_started", prompt_len=len(prompt))

        try:
            session = self.sessions.ensure(config)
            mark = session.mark()
            await self._tool_loop(session, prompt, placeholder, config, tools_called)
            outcome = TurnOutcome.COMPLETED
            log.info("controller.turn_completed", tools=tools_called, text_len=len(placeholder.text))

        except asyncio.CancelledError:
            self.phase = TurnPhase.ABORTED
            outcome = TurnOutcome.ABORTED
            log.info("controller.turn_aborted", tools=tools_called, text_len=len(placeholder.text))

        except ModelUnavailableError as e:
            outcome = TurnOutcome.FAILED
            self.error = f"The language model is not available. Reason: {e}"
            log.error("controller.turn_failed", error=str(e), reason=e.reason.value)

        except Exception as e:
            outcome = TurnOutcome.FAILED
            self.error = f"An error occurred: {e}"
            log.error("controller.turn_failed", error=str(e), error_type=type(e).__name__)

        finally:
            self.responding = False
            self.phase = TurnPhase.IDLE

        if outcome is not TurnOutcome.COMPLETED and session is not None:
            session.rollback(mark)

        return TurnResult(
            outcome=outcome,
            text=placeholder.text,
            tools_called=tools_called,
            error=self.error if outcome is TurnOutcome.FAILED else None,
            latency_ms=int((time.monotonic() - start) * 1000),
        )

    async def _tool_loop(
        self,
        session: ModelSession,
        prompt: str,
        placeholder: ChatMessage,
        config: GenerationConfig,
        tools_called: list[str],
    ) -> None:
        options = config.options()
        next_prompt: str | None = prompt

        for _ in range(self.max_tool_rounds + 1):
            self._checkpoint()
            self.phase = TurnPhase.AWAITING_MODEL
            if config.streaming:
                reply = await self._stream(session, next_prompt, options, placeholder)
            else:
                reply = await self.runtime.respond(session, next_prompt, options)
                self._checkpoint()
            next_prompt = None

            if not reply.tool_calls:
                placeholder.text = reply.content
                return

            self.phase = TurnPhase.TOOL_REQUESTED
            for request in reply.tool_calls:
                self._checkpoint()
                self.phase = TurnPhase.DISPATCHING
                self._emit(TurnEvent(kind="tool_start", tool=request.name))
                text = self.registry.dispatch(request.name, request.arguments)
                session.add_tool_result(request, text)
                tools_called.append(request.name)
                self._emit(TurnEvent(kind="tool_end", tool=request.name))
                self._checkpoint()

        raise ToolLoopLimitError(
            f"The assistant requested tools more than {self.max_tool_rounds} times without answering"
        )

    async def _stream(
        self,
        session: ModelSession,
        prompt: str | None,
        options: GenerationOptions,
        placeholder: ChatMessage,
    ) -> ModelReply:
        reply = ModelReply()
        async with aclosing(self.runtime.stream_response(session, prompt, options)) as stream:
            async for snapshot in stream:
                self._checkpoint()
                if snapshot.content and snapshot.content != placeholder.text:
                    self.phase = TurnPhase.STREAMING
                    # Snapshots are cumulative: replace, never append.
                    placeholder.text = snapshot.content
                    self._emit(TurnEvent(kind="partial", content=snapshot.content))
                reply = snapshot
        return reply

    def _checkpoint(self) -> None:
        if self._cancel_requested:
            raise asyncio.CancelledError()

    def _emit(self, event: TurnEvent) -> None:
        for listener in list(self._listeners):
            listener(event)
