"""FastAPI endpoints for the brewbot API.

POST /chat - run one turn through the controller
POST /chat/stream - same, streaming cumulative snapshots via SSE
POST /chat/cancel - cancel the running turn
POST /conversation/reset - start a new conversation (clears log and cart)
GET /conversation - live message log, responding flag and error
GET|PUT /settings - generation settings
GET /history/{conversation_id} - persisted finished turns
GET /health - component health check
"""

import asyncio
import json

import structlog
from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse

from brewbot.agent.controller import (
    ChatController,
    TurnEvent,
    TurnInProgressError,
    TurnOutcome,
    TurnResult,
)
from brewbot.agent.session_manager import GenerationConfig
from brewbot.api.schemas import (
    CancelResponse,
    ChatRequest,
    ChatResponse,
    ConversationState,
    HistoryResponse,
    MessageRecord,
)
from brewbot.core.database import get_conversation_history, get_session, save_message

logger = structlog.get_logger(__name__)

router = APIRouter()


def _controller(req: Request) -> ChatController:
    return req.app.state.controller


def _sse(payload: dict) -> str:
    return f"data: {json.dumps(payload)}\n\n"


def _persist_turn(conversation_id: str, prompt: str, result: TurnResult) -> None:
    """Store a completed turn; failures are logged, never raised."""
    if result.outcome is not TurnOutcome.COMPLETED:
        return
    try:
        save_message(conversation_id, "user", prompt)
        save_message(conversation_id, "assistant", result.text,
                     agent_trace={"tools_called": result.tools_called, "latency_ms": result.latency_ms})
    except Exception as e:
        logger.error("chat.persist_failed", error=str(e))


@router.post("/chat", response_model=ChatResponse)
async def chat(request: ChatRequest, req: Request):
    """Run one turn to completion and return its outcome."""
    controller = _controller(req)
    conversation_id = controller.conversation_id
    logger.info("chat.request", conversation_id=conversation_id, msg_len=len(request.message))

    try:
        result = await controller.submit(request.message)
    except TurnInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    _persist_turn(conversation_id, request.message, result)
    logger.info("chat.response", conversation_id=conversation_id, outcome=result.outcome.value,
                latency_ms=result.latency_ms, tools=result.tools_called)

    return ChatResponse(
        conversation_id=conversation_id,
        outcome=result.outcome.value,
        text=result.text,
        error=result.error,
        latency_ms=result.latency_ms,
        tools_called=result.tools_called,
    )


@router.post("/chat/stream")
async def chat_stream(request: ChatRequest, req: Request):
    """Run one turn and stream its progress via SSE.

    Events: start, partial (cumulative content, replaces the previous one),
    tool_start, tool_end, then exactly one of final_text, cancelled, error.
    """
    controller = _controller(req)
    conversation_id = controller.conversation_id
    logger.info("chat_stream.request", conversation_id=conversation_id, msg_len=len(request.message))

    if controller.responding:
        raise HTTPException(status_code=409, detail="A response is already being generated")

    async def generate_events():
        queue: asyncio.Queue[TurnEvent] = asyncio.Queue()
        remove_listener = controller.add_listener(queue.put_nowait)
        turn = asyncio.create_task(controller.submit(request.message))
        try:
            yield _sse({"type": "start", "conversation_id": conversation_id})

            while True:
                getter = asyncio.ensure_future(queue.get())
                done, _ = await asyncio.wait({getter, turn}, return_when=asyncio.FIRST_COMPLETED)
                if getter not in done:
                    getter.cancel()
                    break
                yield _sse(_event_payload(getter.result()))

            while not queue.empty():
                yield _sse(_event_payload(queue.get_nowait()))

            try:
                result = turn.result()
            except (TurnInProgressError, ValueError) as e:
                yield _sse({"type": "error", "content": str(e)})
                return

            _persist_turn(conversation_id, request.message, result)
            logger.info("chat_stream.response", conversation_id=conversation_id,
                        outcome=result.outcome.value, latency_ms=result.latency_ms,
                        tools=result.tools_called)

            if result.outcome is TurnOutcome.COMPLETED:
                yield _sse({"type": "final_text", "content": result.text,
                            "tools_called": result.tools_called})
            elif result.outcome is TurnOutcome.ABORTED:
                yield _sse({"type": "cancelled", "content": result.text})
            else:
                yield _sse({"type": "error", "content": result.error})
        finally:
            remove_listener()
            if not turn.done():
                # Client went away mid-turn.
                controller.cancel_active()

    return StreamingResponse(generate_events(), media_type="text/event-stream")


def _event_payload(event: TurnEvent) -> dict:
    if event.kind == "partial":
        return {"type": "partial", "content": event.content}
    return {"type": event.kind, "name": event.tool}


@router.post("/chat/cancel", response_model=CancelResponse)
def cancel(req: Request):
    """Cancel the running turn, if any. Partial text stays in the log."""
    return CancelResponse(cancelled=_controller(req).cancel_active())


@router.post("/conversation/reset", response_model=ConversationState)
async def reset_conversation(req: Request):
    """Start a new conversation: cancels, clears the log and the cart."""
    controller = _controller(req)
    await controller.reset_conversation()
    return _conversation_state(controller)


@router.get("/conversation", response_model=ConversationState)
def conversation(req: Request):
    return _conversation_state(_controller(req))


def _conversation_state(controller: ChatController) -> ConversationState:
    return ConversationState(
        conversation_id=controller.conversation_id,
        messages=[MessageRecord.from_chat_message(m) for m in controller.messages],
        responding=controller.responding,
        phase=controller.phase.value,
        error=controller.error,
    )


@router.get("/settings", response_model=GenerationConfig)
def get_settings(req: Request):
    return _controller(req).config


@router.put("/settings", response_model=GenerationConfig)
def put_settings(settings: GenerationConfig, req: Request):
    """Replace generation settings; the next turn runs on a new session."""
    controller = _controller(req)
    try:
        controller.update_config(settings)
    except TurnInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return controller.config


@router.get("/history/{conversation_id}", response_model=HistoryResponse)
def history(conversation_id: str):
    """Fetch persisted history for a conversation."""
    messages = get_conversation_history(conversation_id)
    return HistoryResponse(conversation_id=conversation_id, messages=messages)


@router.get("/health")
def health(req: Request):
    """Check health of all backend components."""
    components = {}

    # LLM providers
    llm = req.app.state.llm_adapter
    components["cerebras"] = "ok" if llm.cerebras_key else "error"
    components["groq"] = "ok" if llm.groq_key else "error"

    # Menu
    components["menu"] = "ok" if len(req.app.state.catalog) else "error"

    # SQLite
    try:
        get_session().close()
        components["sqlite"] = "ok"
    except Exception:
        components["sqlite"] = "error"

    # Overall status
    errors = [k for k, v in components.items() if v == "error"]
    if not errors:
        status = "healthy"
    elif len(errors) == len(components):
        status = "unhealthy"
    else:
        status = "degraded"

    return {"status": status, "components": components}


@router.get("/")
@router.head("/")
def root_health():
    """Basic root health check for deployment platforms like Render."""
    return {"status": "ok", "service": "brewbot-api"}
