"""LLM adapter with Cerebras → Groq failover.

Cerebras is the primary (fast inference). On timeout or 5xx, falls back to Groq.
4xx errors fail immediately. No point retrying a bad request on a different provider.
Streaming only fails over if the primary breaks before its first chunk; once
text has reached the caller, switching providers would restart the answer.
"""

import os
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

import structlog
from httpx import HTTPStatusError, ReadTimeout
from langchain_cerebras import ChatCerebras
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage, AIMessageChunk, BaseMessage
from langchain_core.runnables import Runnable
from langchain_core.tools import BaseTool
from langchain_groq import ChatGroq

logger = structlog.get_logger(__name__)


class UnavailableReason(str, Enum):
    DEVICE_INELIGIBLE = "device_ineligible"
    FEATURE_DISABLED = "feature_disabled"
    ASSETS_NOT_READY = "assets_not_ready"
    UNKNOWN = "unknown"

    @property
    def description(self) -> str:
        return _REASON_DESCRIPTIONS[self]


_REASON_DESCRIPTIONS = {
    UnavailableReason.DEVICE_INELIGIBLE: "Runtime not eligible to host the model",
    UnavailableReason.FEATURE_DISABLED: "No LLM provider configured (set CEREBRAS_API_KEY or GROQ_API_KEY)",
    UnavailableReason.ASSETS_NOT_READY: "Model name not configured",
    UnavailableReason.UNKNOWN: "Unknown reason",
}


@dataclass(frozen=True)
class Available:
    """The model can serve requests."""
    is_available = True


@dataclass(frozen=True)
class Unavailable:
    """The model cannot serve requests, and why."""
    reason: UnavailableReason
    is_available = False


Availability = Available | Unavailable


class TransportError(Exception):
    """Non-retryable provider error (e.g. 4xx bad request, stream broken mid-answer)."""
    pass


class ModelUnavailableError(Exception):
    """The model can't be reached: not configured, or every provider failed."""

    def __init__(self, reason: UnavailableReason, detail: str = ""):
        super().__init__(detail or reason.description)
        self.reason = reason


@dataclass
class BoundModels:
    """Tool-bound runnables for each configured provider, in failover order."""
    primary: Runnable | None
    fallback: Runnable | None

    def candidates(self) -> list[tuple[str, Runnable]]:
        pairs = [("cerebras", self.primary), ("groq", self.fallback)]
        return [(name, model) for name, model in pairs if model is not None]


def _is_client_error(exc: Exception) -> bool:
    return isinstance(exc, HTTPStatusError) and 400 <= exc.response.status_code < 500


class LLMAdapter:
    """Wraps Cerebras + Groq with automatic failover."""

    def __init__(self):
        self.cerebras_key = os.environ.get("CEREBRAS_API_KEY", "")
        self.groq_key = os.environ.get("GROQ_API_KEY", "")

        self.cerebras_model_name = os.environ.get("CEREBRAS_MODEL", "gpt-oss-120b")
        self.groq_model_name = os.environ.get("GROQ_MODEL", "openai/gpt-oss-120b")

        self.max_tokens = int(os.environ.get("LLM_MAX_TOKENS", "2048"))
        self.timeout = int(os.environ.get("LLM_TIMEOUT", "30"))

        # Providers without a key stay None and are skipped by bind_tools.
        self.primary_llm: BaseChatModel | None = None
        if self.cerebras_key and self.cerebras_model_name:
            self.primary_llm = ChatCerebras(
                api_key=self.cerebras_key,
                model=self.cerebras_model_name,
                max_tokens=self.max_tokens,
                timeout=self.timeout,
            )

        self.fallback_llm: BaseChatModel | None = None
        if self.groq_key and self.groq_model_name:
            self.fallback_llm = ChatGroq(
                api_key=self.groq_key,
                model=self.groq_model_name,
                max_tokens=self.max_tokens,
                timeout=self.timeout,
            )

    def is_healthy(self) -> bool:
        """Check if at least one provider has a key configured.

        Returns:
            True if either Cerebras or Groq API key is set.
        """
        return bool(self.cerebras_key) or bool(self.groq_key)

    def availability(self) -> Availability:
        """Report whether a model can be reached, as a tagged variant."""
        if not self.is_healthy():
            return Unavailable(UnavailableReason.FEATURE_DISABLED)
        if self.primary_llm is None and self.fallback_llm is None:
            return Unavailable(UnavailableReason.ASSETS_NOT_READY)
        return Available()

    def bind_tools(self, tools: Sequence[BaseTool]) -> BoundModels:
        """Bind the tool schemas to every configured provider."""
        primary = self.primary_llm.bind_tools(list(tools)) if self.primary_llm else None
        fallback = self.fallback_llm.bind_tools(list(tools)) if self.fallback_llm else None
        return BoundModels(primary=primary, fallback=fallback)

    async def ainvoke_with_failover(
        self, models: BoundModels, messages: list[BaseMessage], **kwargs: Any
    ) -> AIMessage:
        """Try Cerebras first, fall back to Groq on timeout/5xx.

        Args:
            models: Tool-bound provider runnables.
            messages: List of LangChain message objects to send.
            **kwargs: Per-call generation parameters (e.g. temperature).

        Returns:
            AI response message from whichever provider succeeds.

        Raises:
            TransportError: If a provider returns a 4xx (no fallback attempted).
            ModelUnavailableError: If every provider fails.
        """
        candidates = models.candidates()
        if not candidates:
            raise ModelUnavailableError(UnavailableReason.FEATURE_DISABLED)

        last_error: Exception | None = None
        for provider, model in candidates:
            logger.debug("llm.invoke", provider=provider)
            try:
                response = await model.ainvoke(messages, **kwargs)
                logger.debug("llm.ok", provider=provider)
                return response
            except Exception as e:
                last_error = e
                self._handle_failure(provider, e)

        logger.error("llm.all_failed", error=str(last_error))
        raise ModelUnavailableError(
            UnavailableReason.UNKNOWN, f"All configured LLM providers failed: {last_error}"
        )

    async def astream_with_failover(
        self, models: BoundModels, messages: list[BaseMessage], **kwargs: Any
    ) -> AsyncIterator[AIMessageChunk]:
        """Stream delta chunks, failing over only before the first chunk.

        Raises:
            TransportError: On a 4xx, or if the stream breaks after output began.
            ModelUnavailableError: If every provider fails before streaming.
        """
        candidates = models.candidates()
        if not candidates:
            raise ModelUnavailableError(UnavailableReason.FEATURE_DISABLED)

        last_error: Exception | None = None
        for provider, model in candidates:
            logger.debug("llm.stream", provider=provider)
            started = False
            try:
                async for chunk in model.astream(messages, **kwargs):
                    started = True
                    yield chunk
                return
            except Exception as e:
                if started:
                    logger.error("llm.stream_broken", provider=provider, error=str(e))
                    raise TransportError(f"{provider} stream failed mid-response: {e}") from e
                last_error = e
                self._handle_failure(provider, e)

        logger.error("llm.all_failed", error=str(last_error))
        raise ModelUnavailableError(
            UnavailableReason.UNKNOWN, f"All configured LLM providers failed: {last_error}"
        )

    def _handle_failure(self, provider: str, exc: Exception) -> None:
        """Log a provider failure, raising TransportError for 4xx responses."""
        if _is_client_error(exc):
            status = exc.response.status_code
            logger.error("llm.4xx", provider=provider, status=status)
            raise TransportError(f"{provider} API rejected request ({status}): {exc}") from exc
        if isinstance(exc, HTTPStatusError):
            logger.warning("llm.5xx_fallback", provider=provider, status=exc.response.status_code)
        elif isinstance(exc, ReadTimeout):
            logger.warning("llm.timeout_fallback", provider=provider, threshold=self.timeout)
        else:
            logger.warning("llm.unknown_fallback", provider=provider, error=str(exc))
