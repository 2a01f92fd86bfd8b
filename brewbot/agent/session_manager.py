"""Session lifecycle: one live model session bound to the current settings.

A session is created lazily on the first submit and reused as long as the
GenerationConfig it was built from is unchanged. Any settings change or a
conversation reset drops it; the next submit builds a fresh one.
"""

import os

import structlog
from pydantic import BaseModel, ConfigDict, Field

from brewbot.agent.prompts import DEFAULT_INSTRUCTIONS
from brewbot.agent.tools import ToolRegistry
from brewbot.core.model_runtime import GenerationOptions, ModelRuntime, ModelSession

logger = structlog.get_logger(__name__)


class GenerationConfig(BaseModel):
    """User-adjustable generation settings."""
    model_config = ConfigDict(frozen=True)

    streaming: bool = True
    temperature: float = Field(0.7, ge=0.0, le=2.0)
    instructions: str = Field(DEFAULT_INSTRUCTIONS, min_length=1)

    @classmethod
    def from_env(cls) -> "GenerationConfig":
        """Defaults overridden by LLM_STREAMING, LLM_TEMPERATURE and SYSTEM_INSTRUCTIONS."""
        return cls(
            streaming=os.environ.get("LLM_STREAMING", "true").lower() in ("1", "true", "yes", "on"),
            temperature=float(os.environ.get("LLM_TEMPERATURE", "0.7")),
            instructions=os.environ.get("SYSTEM_INSTRUCTIONS") or DEFAULT_INSTRUCTIONS,
        )

    def options(self) -> GenerationOptions:
        return GenerationOptions(temperature=self.temperature)


class SessionManager:
    """Holds at most one live ModelSession."""

    def __init__(self, runtime: ModelRuntime, registry: ToolRegistry):
        self.runtime = runtime
        self.registry = registry
        self._session: ModelSession | None = None
        self._config: GenerationConfig | None = None

    @property
    def current(self) -> ModelSession | None:
        return self._session

    def ensure(self, config: GenerationConfig) -> ModelSession:
        """Return the live session, creating a new one if `config` changed."""
        if self._session is not None and self._config == config:
            return self._session

        if self._session is not None:
            logger.info("session.config_changed", old_session_id=self._session.session_id)

        self._session = self.runtime.create_session(config.instructions, self.registry.descriptors())
        self._config = config
        logger.info("session.created", session_id=self._session.session_id,
                    temperature=config.temperature, streaming=config.streaming)
        return self._session

    def invalidate(self) -> None:
        """Drop the held session. Callers must cancel in-flight generation first."""
        if self._session is not None:
            logger.info("session.invalidated", session_id=self._session.session_id)
        self._session = None
        self._config = None
