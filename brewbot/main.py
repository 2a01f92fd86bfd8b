"""FastAPI application entry point.

Startup sequence: load menu → build cart + tools → init LLM → create controller → init DB.
"""

import os
from contextlib import asynccontextmanager

import structlog
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from brewbot.agent.controller import DEFAULT_MAX_TOOL_ROUNDS, ChatController
from brewbot.agent.session_manager import GenerationConfig
from brewbot.agent.tools import ToolRegistry, build_tools
from brewbot.api.routes import router
from brewbot.core.cart_store import CartStore
from brewbot.core.database import init_db
from brewbot.core.llm_adapter import LLMAdapter
from brewbot.core.model_runtime import LangChainRuntime
from brewbot.data.loader import load_catalog

load_dotenv()

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("startup.begin")

    # Menu and cart
    catalog = load_catalog(os.environ.get("MENU_PATH") or None)
    cart = CartStore(catalog)
    app.state.catalog = catalog
    app.state.cart = cart
    logger.info("startup.menu_loaded", items=len(catalog), store=catalog.store_name)

    registry = ToolRegistry(build_tools(catalog, cart))

    # Initialize LLM adapter; a missing key is reported per turn, not fatal here
    llm_adapter = LLMAdapter()
    app.state.llm_adapter = llm_adapter
    if not llm_adapter.is_healthy():
        logger.warning("startup.llm_unconfigured", hint="Set CEREBRAS_API_KEY or GROQ_API_KEY in .env")
    logger.info("startup.llm_initialized", healthy=llm_adapter.is_healthy())

    app.state.controller = ChatController(
        LangChainRuntime(llm_adapter),
        registry,
        cart,
        config=GenerationConfig.from_env(),
        max_tool_rounds=int(os.environ.get("MAX_TOOL_ROUNDS", str(DEFAULT_MAX_TOOL_ROUNDS))),
    )
    logger.info("startup.controller_created", tools=registry.names)

    # Initialize SQLite database
    init_db()
    logger.info("startup.db_initialized")

    logger.info("startup.complete")
    yield
    app.state.controller.cancel_active()
    logger.info("shutdown.complete")


app = FastAPI(
    title="Brewbot API",
    description="Coffee ordering assistant with a tool-calling LLM",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS for browser clients
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)
