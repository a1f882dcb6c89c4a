"""FastAPI application entry point."""

import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from chat_relay.config import get_settings
from chat_relay.llm.chat.controller import get_session_controller, reset_session_controller
from chat_relay.llm.chat.store import init_conversation_store, shutdown_conversation_store
from chat_relay.llm.gemini_client import gemini_available

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stdout,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup and shutdown."""
    # Startup
    await init_conversation_store()
    get_session_controller()
    logger.info("Chat relay ready")

    yield

    # Shutdown
    await shutdown_conversation_store()
    reset_session_controller()


app = FastAPI(
    title="Chat Relay",
    description="Relay chat prompts to Gemini and stream formatted replies back over a socket",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware - any origin may connect
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint.

    The relay stays up without a provider key; prompts then get the error reply.
    """
    return {
        "status": "healthy",
        "provider": "configured" if gemini_available() else "missing",
    }


# Import and include routers after app is created to avoid circular imports
from chat_relay.api import chat  # noqa: E402

app.include_router(chat.router, tags=["chat"])


def run() -> None:
    """Serve the relay on the configured host and port."""
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
