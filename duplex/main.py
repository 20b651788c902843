"""FastAPI application entry point.

duplex backend: turns an utterance (or typed message) plus conversation
history into a transcription, a reply and synthesized reply audio.
"""

from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware

from duplex import __version__
from duplex.api.dependencies import get_backend
from duplex.api.routes import exchange, health, metrics
from duplex.api.websocket.conversation_stream import conversation_stream_endpoint
from duplex.config import get_settings
from duplex.logging_config import get_logger, setup_logging
from duplex.services.backend import ConversationBackend

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler.

    Startup:
    - Initialize logging

    Shutdown:
    - Close provider clients
    """
    settings = get_settings()

    setup_logging(
        level=settings.log_level,
        enable_file=settings.is_production,
        role="server",
    )

    yield

    # Only close the backend if a request ever created it
    if get_backend.cache_info().currsize:
        await get_backend().close()
    logger.info("Backend shut down")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="duplex API",
        description="Turn-taking voice conversation backend",
        version=__version__,
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.debug else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Health check routes
    app.include_router(health.router, tags=["Health"])

    # Request/response conversation routes
    app.include_router(exchange.router, prefix="/api", tags=["Conversation"])

    # Metrics endpoint for Prometheus scraping
    app.include_router(metrics.router, tags=["Observability"])

    # WebSocket endpoint for streaming turns
    @app.websocket("/ws/conversation")
    async def conversation_ws(
        websocket: WebSocket,
        backend: ConversationBackend = Depends(get_backend),
    ):
        """Streaming conversation transport."""
        await conversation_stream_endpoint(websocket, backend)

    return app


# Application instance
app = create_app()
