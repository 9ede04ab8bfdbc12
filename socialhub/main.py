"""
SocialHub — FastAPI Application Entry Point

Wires together:
  - TokenCipher, TokenStore, MessageBus and PlatformManager
  - All API routers (webhooks, messages, platforms, connections)
  - WebSocket endpoint for the live message feed
  - Database lifecycle (init on startup, close on shutdown)
  - CORS middleware
  - Request logging middleware
"""
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from socialhub.adapters.registry import PlatformManager
from socialhub.core.config import Settings, get_settings
from socialhub.core.message_bus import MessageBus
from socialhub.core.security import TokenCipher
from socialhub.core.token_store import TokenStore

# Import routers
from socialhub.api.connections import router as connections_router
from socialhub.api.messages import router as messages_router
from socialhub.api.platforms import router as platforms_router
from socialhub.api.webhooks import router as webhooks_router
from socialhub.api.websocket import router as ws_router, WebSocketManager

logger = logging.getLogger("socialhub")


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


# --- Lifespan ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    from socialhub.core.database import close_db, init_db

    settings: Settings = app.state.settings
    logger.info("Starting SocialHub API...")
    await init_db()
    logger.info("Database initialized")
    logger.info(f"Environment: {settings.APP_ENV}")
    logger.info(f"Enabled platforms: {', '.join(app.state.platform_manager.get_enabled_platforms()) or 'none'}")
    yield
    # Shutdown
    logger.info("Shutting down SocialHub API...")
    app.state.unsubscribe_ws()
    await close_db()
    logger.info("Shutdown complete")


def create_app(
    settings: Optional[Settings] = None,
    token_store: Optional[TokenStore] = None,
) -> FastAPI:
    """
    Build the application and its long-lived services.

    A missing or short TOKEN_ENCRYPTION_KEY fails here, before any request is
    served.
    """
    settings = settings or get_settings()

    if token_store is None:
        token_store = TokenStore(TokenCipher(settings.TOKEN_ENCRYPTION_KEY))

    message_bus = MessageBus(settings.MESSAGE_FEED_CAPACITY)
    platform_manager = PlatformManager(settings.platform_configs(), message_bus, token_store)
    ws_manager = WebSocketManager()

    app = FastAPI(
        title="SocialHub API",
        description="Unified messaging hub for social platforms",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.APP_ENV == "development" else None,
        redoc_url="/redoc" if settings.APP_ENV == "development" else None,
    )
    app.state.settings = settings
    app.state.token_store = token_store
    app.state.message_bus = message_bus
    app.state.platform_manager = platform_manager
    app.state.ws_manager = ws_manager
    app.state.unsubscribe_ws = message_bus.subscribe(ws_manager.on_message)

    # --- CORS ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            settings.FRONTEND_URL,
            "http://localhost:3000",
            "http://localhost:5173",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --- Request logging middleware ---
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all requests with timing."""
        start = time.time()
        response = await call_next(request)
        duration = round((time.time() - start) * 1000, 2)

        # Skip noisy health check logs
        if request.url.path != "/health":
            logger.info(
                f"{request.method} {request.url.path} "
                f"-> {response.status_code} ({duration}ms)"
            )
        return response

    # --- Global exception handler ---
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Catch-all exception handler to prevent 500 leaking stack traces."""
        logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    # --- Register routers ---
    app.include_router(webhooks_router)
    app.include_router(messages_router)
    app.include_router(platforms_router)
    app.include_router(connections_router)
    app.include_router(ws_router)

    # --- Health check ---
    @app.get("/health", tags=["system"])
    async def health_check():
        """Health check endpoint for monitoring."""
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "platforms": platform_manager.get_enabled_platforms(),
        }

    return app


def _build_default_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings)
    return create_app(settings)


app = _build_default_app()
