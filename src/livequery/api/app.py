"""FastAPI application serving live query results to development clients."""

import json
import logging
import os
import typing as t
import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from livequery.api.connection_handler import ConnectionHandler
from livequery.api.exceptions import APIError
from livequery.api.routers import results_router
from livequery.api.websocket_manager import WebSocketManager
from livequery.manager import LiveQueryManager
from livequery.results.artifacts import DEFAULT_OUTPUT_DIR
from livequery.results.metadata import (
    BuildStateMetadataIndex,
    FileMetadataIndex,
    MetadataIndex,
)

logger = logging.getLogger(__name__)

APP_VERSION = "1.0.0"


def _env(name: str, default: str) -> str:
    return os.getenv(f"LIVEQUERY_{name}", default)


class ServerSettings(BaseModel):  # type: ignore[no-any-unimported]
    """Server configuration settings."""

    api_prefix: str = "/api/v1"
    debug: bool = Field(default_factory=lambda: _env("DEBUG", "false").lower() == "true")
    project_root: str = Field(default_factory=lambda: _env("PROJECT_ROOT", os.getcwd()))
    output_dir: str = Field(default_factory=lambda: _env("OUTPUT_DIR", DEFAULT_OUTPUT_DIR))
    metadata_file: str | None = Field(
        default_factory=lambda: os.getenv("LIVEQUERY_METADATA_FILE")
    )
    max_connections: int = Field(
        default_factory=lambda: int(_env("MAX_CONNECTIONS", "100")), ge=1
    )
    loader_workers: int = Field(
        default_factory=lambda: int(_env("LOADER_WORKERS", "4")), ge=1
    )
    page_delivery: t.Literal["broadcast", "room"] = Field(
        default_factory=lambda: _env("PAGE_DELIVERY", "broadcast")
    )
    allowed_origins: list[str] = Field(default_factory=lambda: ["*"])
    enable_cors: bool = True


def get_app_settings() -> ServerSettings:
    """Get application settings.

    Returns:
        ServerSettings instance
    """
    return ServerSettings()


def build_metadata_index(settings: ServerSettings) -> MetadataIndex:
    """Pick the metadata source configured in settings."""
    if settings.metadata_file:
        return FileMetadataIndex(settings.metadata_file)
    logger.warning("No metadata file configured; cached results will not be loaded")
    return BuildStateMetadataIndex()


def create_app(
    settings: ServerSettings | None = None, metadata: MetadataIndex | None = None
) -> t.Any:
    """Create and configure FastAPI application.

    Args:
        settings: Server settings, read from the environment when omitted
        metadata: Metadata index, built from settings when omitted

    Returns:
        Configured FastAPI application
    """
    settings = settings or get_app_settings()
    started_at = datetime.now()

    ws_manager = WebSocketManager(max_connections=settings.max_connections)
    live_manager = LiveQueryManager(
        metadata if metadata is not None else build_metadata_index(settings),
        output_dir=settings.output_dir,
        loader_workers=settings.loader_workers,
        page_delivery=settings.page_delivery,
    )

    @asynccontextmanager
    async def lifespan(app: t.Any) -> AsyncGenerator[None, None]:  # noqa: ARG001
        """Initialize the live query manager for the lifetime of the app."""
        logger.info("Starting live query server...")
        logger.info(f"Project root: {settings.project_root}")
        await live_manager.initialize(ws_manager, settings.project_root)
        yield
        logger.info("Shutting down live query server...")
        await live_manager.shutdown()

    app = FastAPI(
        title="Live Query Server",
        version=APP_VERSION,
        description="Pushes page and static query results to development clients",
        lifespan=lifespan,
        debug=settings.debug,
    )
    app.state.settings = settings
    app.state.ws_manager = ws_manager
    app.state.live_manager = live_manager

    if settings.enable_cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.allowed_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.exception_handler(APIError)
    async def api_error_handler(request: t.Any, exc: t.Any) -> t.Any:  # noqa: ARG001
        """Handle API errors."""
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=exc.headers,
        )

    @app.get("/health")
    async def health_check() -> dict[str, t.Any]:
        """Health check endpoint."""
        uptime = (datetime.now() - started_at).total_seconds()
        return {
            "status": "healthy",
            "version": APP_VERSION,
            "uptime": uptime,
            "initialized": live_manager.is_initialized,
        }

    @app.get(f"{settings.api_prefix}/info")
    async def api_info() -> dict[str, t.Any]:
        """Get server information."""
        return {
            "name": "Live Query Server",
            "version": APP_VERSION,
            "page_delivery": live_manager.page_delivery.value,
            **live_manager.stats(),
        }

    @app.websocket("/ws/{client_id}")
    async def ws_endpoint(websocket: WebSocket, client_id: str) -> None:
        accepted = await ws_manager.connect(websocket, client_id=client_id)
        if not accepted:
            return

        handler = ConnectionHandler(live_manager, client_id)
        try:
            await handler.on_connect()
            while True:
                raw = await websocket.receive_text()
                try:
                    msg = json.loads(raw)
                except ValueError:
                    logger.warning(f"Malformed frame from {client_id}: {raw[:100]!r}")
                    msg = raw
                await handler.handle_message(msg)
        except WebSocketDisconnect:
            pass
        except RuntimeError as e:
            logger.warning(f"Closing {client_id}: {e}")
        finally:
            await handler.on_disconnect()

    @app.websocket("/ws")
    async def ws_anonymous(websocket: WebSocket) -> None:
        await ws_endpoint(websocket, client_id=uuid.uuid4().hex)

    app.include_router(
        results_router.router,
        prefix=settings.api_prefix,
        tags=["results"],
    )

    return app
