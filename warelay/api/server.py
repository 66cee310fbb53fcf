"""FastAPI HTTP surface for warelay.

Endpoints:
- GET /health - Liveness plus session readiness and connection count
- GET /socket-info - Where and how frontends should connect
- GET /media-test - Supported media types and features
- GET /metrics - Prometheus metrics

The Socket.IO server wraps this app so both share one ASGI entry point.
"""

from __future__ import annotations

import asyncio
import contextlib
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from fastapi import Request
from loguru import logger

from warelay import __version__
from warelay.utils.helpers import utc_timestamp

if TYPE_CHECKING:
    import socketio
    from fastapi import FastAPI

    from warelay.config.schema import Config
    from warelay.relay.gateway import RealtimeGateway
    from warelay.session.controller import SessionController
    from warelay.telemetry.base import TelemetryPort

CORS_METHODS = ["GET", "POST", "PUT", "DELETE", "OPTIONS"]
CORS_HEADERS = ["Content-Type", "Authorization"]
SUPPORTED_MEDIA_TYPES = ["image", "video", "audio", "document"]
MEDIA_FEATURES = ["download", "send", "display"]


def create_app(
    config: Config,
    controller: SessionController,
    gateway: RealtimeGateway,
    telemetry: TelemetryPort | None = None,
    *,
    autostart: bool = True,
) -> "FastAPI":
    """Create the FastAPI application.

    Args:
        config: warelay configuration
        controller: Session controller started and stopped with the app lifespan
        gateway: Realtime gateway, used for connection counts
        telemetry: Optional telemetry backend rendered at /metrics
        autostart: Start the WhatsApp session when the app starts

    Returns:
        FastAPI application instance
    """
    from fastapi import FastAPI, Request, Response
    from fastapi.middleware.cors import CORSMiddleware

    allowed_origins = config.server.resolved_allowed_origins

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        startup: asyncio.Task[None] | None = None
        if autostart:
            logger.info("Starting WhatsApp session")
            startup = asyncio.create_task(controller.ensure_initialized())
        logger.info(f"warelay listening on http://{config.server.host}:{config.server.port}")
        yield
        logger.info("warelay shutting down")
        if startup is not None and not startup.done():
            startup.cancel()
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await startup
        await controller.shutdown()

    app = FastAPI(
        title="warelay",
        description="WhatsApp Web session relay for Socket.IO frontends",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=CORS_METHODS,
        allow_headers=CORS_HEADERS,
    )

    @app.get("/health", tags=["health"])
    async def health_check() -> dict[str, Any]:
        """Health check endpoint."""
        return {
            "status": "ok",
            "timestamp": utc_timestamp(),
            "socketConnections": gateway.connection_count,
            "whatsappStatus": "ready" if controller.is_ready else "not_ready",
        }

    @app.get("/socket-info", tags=["realtime"])
    async def socket_info(request: Request) -> dict[str, Any]:
        """Socket.IO connection hints for frontends."""
        host = request.headers.get("host") or f"{config.server.host}:{config.server.port}"
        return {
            "socketUrl": f"ws://{host}",
            "allowedOrigins": allowed_origins,
            "corsEnabled": True,
        }

    @app.get("/media-test", tags=["media"])
    async def media_test() -> dict[str, Any]:
        return {
            "message": "Media handling is enabled",
            "supportedTypes": SUPPORTED_MEDIA_TYPES,
            "features": MEDIA_FEATURES,
        }

    @app.get("/metrics", tags=["metrics"])
    async def get_metrics() -> Response:
        """Get Prometheus metrics."""
        from warelay.telemetry.prometheus import PrometheusTelemetry

        if isinstance(telemetry, PrometheusTelemetry) and telemetry.enabled:
            return Response(content=telemetry.render(), media_type=telemetry.content_type)

        return Response(
            content="# Prometheus metrics disabled\n",
            media_type="text/plain; version=0.0.4; charset=utf-8",
        )

    return app


def create_asgi_app(sio: "socketio.AsyncServer", app: "FastAPI") -> Any:
    """Mount the Socket.IO server in front of the FastAPI app.

    Lifespan events are forwarded to the FastAPI app.
    """
    import socketio

    return socketio.ASGIApp(sio, other_asgi_app=app)


def run_server(asgi_app: Any, host: str, port: int, log_level: str = "info") -> None:
    """Run the combined ASGI app until interrupted.

    This is a blocking call; SIGINT/SIGTERM trigger a lifespan shutdown.
    """
    import uvicorn

    uvicorn.run(asgi_app, host=host, port=port, log_level=log_level.lower())
