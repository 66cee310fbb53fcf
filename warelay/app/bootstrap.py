"""Application bootstrap and runtime wiring for the relay."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from loguru import logger

from warelay.api.server import create_app, create_asgi_app, run_server
from warelay.relay.gateway import RealtimeGateway, SocketBroadcaster
from warelay.session.bridge import BridgeSessionAdapter
from warelay.session.controller import SessionController
from warelay.session.ports import AdapterFactory, SessionOptions
from warelay.session.store import SessionStore
from warelay.telemetry import PrometheusTelemetry

if TYPE_CHECKING:
    import socketio
    from fastapi import FastAPI

    from warelay.config.schema import Config
    from warelay.telemetry.base import TelemetryPort


@dataclass
class RelayRuntime:
    """Composed relay: Socket.IO server, session controller, gateway and HTTP app."""

    config: Config
    sio: socketio.AsyncServer
    controller: SessionController
    gateway: RealtimeGateway
    telemetry: TelemetryPort
    http_app: FastAPI
    asgi_app: Any

    def run(self) -> None:
        run_server(
            self.asgi_app,
            host=self.config.server.host,
            port=self.config.server.port,
            log_level=self.config.log_level,
        )


def bridge_adapter_factory(config: Config) -> AdapterFactory:
    def factory(options: SessionOptions) -> BridgeSessionAdapter:
        return BridgeSessionAdapter(config.bridge, options)

    return factory


def build_runtime(
    config: Config,
    *,
    adapter_factory: AdapterFactory | None = None,
    telemetry: TelemetryPort | None = None,
    autostart: bool = True,
) -> RelayRuntime:
    """Compose the relay around one process-wide session controller."""
    import socketio

    origins = config.server.resolved_allowed_origins
    sio = socketio.AsyncServer(
        async_mode="asgi",
        cors_allowed_origins=origins,
        cors_credentials=True,
        max_http_buffer_size=config.bridge.max_payload_bytes,
        always_connect=True,
        logger=False,
        engineio_logger=False,
    )

    telemetry = telemetry or PrometheusTelemetry(enabled=config.telemetry.enabled)
    broadcaster = SocketBroadcaster(sio)
    store = SessionStore(config.session.auth_path)

    controller = SessionController(
        config.session,
        store,
        broadcaster,
        adapter_factory or bridge_adapter_factory(config),
        formatter_config=config.formatter,
        telemetry=telemetry,
    )
    gateway = RealtimeGateway(controller, broadcaster, telemetry)
    gateway.register(sio)

    http_app = create_app(config, controller, gateway, telemetry, autostart=autostart)
    asgi_app = create_asgi_app(sio, http_app)

    logger.debug(f"Relay composed; allowed origins: {', '.join(origins) or '(none)'}")
    return RelayRuntime(
        config=config,
        sio=sio,
        controller=controller,
        gateway=gateway,
        telemetry=telemetry,
        http_app=http_app,
        asgi_app=asgi_app,
    )
