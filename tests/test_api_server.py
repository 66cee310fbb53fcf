from pathlib import Path

import pytest
from conftest import AdapterFactory
from fastapi.testclient import TestClient

from warelay.app.bootstrap import RelayRuntime, build_runtime
from warelay.config.schema import Config
from warelay.relay import events
from warelay.telemetry import PrometheusTelemetry


@pytest.fixture
def runtime(tmp_path: Path) -> RelayRuntime:
    config = Config()
    config.session.auth_dir = str(tmp_path / "auth")
    config.server.frontend_origin = "https://app.example.com"
    return build_runtime(
        config,
        adapter_factory=AdapterFactory(),
        telemetry=PrometheusTelemetry(),
        autostart=False,
    )


def test_health_reports_session_and_connections(runtime: RelayRuntime) -> None:
    client = TestClient(runtime.http_app)

    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["whatsappStatus"] == "not_ready"
    assert body["socketConnections"] == 0
    assert body["timestamp"].endswith("+00:00")


def test_socket_info_echoes_host_and_origins(runtime: RelayRuntime) -> None:
    client = TestClient(runtime.http_app)

    body = client.get("/socket-info", headers={"host": "relay.local:3001"}).json()

    assert body["socketUrl"] == "ws://relay.local:3001"
    assert body["allowedOrigins"][0] == "https://app.example.com"
    assert "http://localhost:5173" in body["allowedOrigins"]
    assert body["corsEnabled"] is True


def test_media_test_lists_capabilities(runtime: RelayRuntime) -> None:
    body = TestClient(runtime.http_app).get("/media-test").json()

    assert body["supportedTypes"] == ["image", "video", "audio", "document"]
    assert body["features"] == ["download", "send", "display"]


def test_cors_allows_only_configured_origins(runtime: RelayRuntime) -> None:
    client = TestClient(runtime.http_app)

    allowed = client.get("/health", headers={"Origin": "https://app.example.com"})
    denied = client.get("/health", headers={"Origin": "https://evil.example.com"})

    assert allowed.headers["access-control-allow-origin"] == "https://app.example.com"
    assert allowed.headers["access-control-allow-credentials"] == "true"
    assert "access-control-allow-origin" not in denied.headers


def test_metrics_expose_relay_counters(runtime: RelayRuntime) -> None:
    runtime.telemetry.incr("events_emitted_total", labels=(("event", events.STATUS), ("scope", "broadcast")))

    response = TestClient(runtime.http_app).get("/metrics")

    assert response.status_code == 200
    assert 'warelay_events_emitted_total{event="status",scope="broadcast"} 1.0' in response.text


def test_lifespan_shutdown_stops_controller(runtime: RelayRuntime) -> None:
    with TestClient(runtime.http_app) as client:
        assert client.get("/health").status_code == 200

    assert runtime.controller.adapter is None
    assert runtime.controller.state.is_ready is False


def test_gateway_handlers_registered_on_socket_server(runtime: RelayRuntime) -> None:
    handlers = runtime.sio.handlers["/"]

    for event in (events.GET_CHATS, events.SEND_MESSAGE, events.LOGOUT, "connect", "disconnect"):
        assert event in handlers


def test_socket_server_accepts_connection_before_handlers_run(runtime: RelayRuntime) -> None:
    assert runtime.sio.always_connect is True
