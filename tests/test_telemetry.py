from warelay.telemetry import InMemoryTelemetry, NullTelemetry, PrometheusTelemetry, TelemetryPort


def test_backends_satisfy_port() -> None:
    for backend in (InMemoryTelemetry(), NullTelemetry(), PrometheusTelemetry()):
        assert isinstance(backend, TelemetryPort)


def test_inmemory_counters_and_gauges() -> None:
    telemetry = InMemoryTelemetry()
    telemetry.incr("messages_sent_total", labels=(("status", "success"),))
    telemetry.incr("messages_sent_total", 2, labels=(("status", "success"),))
    telemetry.gauge("socket_connections", 4)

    assert telemetry.get_counter("messages_sent_total", labels=(("status", "success"),)) == 3
    assert telemetry.get_counter("messages_sent_total", labels=(("status", "error"),)) == 0
    assert telemetry.get_gauge("socket_connections") == 4

    telemetry.reset()
    assert telemetry.get_gauge("socket_connections") is None


def test_prometheus_registries_are_independent() -> None:
    first = PrometheusTelemetry()
    second = PrometheusTelemetry()
    first.gauge("socket_connections", 2)
    first.incr("custom_total", labels=(("kind", "x"),))

    assert b"warelay_socket_connections 2.0" in first.render()
    assert b"warelay_socket_connections 0.0" in second.render()
    assert b'warelay_custom_total{kind="x"} 1.0' in first.render()


def test_disabled_prometheus_records_nothing() -> None:
    telemetry = PrometheusTelemetry(enabled=False)
    telemetry.incr("events_emitted_total", labels=(("event", "qr"), ("scope", "broadcast")))

    assert b"warelay_" not in telemetry.render()
