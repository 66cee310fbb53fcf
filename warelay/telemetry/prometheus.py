"""Prometheus metrics backend for warelay observability.

Metrics live in a per-instance registry and are rendered by the HTTP
surface at ``/metrics``.

Usage:
    telemetry = PrometheusTelemetry()
    telemetry.incr("events_emitted_total", labels=(("event", "chats"),))
    body = telemetry.render()
"""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Gauge, generate_latest
from prometheus_client.exposition import CONTENT_TYPE_LATEST

METRIC_PREFIX = "warelay_"


class PrometheusTelemetry:
    """Prometheus-backed telemetry.

    Standard warelay metrics are registered up front; unknown names get an
    ad-hoc counter or gauge labelled with the keys of the first observation.
    """

    content_type = CONTENT_TYPE_LATEST

    def __init__(self, enabled: bool = True, registry: CollectorRegistry | None = None) -> None:
        self._enabled = enabled
        self.registry = registry or CollectorRegistry()
        self._metrics: dict[str, Counter | Gauge] = {}
        if enabled:
            self._register_standard_metrics()

    def _register_standard_metrics(self) -> None:
        """Register standard warelay metrics."""
        self._metrics["events_emitted_total"] = Counter(
            f"{METRIC_PREFIX}events_emitted_total",
            "Realtime events emitted to frontends",
            labelnames=["event", "scope"],  # scope=broadcast/direct
            registry=self.registry,
        )
        self._metrics["session_transitions_total"] = Counter(
            f"{METRIC_PREFIX}session_transitions_total",
            "Session phase transitions",
            labelnames=["phase"],
            registry=self.registry,
        )
        self._metrics["messages_sent_total"] = Counter(
            f"{METRIC_PREFIX}messages_sent_total",
            "Outgoing sends proxied to WhatsApp",
            labelnames=["status"],  # status=success/error
            registry=self.registry,
        )
        self._metrics["chat_fetch_retries_total"] = Counter(
            f"{METRIC_PREFIX}chat_fetch_retries_total",
            "Chat list fetch retries after transient failures",
            registry=self.registry,
        )
        self._metrics["media_downloads_total"] = Counter(
            f"{METRIC_PREFIX}media_downloads_total",
            "Media download attempts",
            labelnames=["status"],
            registry=self.registry,
        )
        self._metrics["socket_connections"] = Gauge(
            f"{METRIC_PREFIX}socket_connections",
            "Connected realtime clients",
            registry=self.registry,
        )

    @property
    def enabled(self) -> bool:
        return self._enabled

    def incr(self, name: str, value: int = 1, labels: tuple[tuple[str, str], ...] = ()) -> None:
        """Increase a named counter."""
        if not self._enabled:
            return

        metric = self._metrics.get(name)
        if metric is None:
            metric = Counter(
                f"{METRIC_PREFIX}{name}",
                f"Counter: {name}",
                labelnames=[k for k, _ in labels],
                registry=self.registry,
            )
            self._metrics[name] = metric

        if labels:
            metric.labels(**dict(labels)).inc(value)
        else:
            metric.inc(value)

    def gauge(self, name: str, value: float, labels: tuple[tuple[str, str], ...] = ()) -> None:
        """Set a gauge value."""
        if not self._enabled:
            return

        metric = self._metrics.get(name)
        if metric is None:
            metric = Gauge(
                f"{METRIC_PREFIX}{name}",
                f"Gauge: {name}",
                labelnames=[k for k, _ in labels],
                registry=self.registry,
            )
            self._metrics[name] = metric

        if labels:
            metric.labels(**dict(labels)).set(value)
        else:
            metric.set(value)

    def render(self) -> bytes:
        """Prometheus text exposition of this registry."""
        return generate_latest(self.registry)
