"""Base telemetry port protocol."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class TelemetryPort(Protocol):
    """Protocol for telemetry backends (Prometheus, in-memory, etc.).

    - Counters: Monotonically increasing values (emitted events, sends, retries)
    - Gauges: Point-in-time values (connected sockets)
    """

    def incr(self, name: str, value: int = 1, labels: tuple[tuple[str, str], ...] = ()) -> None:
        """Increase a named counter by ``value`` with optional labels.

        Args:
            name: Metric name (e.g., "events_emitted_total")
            value: Amount to increment (default 1)
            labels: Optional label tuples (e.g., (("event", "chats"),))
        """

    def gauge(self, name: str, value: float, labels: tuple[tuple[str, str], ...] = ()) -> None:
        """Set a gauge value.

        Args:
            name: Metric name (e.g., "socket_connections")
            value: Current value
            labels: Optional label tuples
        """


class NullTelemetry:
    """Telemetry sink that records nothing."""

    def incr(self, name: str, value: int = 1, labels: tuple[tuple[str, str], ...] = ()) -> None:
        return None

    def gauge(self, name: str, value: float, labels: tuple[tuple[str, str], ...] = ()) -> None:
        return None
