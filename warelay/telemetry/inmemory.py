"""In-memory telemetry backend for testing and development."""

from __future__ import annotations

from collections import Counter, defaultdict
from dataclasses import dataclass, field


@dataclass
class InMemoryTelemetry:
    """Stores all metrics in memory for inspection during tests."""

    counters: dict[str, Counter] = field(default_factory=lambda: defaultdict(Counter))
    gauges: dict[str, float] = field(default_factory=dict)

    def incr(self, name: str, value: int = 1, labels: tuple[tuple[str, str], ...] = ()) -> None:
        """Increase a named counter."""
        key = self._make_key(name, labels)
        self.counters[key][name] += value

    def gauge(self, name: str, value: float, labels: tuple[tuple[str, str], ...] = ()) -> None:
        """Set a gauge value."""
        key = self._make_key(name, labels)
        self.gauges[key] = value

    def _make_key(self, name: str, labels: tuple[tuple[str, str], ...] | None) -> str:
        if not labels:
            return name
        label_str = ",".join(f"{k}={v}" for k, v in labels)
        return f"{name}{{{label_str}}}"

    # ── Test helpers ─────────────────────────────────────────────────────

    def get_counter(self, name: str, labels: tuple[tuple[str, str], ...] = ()) -> int:
        key = self._make_key(name, labels)
        return int(self.counters[key][name])

    def get_gauge(self, name: str, labels: tuple[tuple[str, str], ...] = ()) -> float | None:
        key = self._make_key(name, labels)
        return self.gauges.get(key)

    def reset(self) -> None:
        self.counters.clear()
        self.gauges.clear()
