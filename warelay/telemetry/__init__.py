"""Telemetry backends for warelay observability.

Provides in-memory (for testing) and Prometheus (for production) backends.
"""

from warelay.telemetry.base import NullTelemetry, TelemetryPort
from warelay.telemetry.inmemory import InMemoryTelemetry
from warelay.telemetry.prometheus import PrometheusTelemetry

__all__ = [
    "TelemetryPort",
    "NullTelemetry",
    "InMemoryTelemetry",
    "PrometheusTelemetry",
]
