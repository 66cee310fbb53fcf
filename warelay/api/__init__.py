"""HTTP surface for warelay.

- /health - Health check and session readiness
- /socket-info - Socket.IO connection hints
- /media-test - Media capabilities
- /metrics - Prometheus metrics (if enabled)
"""

from __future__ import annotations

__all__ = ["create_app", "create_asgi_app", "run_server"]

from warelay.api.server import create_app, create_asgi_app, run_server
