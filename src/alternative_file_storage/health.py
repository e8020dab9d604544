"""Health check endpoints for a process embedding the storage client."""

import json
import logging
import threading
from typing import Any, Callable

from prometheus_client import make_wsgi_app
from werkzeug.serving import make_server
from werkzeug.wrappers import Response

logger = logging.getLogger(__name__)

ReadinessCheck = Callable[[], bool]


def _json(payload: dict[str, Any], status: int) -> Response:
    return Response(json.dumps(payload, separators=(",", ":")), mimetype="application/json", status=status)


def create_combined_wsgi_app(readiness_check: ReadinessCheck | None = None) -> Any:
    """Create a WSGI app that combines metrics and health check endpoints.

    Args:
        readiness_check: Optional callable; ``/readyz`` reports 503 when it
            returns False or raises

    Returns:
        Combined WSGI application
    """
    metrics_app = make_wsgi_app()

    def combined_app(environ: dict[str, Any], start_response: Any) -> Any:
        """WSGI app that routes /healthz and /readyz, delegates the rest to prometheus."""
        path = environ.get("PATH_INFO", "")

        if path == "/healthz":
            return _json({"status": "ok"}, 200)(environ, start_response)
        if path == "/readyz":
            ready = True
            if readiness_check is not None:
                try:
                    ready = bool(readiness_check())
                except Exception as e:
                    logger.warning(f"Readiness check failed: {e}")
                    ready = False
            if ready:
                return _json({"status": "ready"}, 200)(environ, start_response)
            return _json({"status": "not ready"}, 503)(environ, start_response)
        return metrics_app(environ, start_response)

    return combined_app


def start_health_server(port: int, readiness_check: ReadinessCheck | None = None) -> Any:
    """Serve health and metrics endpoints on a daemon thread.

    Args:
        port: Port number to listen on
        readiness_check: Optional readiness callable for ``/readyz``

    Returns:
        The running werkzeug server
    """
    server = make_server("", port, create_combined_wsgi_app(readiness_check), threaded=True)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    logger.info(f"Health server listening on port {port}")
    return server
