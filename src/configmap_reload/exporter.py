"""HTTP endpoint that serves the reloader's Prometheus metrics."""
from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Iterable, Optional, Tuple
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server

from prometheus_client import CollectorRegistry, make_wsgi_app

logger = logging.getLogger(__name__)

_INDEX_TEMPLATE = """<html>
<head><title>ConfigMap Reload Metrics</title></head>
<body>
<h1>ConfigMap Reload</h1>
<p><a href='{path}'>Metrics</a></p>
</body>
</html>
"""


def parse_listen_address(address: str) -> Tuple[str, int]:
    """Split ``host:port``; an empty host means every interface."""

    host, _, port = address.rpartition(":")
    host = host.strip("[]") or "0.0.0.0"
    try:
        return host, int(port)
    except ValueError as exc:
        raise ValueError(f"invalid listen address {address!r}") from exc


def make_app(registry: CollectorRegistry, telemetry_path: str = "/metrics") -> Callable[..., Iterable[bytes]]:
    """WSGI app serving metrics at *telemetry_path* and an index elsewhere."""

    metrics_app = make_wsgi_app(registry)
    index = _INDEX_TEMPLATE.format(path=telemetry_path).encode("utf-8")

    def app(environ: dict, start_response: Callable[..., Any]) -> Iterable[bytes]:
        if environ.get("PATH_INFO") == telemetry_path:
            return metrics_app(environ, start_response)
        start_response("200 OK", [("Content-Type", "text/html; charset=utf-8"), ("Content-Length", str(len(index)))])
        return [index]

    return app


class _QuietHandler(WSGIRequestHandler):
    def log_message(self, format: str, *args: Any) -> None:
        logger.debug("%s - %s", self.address_string(), format % args)


class MetricsServer:
    """Runs the metrics WSGI app in a background thread."""

    def __init__(self, registry: CollectorRegistry, *, listen_address: str = ":9533", telemetry_path: str = "/metrics"):
        self._app = make_app(registry, telemetry_path)
        self._host, self._port = parse_listen_address(listen_address)
        self._telemetry_path = telemetry_path
        self._server: Optional[WSGIServer] = None
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        self._server = make_server(self._host, self._port, self._app, handler_class=_QuietHandler)
        self._thread = threading.Thread(target=self._server.serve_forever, name="metrics-server", daemon=True)
        self._thread.start()
        logger.info("Serving metrics on %s:%s%s", self._host, self._server.server_port, self._telemetry_path)

    def stop(self) -> None:
        if self._server is None:
            return
        self._server.shutdown()
        self._server.server_close()
        if self._thread is not None:
            self._thread.join()
        self._server = None
        self._thread = None
