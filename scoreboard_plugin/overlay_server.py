"""Static HTTP server that serves the resources folder to the browser source."""
from __future__ import annotations

import functools
import http.server
import json
import logging
import threading
from pathlib import Path
from typing import Optional, Union

from .lifecycle import LifecycleTracker
from .state import DEFAULT_SERVER_PORT

LOGGER = logging.getLogger("FlyScore.server")

HEALTH_PATH = "/health"
SERVICE_NAME = "fly-score"


class _QuietThreadingServer(http.server.ThreadingHTTPServer):
    daemon_threads = True
    # A second instance must fail to bind instead of sharing the port.
    allow_reuse_port = False

    def handle_error(self, request, client_address) -> None:
        LOGGER.debug("Overlay request from %s failed", client_address, exc_info=True)


class OverlayRequestHandler(http.server.SimpleHTTPRequestHandler):
    """Serves files from the docroot with caching disabled, plus ``/health``."""

    def end_headers(self) -> None:
        self.send_header("Cache-Control", "no-cache, no-store, must-revalidate")
        self.send_header("Pragma", "no-cache")
        self.send_header("Expires", "0")
        super().end_headers()

    def do_GET(self) -> None:
        if self.path.split("?", 1)[0] == HEALTH_PATH:
            body = json.dumps({"status": "ok", "service": SERVICE_NAME, "docroot": self.directory}).encode("utf-8")
            self.send_response(200)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)
            return
        super().do_GET()

    def log_message(self, format: str, *args) -> None:
        LOGGER.debug("%s - %s", self.address_string(), format % args)


class OverlayHttpServer:
    def __init__(
        self,
        docroot: Union[str, Path],
        host: str = "127.0.0.1",
        port: int = DEFAULT_SERVER_PORT,
        *,
        lifecycle: Optional[LifecycleTracker] = None,
    ) -> None:
        self.docroot = Path(docroot)
        self.host = host
        self.port = int(port)
        self._lifecycle = lifecycle or LifecycleTracker(LOGGER)
        self._httpd: Optional[_QuietThreadingServer] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def bound_port(self) -> Optional[int]:
        if self._httpd is None:
            return None
        return int(self._httpd.server_address[1])

    def url_for(self, relative: str = "") -> str:
        port = self.bound_port or self.port
        return f"http://{self.host}:{port}/{relative.lstrip('/')}"

    def start(self) -> bool:
        """Bind and serve on a daemon thread; returns ``False`` when the port is unavailable."""
        if self.running:
            return True
        try:
            self.docroot.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            LOGGER.warning("Cannot create overlay docroot %s: %s", self.docroot, exc)
            return False
        handler = functools.partial(OverlayRequestHandler, directory=str(self.docroot))
        try:
            httpd = _QuietThreadingServer((self.host, self.port), handler)
        except OSError as exc:
            LOGGER.warning("Overlay server could not bind %s:%d: %s", self.host, self.port, exc)
            return False
        self._httpd = httpd
        thread = threading.Thread(target=httpd.serve_forever, name="FlyScore-OverlayServer", daemon=True)
        self._thread = thread
        self._lifecycle.track_thread(thread)
        self._lifecycle.track_handle(httpd)
        thread.start()
        LOGGER.info("Overlay server listening on %s serving %s", self.url_for(), self.docroot)
        return True

    def stop(self) -> None:
        httpd, thread = self._httpd, self._thread
        self._httpd = None
        self._thread = None
        if httpd is not None:
            httpd.shutdown()
            httpd.server_close()
            self._lifecycle.untrack_handle(httpd)
        if thread is not None:
            self._lifecycle.join_thread(thread, thread.name)
            LOGGER.info("Overlay server stopped")

    def restart(self, docroot: Optional[Union[str, Path]] = None, port: Optional[int] = None) -> bool:
        self.stop()
        if docroot is not None:
            self.docroot = Path(docroot)
        if port is not None:
            self.port = int(port)
        return self.start()
