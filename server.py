"""Runs the HTTP API in a background thread of the current process.

The console keeps the foreground; the server shares the same ``Library``
instance and its lock.
"""

import logging
import threading
import time
from typing import Optional

import uvicorn

from api import create_app
from config import settings
from library import Library

logger = logging.getLogger(__name__)


class LibraryServer:
    """Start/stop wrapper around a uvicorn server on a daemon thread."""

    def __init__(self, library: Library, host: Optional[str] = None, port: Optional[int] = None,
                 log_level: str = "warning") -> None:
        self.host = host if host is not None else settings.api_host
        self.port = int(port if port is not None else settings.api_port)
        self.app = create_app(library)
        self._config = uvicorn.Config(self.app, host=self.host, port=self.port, log_level=log_level)
        self._server: Optional[uvicorn.Server] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, wait: float = 5.0) -> None:
        if self.running:
            return
        self._server = uvicorn.Server(self._config)
        self._thread = threading.Thread(target=self._server.run, name="library-http", daemon=True)
        self._thread.start()

        # wait until the listener is bound so callers can report a live URL
        deadline = time.monotonic() + wait
        while not self._server.started and self._thread.is_alive() and time.monotonic() < deadline:
            time.sleep(0.05)
        if not self._thread.is_alive():
            raise RuntimeError(f"HTTP server failed to start on {self.url}")
        logger.info("Server running on %s", self.url)

    def stop(self, timeout: float = 10.0) -> None:
        """Ask the server to exit; in-flight requests are allowed to finish."""
        if self._server is None or self._thread is None:
            return
        self._server.should_exit = True
        self._thread.join(timeout)
        if self._thread.is_alive():
            logger.warning("Server thread did not stop within %.1fs", timeout)
        else:
            logger.info("Server on %s stopped", self.url)
        self._server = None
        self._thread = None

    def __enter__(self) -> "LibraryServer":
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()
