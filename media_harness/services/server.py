"""
Runs the content endpoints with uvicorn in a background thread so the
scenario can drive browsers from the calling thread.
"""

import logging
import time
from threading import Thread
from typing import Optional

from uvicorn import Config, Server

from media_harness.config import HarnessSettings
from media_harness.errors import SetupFailure
from media_harness.main import create_app
from media_harness.services.content_runtime import ContentRuntime

logger = logging.getLogger(__name__)


class HarnessServer:
    def __init__(self, settings: HarnessSettings, runtime: ContentRuntime):
        self.settings = settings
        self.runtime = runtime
        self.app = create_app(settings, runtime)
        self._server: Optional[Server] = None
        self._thread: Optional[Thread] = None

    @property
    def base_url(self) -> str:
        return self.settings.base_url

    def start(self, timeout: float = 10.0) -> None:
        if self._thread is not None:
            return

        config = Config(self.app, host=self.settings.host, port=self.settings.port, log_level="warning")
        server = Server(config)
        self._server = server

        def _run_server() -> None:
            try:
                server.run()
            except Exception as e:
                logger.error(f"Harness HTTP server stopped: {e}")

        self._thread = Thread(target=_run_server, name="media-harness-http", daemon=True)
        self._thread.start()

        deadline = time.monotonic() + timeout
        while not self._server.started:
            if not self._thread.is_alive() or time.monotonic() > deadline:
                self.stop()
                raise SetupFailure("server", f"HTTP server did not start on {self.base_url}")
            time.sleep(0.05)
        logger.info(f"Harness HTTP server listening on {self.base_url}")

    def stop(self, timeout: float = 10.0) -> None:
        if self._server is None:
            return
        self._server.should_exit = True
        if self._thread is not None:
            self._thread.join(timeout)
        self._server = None
        self._thread = None
        logger.info("Harness HTTP server stopped")

    def __enter__(self) -> "HarnessServer":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
