"""
Browser-driven client for one content session.
"""

import logging
from enum import Enum
from typing import Optional

from media_harness.services.artifact_validator import Color, color_distance
from media_harness.services.browser_backend import BrowserBackend
from media_harness.services.sync import EventWaiter

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0  # seconds


class ClientKind(Enum):
    WEBRTC = "WEBRTC"
    PLAYER = "PLAYER"


class BrowserSessionClient:
    """
    Drives one page of a BrowserBackend through a content session.

    The page is acquired on construction and released on exit, so use it as a
    context manager:

        with BrowserSessionClient(backend, base_url, ClientKind.WEBRTC) as browser:
            browser.set_target("/webrtcRecorder")
            browser.subscribe("playing")
            browser.start()
            assert browser.wait_for_event("playing")

    `stop()` ends the remote session but does not wait for the server to
    report termination; callers wait on the session's termination latch.
    """

    def __init__(
        self,
        backend: BrowserBackend,
        base_url: str,
        client: ClientKind = ClientKind.WEBRTC,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.backend = backend
        self.base_url = base_url.rstrip("/")
        self.client = client
        self.timeout = timeout
        self.target: Optional[str] = None
        self.waiter = EventWaiter()
        self._session_id: Optional[str] = None
        self._started = False
        self._stopped = False
        self._closed = False
        self._context, self._page = backend.call(backend.open_page(self.waiter.notify), timeout)

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    def set_target(self, path: str) -> None:
        self.target = "/" + path.strip("/")

    def subscribe(self, *event_names: str) -> None:
        self.waiter.subscribe(*event_names)
        if self._started:
            self._evaluate("names => harness.subscribe(names)", list(event_names))

    def start(self) -> None:
        if self.target is None:
            raise RuntimeError("No target path set for the browser client")
        if self._started:
            raise RuntimeError("Browser client already started")

        url = f"{self.base_url}/?client={self.client.value}"
        logger.info(f"Opening {url} for {self.target}")
        self.backend.call(self._page.goto(url), self.timeout)
        self._evaluate("names => harness.subscribe(names)", sorted(self.waiter.subscribed))
        self._started = True
        self._session_id = self._evaluate(
            "([path, client]) => harness.start(path, client)", [self.target, self.client.value]
        )
        logger.info(f"Browser session {self._session_id} started on {self.target}")

    def wait_for_event(self, event_name: str, timeout: Optional[float] = None) -> bool:
        return self.waiter.wait(event_name, self.timeout if timeout is None else timeout)

    def current_playback_position(self) -> float:
        """Playback position of the page's video element, in seconds."""
        return float(self._evaluate("() => harness.currentTime()"))

    def sample_color(self) -> Optional[Color]:
        """RGB of the centre pixel of the rendered video, None when no frame is shown."""
        pixel = self._evaluate("() => harness.sampleColor()")
        if pixel is None:
            return None
        return int(pixel[0]), int(pixel[1]), int(pixel[2])

    def color_similar_to(self, expected: Color, threshold: float) -> bool:
        observed = self.sample_color()
        return observed is not None and color_distance(observed, expected) <= threshold

    def stop(self) -> None:
        """Ask the page to end its session. Safe to call more than once."""
        if self._stopped or not self._started:
            self._stopped = True
            return
        self._stopped = True
        try:
            self._evaluate("() => harness.stop()")
        except Exception as e:
            logger.error(f"Error stopping browser session {self._session_id}: {e}")

    def close(self) -> None:
        if self._closed:
            return
        try:
            self.stop()
        finally:
            self._closed = True
            try:
                self.backend.call(self._context.close(), self.timeout)
            except Exception as e:
                logger.error(f"Error closing browser page: {e}")

    def _evaluate(self, expression: str, arg=None):
        return self.backend.call(self._page.evaluate(expression, arg), self.timeout)

    def __enter__(self) -> "BrowserSessionClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
