"""
Playwright browser backend.

Playwright's async API runs on a dedicated event-loop thread; page events
reach the harness from that thread while the scenario blocks in its own.
"""

import asyncio
import logging
import threading
from concurrent.futures import TimeoutError as FutureTimeoutError
from pathlib import Path
from typing import Any, Awaitable, Callable, List, Optional, Tuple

from playwright.async_api import Browser, BrowserContext, Page, async_playwright

logger = logging.getLogger(__name__)

DEFAULT_CALL_TIMEOUT = 30.0


class BrowserBackend:
    """Launches one browser process and hands out isolated pages."""

    def __init__(
        self,
        browser: str = "chromium",
        headless: bool = True,
        fake_video: Optional[Path] = None,
        fake_audio: Optional[Path] = None,
    ):
        self.browser_name = browser
        self.headless = headless
        self.fake_video = fake_video
        self.fake_audio = fake_audio
        self.loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._playwright = None
        self._browser: Optional[Browser] = None
        if browser == "firefox" and fake_video is not None:
            logger.warning(
                "Firefox cannot play a file as its fake camera; "
                "the colour check only passes on chromium"
            )

    @property
    def is_running(self) -> bool:
        return self._browser is not None

    def launch_args(self) -> List[str]:
        if self.browser_name != "chromium":
            return []
        args = [
            "--use-fake-ui-for-media-stream",
            "--use-fake-device-for-media-stream",
            "--autoplay-policy=no-user-gesture-required",
        ]
        if self.fake_video:
            args.append(f"--use-file-for-fake-video-capture={self.fake_video}")
        if self.fake_audio:
            args.append(f"--use-file-for-fake-audio-capture={self.fake_audio}")
        return args

    def firefox_prefs(self) -> dict:
        return {
            "media.navigator.streams.fake": True,
            "media.navigator.permission.disabled": True,
            "media.autoplay.default": 0,
        }

    def start(self, timeout: float = 60.0) -> None:
        if self.is_running:
            return
        self.loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run_loop, name="media-harness-browser", daemon=True)
        self._thread.start()
        try:
            self.call(self._launch(), timeout)
        except Exception:
            self.close()
            raise
        logger.info(f"Launched {self.browser_name} (headless={self.headless})")

    def _run_loop(self) -> None:
        asyncio.set_event_loop(self.loop)
        self.loop.run_forever()

    async def _launch(self) -> None:
        self._playwright = await async_playwright().start()
        browser_type = getattr(self._playwright, self.browser_name)
        if self.browser_name == "firefox":
            self._browser = await browser_type.launch(headless=self.headless, firefox_user_prefs=self.firefox_prefs())
        else:
            self._browser = await browser_type.launch(headless=self.headless, args=self.launch_args())

    def call(self, coro: Awaitable[Any], timeout: float = DEFAULT_CALL_TIMEOUT) -> Any:
        """Run a coroutine on the browser loop and wait for its result."""
        if self.loop is None:
            raise RuntimeError("Browser backend is not started")
        future = asyncio.run_coroutine_threadsafe(coro, self.loop)
        try:
            return future.result(timeout)
        except FutureTimeoutError:
            future.cancel()
            raise

    async def open_page(self, on_event: Callable[[str], Any]) -> Tuple[BrowserContext, Page]:
        if self._browser is None:
            raise RuntimeError("Browser is not launched")
        context = await self._browser.new_context()
        try:
            page = await context.new_page()
            await page.expose_function("harnessEvent", on_event)
        except Exception:
            await context.close()
            raise
        page.on("console", lambda msg: logger.debug(f"[browser] {msg.text}"))
        return context, page

    async def _shutdown(self) -> None:
        try:
            if self._browser is not None:
                await self._browser.close()
        finally:
            self._browser = None
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None

    def close(self, timeout: float = 30.0) -> None:
        if self.loop is None:
            return
        try:
            self.call(self._shutdown(), timeout)
        except Exception as e:
            logger.error(f"Error closing browser: {e}")
        finally:
            self.loop.call_soon_threadsafe(self.loop.stop)
            if self._thread is not None:
                self._thread.join(timeout)
            self.loop.close()
            self.loop = None
            self._thread = None

    def __enter__(self) -> "BrowserBackend":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
