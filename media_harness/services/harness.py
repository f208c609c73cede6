"""
Wires the content runtime, HTTP server, browser backend and scenario
together for one end-to-end run.
"""

import logging
from contextlib import ExitStack
from typing import Optional

from media_harness.config import HarnessSettings, load_settings
from media_harness.errors import SetupFailure
from media_harness.lib.fake_media import create_capture_sources
from media_harness.models.report import ValidationReport
from media_harness.services.browser_backend import BrowserBackend
from media_harness.services.browser_client import BrowserSessionClient, ClientKind
from media_harness.services.content_handlers import create_default_handlers
from media_harness.services.content_runtime import ContentRuntime
from media_harness.services.scenario import ScenarioRunner
from media_harness.services.server import HarnessServer

logger = logging.getLogger(__name__)


def run_harness(settings: Optional[HarnessSettings] = None) -> ValidationReport:
    settings = settings or load_settings()
    settings.recording_dir.mkdir(parents=True, exist_ok=True)
    if settings.artifact_path.exists():
        settings.artifact_path.unlink()

    runtime = ContentRuntime(create_default_handlers(settings))
    fake_video, fake_audio = create_capture_sources(settings.recording_dir, settings.expected.color)

    with ExitStack() as stack:
        try:
            stack.enter_context(HarnessServer(settings, runtime))
            backend = stack.enter_context(BrowserBackend(
                browser=settings.browser,
                headless=settings.headless,
                fake_video=fake_video,
                fake_audio=fake_audio,
            ))
        except Exception as e:
            logger.error(f"Harness setup failed: {e}")
            report = ValidationReport()
            report.fatal = e if isinstance(e, SetupFailure) else SetupFailure("setup", str(e))
            return report

        def client_factory(kind: ClientKind) -> BrowserSessionClient:
            return BrowserSessionClient(backend, settings.base_url, kind, timeout=settings.browser_timeout)

        runner = ScenarioRunner(settings, runtime, client_factory)
        return runner.run()
