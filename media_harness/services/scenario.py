"""
Record -> inspect -> play back scenario.

Phases run strictly in order and each one finishes (browser closed, session
terminated) before the next begins. SetupFailure and TerminationTimeout end
the run; check mismatches are collected in the report and the run goes on.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, ContextManager, List, Optional, Tuple

from media_harness.config import HarnessSettings
from media_harness.errors import SetupFailure, TerminationTimeout
from media_harness.models.report import ValidationReport
from media_harness.services.artifact_validator import ArtifactValidator
from media_harness.services.browser_client import BrowserSessionClient, ClientKind
from media_harness.services.content_runtime import ContentRuntime

logger = logging.getLogger(__name__)

ClientFactory = Callable[[ClientKind], ContextManager[BrowserSessionClient]]


@dataclass(frozen=True)
class ScenarioPhase:
    """
    One step of the scenario. Phases without a client only inspect the
    artifact; the others drive a browser against `path`.
    """

    name: str
    client: Optional[ClientKind] = None
    path: Optional[str] = None
    events: Tuple[str, ...] = ()
    hold_seconds: float = 0.0
    checks: Tuple[str, ...] = field(default_factory=tuple)


def build_default_scenario(settings: HarnessSettings) -> List[ScenarioPhase]:
    return [
        ScenarioPhase(
            name="record",
            client=ClientKind.WEBRTC,
            path=settings.recorder_path,
            events=("playing",),
            hold_seconds=settings.record_seconds,
        ),
        ScenarioPhase(name="inspect", checks=("codecs",)),
        ScenarioPhase(
            name="playback",
            client=ClientKind.PLAYER,
            path=settings.player_path,
            events=("playing", "ended"),
            checks=("duration", "color"),
        ),
    ]


class ScenarioRunner:
    def __init__(
        self,
        settings: HarnessSettings,
        runtime: ContentRuntime,
        client_factory: ClientFactory,
        phases: Optional[List[ScenarioPhase]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings
        self.runtime = runtime
        self.client_factory = client_factory
        self.phases = phases if phases is not None else build_default_scenario(settings)
        self.sleep = sleep

    def run(self) -> ValidationReport:
        report = ValidationReport()
        validator = ArtifactValidator(report)

        try:
            for phase in self.phases:
                logger.info(f"Phase {phase.name} starting")
                if phase.client is None:
                    self._inspect(phase, validator)
                else:
                    self._run_browser_phase(phase, validator)
                report.phases_completed.append(phase.name)
                logger.info(f"Phase {phase.name} complete")
        except (SetupFailure, TerminationTimeout) as e:
            logger.error(f"Scenario aborted: {e}")
            report.fatal = e
            self._force_cleanup()

        if report.passed:
            logger.info("Scenario passed")
        else:
            logger.warning(f"Scenario failed: {len(report.failures)} failed check(s), fatal={report.fatal}")
        return report

    def _inspect(self, phase: ScenarioPhase, validator: ArtifactValidator) -> None:
        expected = self.settings.expected
        if "codecs" in phase.checks:
            validator.check_codecs(self.settings.artifact_path, expected.video_codec, expected.audio_codec)

    def _run_browser_phase(self, phase: ScenarioPhase, validator: ArtifactValidator) -> None:
        expected = self.settings.expected

        try:
            client = self.client_factory(phase.client)
        except Exception as e:
            raise SetupFailure(phase.name, f"Browser page could not be opened: {e}") from e

        with client as browser:
            browser.set_target(phase.path)
            browser.subscribe(*phase.events)
            try:
                browser.start()
            except Exception as e:
                raise SetupFailure(phase.name, f"Browser failed to start: {e}") from e

            # A rejected content request leaves the page without a session
            session_id = browser.session_id
            latch = self.runtime.termination_latch(session_id) if session_id else None
            if latch is None:
                raise SetupFailure(phase.name, "Browser did not open a content session")

            for event in phase.events:
                if not browser.wait_for_event(event):
                    raise SetupFailure(phase.name, f"Timeout waiting {event} event")

            if phase.hold_seconds:
                logger.info(f"Holding {phase.name} for {phase.hold_seconds}s")
                self.sleep(phase.hold_seconds)

            if "duration" in phase.checks:
                validator.check_duration(
                    self._read(browser.current_playback_position, "playback position"),
                    expected.duration,
                    expected.duration_tolerance,
                )
            if "color" in phase.checks:
                validator.check_color(
                    self._read(browser.sample_color, "video color"),
                    expected.color,
                    expected.color_threshold,
                )

            # Ending session in order
            browser.stop()
            timeout = self.settings.termination_timeout
            if not latch.wait(timeout):
                raise TerminationTimeout(phase.name, session_id, timeout)

    @staticmethod
    def _read(probe: Callable, what: str):
        try:
            return probe()
        except Exception as e:
            logger.error(f"Could not read {what} from the browser: {e}")
            return None

    def _force_cleanup(self) -> None:
        try:
            self.runtime.force_release()
        except Exception as e:
            logger.error(f"Forced cleanup failed: {e}")
