"""
Tests for the three-phase scenario with a scripted browser and runtime.
"""

from typing import Dict, List, Optional
from unittest.mock import Mock, patch

import pytest

from media_harness.errors import AssertionMismatch, SetupFailure, TerminationTimeout
from media_harness.services.artifact_validator import ArtifactValidator
from media_harness.services.browser_client import ClientKind
from media_harness.services.scenario import ScenarioRunner, build_default_scenario
from media_harness.services.sync import SessionTerminationLatch


class _FakeBrowser:
    """Stands in for BrowserSessionClient; events fire according to a script."""

    def __init__(self, kind: ClientKind, script: dict, runtime: "_FakeRuntime"):
        self.kind = kind
        self.script = script
        self.runtime = runtime
        self.target: Optional[str] = None
        self.subscribed: List[str] = []
        self.session_id: Optional[str] = None
        self.stopped = False
        self.closed = False
        self.waited: List[str] = []

    def set_target(self, path):
        self.target = path

    def subscribe(self, *names):
        self.subscribed.extend(names)

    def start(self):
        if self.script.get("start_error"):
            raise RuntimeError(self.script["start_error"])
        if self.script.get("rejected"):
            return
        self.session_id = f"{self.kind.value.lower()}-session"
        self.runtime.open(self.session_id)

    def wait_for_event(self, name, timeout=None):
        self.waited.append(name)
        return name in self.script.get("events", ())

    def current_playback_position(self):
        return self.script.get("position", 5.0)

    def sample_color(self):
        return self.script.get("color", (0, 135, 0))

    def stop(self):
        self.stopped = True
        if self.session_id is not None and self.script.get("terminates", True):
            self.runtime.latches[self.session_id].signal()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.closed = True
        self.stop()


class _FakeRuntime:
    def __init__(self):
        self.latches: Dict[str, SessionTerminationLatch] = {}
        self.force_release = Mock(return_value=1)

    def open(self, session_id):
        self.latches[session_id] = SessionTerminationLatch(session_id)

    def termination_latch(self, session_id):
        return self.latches.get(session_id)


@pytest.fixture
def runtime():
    return _FakeRuntime()


@pytest.fixture
def good_codecs():
    codecs = {"video": "VP8", "audio": "Vorbis"}
    with patch.object(ArtifactValidator, "codec_of", side_effect=lambda _p, kind: codecs[kind]) as mock:
        yield mock


def make_runner(settings, runtime, scripts, browsers):
    def factory(kind):
        browser = _FakeBrowser(kind, scripts[kind], runtime)
        browsers.append(browser)
        return browser

    sleep = Mock()
    runner = ScenarioRunner(settings, runtime, factory, sleep=sleep)
    return runner, sleep


RECORD_OK = {"events": ("playing",)}
PLAY_OK = {"events": ("playing", "ended"), "position": 5.02, "color": (3, 131, 2)}


class TestDefaultScenario:
    def test_phases(self, settings):
        phases = build_default_scenario(settings)

        assert [p.name for p in phases] == ["record", "inspect", "playback"]
        assert phases[0].client == ClientKind.WEBRTC
        assert phases[0].path == "/webrtcRecorder"
        assert phases[0].events == ("playing",)
        assert phases[1].client is None
        assert phases[2].path == "/webrtcRecorderPlayer"
        assert phases[2].events == ("playing", "ended")


class TestScenarioRunner:
    def test_happy_path(self, settings, runtime, good_codecs):
        browsers = []
        settings = settings.model_copy(update={"record_seconds": 5.0})
        runner, sleep = make_runner(
            settings, runtime, {ClientKind.WEBRTC: RECORD_OK, ClientKind.PLAYER: PLAY_OK}, browsers
        )

        report = runner.run()

        assert report.passed, report.to_dict()
        assert report.phases_completed == ["record", "inspect", "playback"]
        assert [c.name for c in report.checks] == ["video_codec", "audio_codec", "duration", "color"]
        sleep.assert_called_once_with(5.0)
        assert [b.kind for b in browsers] == [ClientKind.WEBRTC, ClientKind.PLAYER]
        assert all(b.stopped and b.closed for b in browsers)
        assert browsers[0].target == "/webrtcRecorder"
        assert browsers[1].subscribed == ["playing", "ended"]
        runtime.force_release.assert_not_called()

    def test_missing_playing_event_aborts_before_validation(self, settings, runtime, good_codecs):
        browsers = []
        runner, _ = make_runner(
            settings, runtime, {ClientKind.WEBRTC: {"events": ()}, ClientKind.PLAYER: PLAY_OK}, browsers
        )

        report = runner.run()

        assert isinstance(report.fatal, SetupFailure)
        assert report.phases_completed == []
        assert report.checks == []
        good_codecs.assert_not_called()
        assert len(browsers) == 1
        assert browsers[0].closed
        runtime.force_release.assert_called_once()

    def test_browser_start_error_is_setup_failure(self, settings, runtime, good_codecs):
        runner, _ = make_runner(
            settings, runtime, {ClientKind.WEBRTC: {"start_error": "no browser"}, ClientKind.PLAYER: PLAY_OK}, []
        )

        report = runner.run()

        assert isinstance(report.fatal, SetupFailure)
        assert "no browser" in str(report.fatal)

    def test_termination_timeout_forces_cleanup(self, settings, runtime, good_codecs):
        settings = settings.model_copy(update={"latch_timeout": 0.1})
        browsers = []
        runner, _ = make_runner(
            settings,
            runtime,
            {ClientKind.WEBRTC: {"events": ("playing",), "terminates": False}, ClientKind.PLAYER: PLAY_OK},
            browsers,
        )

        report = runner.run()

        assert isinstance(report.fatal, TerminationTimeout)
        assert report.fatal.session_id == "webrtc-session"
        assert report.phases_completed == []
        runtime.force_release.assert_called_once()
        assert len(browsers) == 1

    def test_missing_ended_event_aborts_playback(self, settings, runtime, good_codecs):
        runner, _ = make_runner(
            settings, runtime, {ClientKind.WEBRTC: RECORD_OK, ClientKind.PLAYER: {"events": ("playing",)}}, []
        )

        report = runner.run()

        assert isinstance(report.fatal, SetupFailure)
        assert "ended" in str(report.fatal)
        assert report.phases_completed == ["record", "inspect"]

    def test_mismatches_accumulate_and_run_continues(self, settings, runtime):
        codecs = {"video": "AVC", "audio": "AAC"}
        play = {"events": ("playing", "ended"), "position": 2.0, "color": (255, 0, 0)}
        runner, _ = make_runner(settings, runtime, {ClientKind.WEBRTC: RECORD_OK, ClientKind.PLAYER: play}, [])

        with patch.object(ArtifactValidator, "codec_of", side_effect=lambda _p, kind: codecs[kind]):
            report = runner.run()

        assert report.fatal is None
        assert report.phases_completed == ["record", "inspect", "playback"]
        assert [c.name for c in report.failures] == ["video_codec", "audio_codec", "duration", "color"]
        with pytest.raises(AssertionMismatch) as exc_info:
            report.raise_for_failures()
        assert len(exc_info.value.failures) == 4

    def test_no_session_opened_is_setup_failure(self, settings, runtime, good_codecs):
        runtime.termination_latch = Mock(return_value=None)
        runner, _ = make_runner(
            settings, runtime, {ClientKind.WEBRTC: RECORD_OK, ClientKind.PLAYER: PLAY_OK}, []
        )

        report = runner.run()

        assert isinstance(report.fatal, SetupFailure)

    def test_page_that_cannot_open_is_setup_failure(self, settings, runtime, good_codecs):
        def factory(kind):
            raise TimeoutError("new_context timed out")

        report = ScenarioRunner(settings, runtime, factory, sleep=Mock()).run()

        assert isinstance(report.fatal, SetupFailure)
        assert "new_context timed out" in str(report.fatal)
        assert report.phases_completed == []
        runtime.force_release.assert_called_once()

    def test_rejected_content_request_fails_before_waiting(self, settings, runtime, good_codecs):
        browsers = []
        runner, _ = make_runner(
            settings, runtime, {ClientKind.WEBRTC: {"rejected": True}, ClientKind.PLAYER: PLAY_OK}, browsers
        )

        report = runner.run()

        assert isinstance(report.fatal, SetupFailure)
        assert "content session" in str(report.fatal)
        assert browsers[0].waited == []
        assert browsers[0].closed
