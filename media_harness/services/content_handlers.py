"""
Content session handlers for the two harness roles.

Both classes implement the same three lifecycle callbacks and differ only in
the pipeline they build and in the action they start and stop:

- RecorderHandler: WebRTC loopback + recorder writing the artifact
- PlayerHandler: player reading the artifact + HTTP endpoint serving it
"""

import logging
from pathlib import Path
from typing import Dict, Protocol

from media_harness.models.session import ContentSession, MediaDirection, Role
from media_harness.services.pipeline import (
    FILE_SCHEMA,
    MediaPipeline,
    PlayerEndpoint,
    RecorderEndpoint,
)
from media_harness.services.sync import SessionTerminationLatch

logger = logging.getLogger(__name__)


class ContentSessionHandler(Protocol):
    """Callbacks the content runtime invokes for every session of a path."""

    role: Role
    direction: MediaDirection

    async def on_content_request(self, session: ContentSession) -> None:
        ...

    async def on_content_started(self, session: ContentSession) -> None:
        ...

    async def on_session_terminated(self, session: ContentSession, code: int, reason: str) -> None:
        ...


def _begin_session(session: ContentSession) -> MediaPipeline:
    # One latch per session, never reused across sessions on a path
    session.latch = SessionTerminationLatch(session.session_id)
    pipeline = MediaPipeline(session.session_id)
    session.pipeline = pipeline
    session.release_on_terminate(pipeline)
    return pipeline


class RecorderHandler:
    """Records what the browser sends while echoing it back."""

    role = Role.RECORDER
    direction = MediaDirection.SEND_RECEIVE

    def __init__(self, artifact_path: Path):
        self.artifact_path = artifact_path

    async def on_content_request(self, session: ContentSession) -> None:
        pipeline = _begin_session(session)
        webrtc_endpoint = pipeline.new_webrtc_endpoint()
        recorder = pipeline.new_recorder_endpoint(FILE_SCHEMA + str(self.artifact_path))
        webrtc_endpoint.connect(webrtc_endpoint)
        webrtc_endpoint.connect(recorder)
        session.start(webrtc_endpoint)
        logger.info(f"[{session.session_id}] Recorder pipeline ready for {self.artifact_path}")

    async def on_content_started(self, session: ContentSession) -> None:
        recorder = _find(session, RecorderEndpoint)
        recorder.record()

    async def on_session_terminated(self, session: ContentSession, code: int, reason: str) -> None:
        recorder = _find(session, RecorderEndpoint)
        if recorder is not None and recorder.is_recording:
            result = await recorder.stop()
            logger.info(f"[{session.session_id}] Recorder stopped: {result}")
        if session.latch is not None:
            session.latch.signal()


class PlayerHandler:
    """Plays the recorded artifact back to an HTTP client."""

    role = Role.PLAYER
    direction = MediaDirection.RECEIVE

    def __init__(self, artifact_path: Path):
        self.artifact_path = artifact_path

    async def on_content_request(self, session: ContentSession) -> None:
        pipeline = _begin_session(session)
        player = pipeline.new_player_endpoint(FILE_SCHEMA + str(self.artifact_path))
        http_endpoint = pipeline.new_http_get_endpoint(terminate_on_eos=True)
        player.connect(http_endpoint)
        session.start(http_endpoint)

    async def on_content_started(self, session: ContentSession) -> None:
        _find(session, PlayerEndpoint).play()

    async def on_session_terminated(self, session: ContentSession, code: int, reason: str) -> None:
        player = _find(session, PlayerEndpoint)
        if player is not None:
            player.stop()
        if session.latch is not None:
            session.latch.signal()


def _find(session: ContentSession, element_type: type):
    if session.pipeline is None:
        return None
    return session.pipeline.find(element_type)


HANDLERS_BY_ROLE = {
    Role.RECORDER: RecorderHandler,
    Role.PLAYER: PlayerHandler,
}


def create_handler(role: Role, artifact_path: Path) -> ContentSessionHandler:
    return HANDLERS_BY_ROLE[role](artifact_path)


def create_default_handlers(settings) -> Dict[str, ContentSessionHandler]:
    """Content path -> handler for the harness settings."""
    return {
        settings.recorder_path: create_handler(Role.RECORDER, settings.artifact_path),
        settings.player_path: create_handler(Role.PLAYER, settings.artifact_path),
    }

