"""
Tests for the recorder and player content handlers.
"""

from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest

from media_harness.models.session import ContentSession, MediaDirection, Role
from media_harness.services.content_handlers import (
    HANDLERS_BY_ROLE,
    PlayerHandler,
    RecorderHandler,
    create_default_handlers,
    create_handler,
)
from media_harness.services.pipeline import (
    HttpGetEndpoint,
    MediaPipeline,
    PlayerEndpoint,
    RecorderEndpoint,
    WebRtcEndpoint,
)


def make_session(role: Role, session_id: str = "sess-1") -> ContentSession:
    return ContentSession(
        session_id=session_id,
        path="/test",
        role=role,
        direction=MediaDirection.RECEIVE,
    )


class TestHandlerSelection:
    def test_one_implementation_per_role(self):
        assert HANDLERS_BY_ROLE[Role.RECORDER] is RecorderHandler
        assert HANDLERS_BY_ROLE[Role.PLAYER] is PlayerHandler

    def test_create_handler(self, tmp_path):
        handler = create_handler(Role.PLAYER, tmp_path / "a.webm")
        assert isinstance(handler, PlayerHandler)
        assert handler.artifact_path == tmp_path / "a.webm"

    def test_default_handlers_bind_paths(self, settings):
        handlers = create_default_handlers(settings)

        assert isinstance(handlers["/webrtcRecorder"], RecorderHandler)
        assert isinstance(handlers["/webrtcRecorderPlayer"], PlayerHandler)
        assert handlers["/webrtcRecorder"].artifact_path == settings.artifact_path


class TestRecorderHandler:
    @pytest.fixture
    def handler(self, tmp_path):
        return RecorderHandler(tmp_path / "webrtc.webm")

    @pytest.mark.asyncio
    async def test_request_builds_loopback_and_recorder(self, handler, tmp_path):
        session = make_session(Role.RECORDER)

        await handler.on_content_request(session)
        try:
            assert isinstance(session.pipeline, MediaPipeline)
            assert session.releasable == [session.pipeline]
            webrtc = session.pipeline.find(WebRtcEndpoint)
            recorder = session.pipeline.find(RecorderEndpoint)
            assert session.transport is webrtc
            assert webrtc.loopback is True
            assert webrtc.sinks == [recorder]
            assert recorder.output_path == tmp_path / "webrtc.webm"
            assert session.latch is not None and not session.latch.is_signaled
        finally:
            await session.pipeline.release()

    @pytest.mark.asyncio
    async def test_started_starts_recording(self, handler):
        session = make_session(Role.RECORDER)
        await handler.on_content_request(session)
        recorder = session.pipeline.find(RecorderEndpoint)
        recorder.record = Mock()
        try:
            await handler.on_content_started(session)
            recorder.record.assert_called_once()
        finally:
            await session.pipeline.release()

    @pytest.mark.asyncio
    async def test_terminated_stops_recording_and_signals(self, handler):
        session = make_session(Role.RECORDER)
        await handler.on_content_request(session)
        recorder = session.pipeline.find(RecorderEndpoint)
        recorder.is_recording = True
        recorder.stop = AsyncMock(return_value={"success": True})
        try:
            await handler.on_session_terminated(session, 0, "Client stop")

            recorder.stop.assert_awaited_once()
            assert session.latch.is_signaled
        finally:
            recorder.is_recording = False
            await session.pipeline.release()

    @pytest.mark.asyncio
    async def test_terminated_without_resources_does_not_raise(self, handler):
        session = make_session(Role.RECORDER)

        await handler.on_session_terminated(session, 1, "Content request failed")

        assert session.latch is None

    @pytest.mark.asyncio
    async def test_terminated_twice_is_safe(self, handler):
        session = make_session(Role.RECORDER)
        await handler.on_content_request(session)
        try:
            await handler.on_session_terminated(session, 0, "Client stop")
            await handler.on_session_terminated(session, 0, "Client stop")
            assert session.latch.is_signaled
        finally:
            await session.pipeline.release()


class TestPlayerHandler:
    @pytest.fixture
    def artifact(self, tmp_path) -> Path:
        path = tmp_path / "webrtc.webm"
        path.write_bytes(b"\x1a\x45\xdf\xa3" + b"\x00" * 100)
        return path

    @pytest.mark.asyncio
    async def test_request_builds_player_and_http_endpoint(self, artifact):
        handler = PlayerHandler(artifact)
        session = make_session(Role.PLAYER)

        await handler.on_content_request(session)

        http = session.pipeline.find(HttpGetEndpoint)
        player = session.pipeline.find(PlayerEndpoint)
        assert session.transport is http
        assert http.source is player
        assert http.terminate_on_eos is True
        assert player.source_path == artifact

    @pytest.mark.asyncio
    async def test_started_plays_and_terminated_stops(self, artifact):
        handler = PlayerHandler(artifact)
        session = make_session(Role.PLAYER)
        await handler.on_content_request(session)
        player = session.pipeline.find(PlayerEndpoint)

        await handler.on_content_started(session)
        assert player.is_playing is True

        await handler.on_session_terminated(session, 0, "EOS")
        assert player.is_playing is False
        assert session.latch.is_signaled

    @pytest.mark.asyncio
    async def test_started_without_artifact_fails(self, tmp_path):
        handler = PlayerHandler(tmp_path / "missing.webm")
        session = make_session(Role.PLAYER)
        await handler.on_content_request(session)

        with pytest.raises(FileNotFoundError):
            await handler.on_content_started(session)

    @pytest.mark.asyncio
    async def test_new_latch_per_request(self, artifact):
        handler = PlayerHandler(artifact)
        first = make_session(Role.PLAYER, "a")
        second = make_session(Role.PLAYER, "b")

        await handler.on_content_request(first)
        await handler.on_session_terminated(first, 0, "EOS")
        await handler.on_content_request(second)

        assert first.latch.is_signaled
        assert not second.latch.is_signaled
