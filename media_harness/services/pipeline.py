"""
aiortc/PyAV-backed media pipeline used by the content handlers.

A MediaPipeline owns the endpoints built for one content session:
- WebRtcEndpoint: RTCPeerConnection receiving the browser's tracks, optionally
  looping them back to the browser
- RecorderEndpoint: encodes received tracks into a WebM file (VP8/Vorbis)
- PlayerEndpoint + HttpGetEndpoint: serve a recorded file over HTTP
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Tuple, Union

import aiofiles
import av
from aiortc import RTCPeerConnection, RTCSessionDescription
from aiortc.contrib.media import MediaRelay
from aiortc.mediastreams import MediaStreamError, MediaStreamTrack

logger = logging.getLogger(__name__)

FILE_SCHEMA = "file://"
HTTP_CHUNK_SIZE = 64 * 1024

StateCallback = Callable[[], Awaitable[None]]


def path_from_uri(uri: Union[str, Path]) -> Path:
    """Accept either a plain path or a file:// URI."""
    if isinstance(uri, Path):
        return uri
    if uri.startswith(FILE_SCHEMA):
        return Path(uri[len(FILE_SCHEMA):])
    return Path(uri)


class MediaElement:
    """Common release bookkeeping for pipeline endpoints."""

    def __init__(self, pipeline: "MediaPipeline"):
        self.pipeline = pipeline
        self.released = False

    @property
    def session_id(self) -> str:
        return self.pipeline.session_id

    async def release(self) -> None:
        self.released = True


class RecorderEndpoint(MediaElement):
    """
    Records audio/video tracks into a container with PyAV.
    Streams are added when `record()` opens the container, one per track.
    """

    def __init__(
        self,
        pipeline: "MediaPipeline",
        uri: Union[str, Path],
        *,
        container_format: str = "webm",
        video_codec: str = "libvpx",
        audio_codec: str = "libvorbis",
        video_rate: int = 30,
        audio_rate: int = 48000,
        video_size: Tuple[int, int] = (640, 480),
    ):
        super().__init__(pipeline)
        self.output_path = path_from_uri(uri)
        self.config = {
            "format": container_format,
            "video_codec": video_codec,
            "audio_codec": audio_codec,
            "video_rate": video_rate,
            "audio_rate": audio_rate,
            "video_size": video_size,
        }
        self.tracks: Dict[str, MediaStreamTrack] = {}
        self.container: Optional[av.container.OutputContainer] = None
        self.streams: Dict[str, Any] = {}
        self.tasks: List[asyncio.Task] = []
        self.is_recording = False
        self.frames_written: Dict[str, int] = {"audio": 0, "video": 0}
        self._first_pts: Dict[str, int] = {}

    def add_track(self, track: MediaStreamTrack) -> None:
        if track.kind in self.tracks:
            logger.warning(f"[{self.session_id}] Recorder already has a {track.kind} track, ignoring")
            return
        self.tracks[track.kind] = track

    def record(self) -> None:
        if self.is_recording:
            return
        if not self.tracks:
            raise RuntimeError("Recorder has no tracks to record")

        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        logger.info(f"[{self.session_id}] Recording to {self.output_path}")
        self.container = av.open(str(self.output_path), mode="w", format=self.config["format"])

        # Muxing the first packet opens every encoder, so all streams and the
        # frame size must be set up front; frames of another size are rescaled
        for kind in sorted(self.tracks):
            if kind == "video":
                stream = self.container.add_stream(self.config["video_codec"], rate=self.config["video_rate"])
                stream.width, stream.height = self.config["video_size"]
                stream.pix_fmt = "yuv420p"
            else:
                stream = self.container.add_stream(self.config["audio_codec"], rate=self.config["audio_rate"])
            self.streams[kind] = stream

        self.is_recording = True
        for kind, track in self.tracks.items():
            self.tasks.append(asyncio.ensure_future(self._run_track(kind, track)))

    async def _run_track(self, kind: str, track: MediaStreamTrack) -> None:
        stream = self.streams[kind]
        while True:
            try:
                frame = await track.recv()
            except MediaStreamError:
                logger.info(f"[{self.session_id}] {kind} track ended")
                return

            if kind not in self._first_pts:
                self._first_pts[kind] = frame.pts or 0

            # Remote RTP timestamps start at an arbitrary offset
            if frame.pts is not None:
                frame.pts -= self._first_pts[kind]

            try:
                for packet in stream.encode(frame):
                    self.container.mux(packet)
                self.frames_written[kind] += 1
            except Exception as e:
                logger.error(f"[{self.session_id}] Error encoding {kind} frame {self.frames_written[kind]}: {e}")

    async def stop(self) -> Dict[str, Any]:
        """Stop recording, flush the encoders and close the file."""
        if not self.is_recording:
            return {"success": False, "error": "No active recording"}
        self.is_recording = False

        for task in self.tasks:
            task.cancel()
        await asyncio.gather(*self.tasks, return_exceptions=True)
        self.tasks = []

        for kind, stream in self.streams.items():
            try:
                for packet in stream.encode(None):
                    self.container.mux(packet)
            except Exception as e:
                logger.warning(f"[{self.session_id}] Error flushing {kind} encoder: {e}")

        try:
            self.container.close()
        finally:
            self.container = None
        logger.info(
            f"[{self.session_id}] Recording closed: {self.frames_written['video']} video / "
            f"{self.frames_written['audio']} audio frames"
        )
        return {
            "success": True,
            "output_path": str(self.output_path),
            "frames": dict(self.frames_written),
        }

    async def release(self) -> None:
        if self.is_recording:
            await self.stop()
        await super().release()


class WebRtcEndpoint(MediaElement):
    """Server side of a WebRTC connection with the browser."""

    def __init__(self, pipeline: "MediaPipeline"):
        super().__init__(pipeline)
        self.pc = RTCPeerConnection()
        self.relay = MediaRelay()
        self.loopback = False
        self.sinks: List[RecorderEndpoint] = []
        self.on_connected: Optional[StateCallback] = None
        self.on_disconnected: Optional[StateCallback] = None

        self.pc.on("track", self._on_track)
        self.pc.on("connectionstatechange", self._on_connection_state_change)

    def connect(self, sink: MediaElement) -> None:
        """Route received tracks to `sink`; connecting to itself means loopback."""
        if sink is self:
            self.loopback = True
        elif isinstance(sink, RecorderEndpoint):
            self.sinks.append(sink)
        else:
            raise TypeError(f"Cannot connect WebRtcEndpoint to {type(sink).__name__}")

    def _on_track(self, track: MediaStreamTrack) -> None:
        logger.info(f"[{self.session_id}] Received {track.kind} track")
        if self.loopback:
            self.pc.addTrack(self.relay.subscribe(track))
        for sink in self.sinks:
            sink.add_track(self.relay.subscribe(track))

    async def _on_connection_state_change(self) -> None:
        state = self.pc.connectionState
        logger.info(f"[{self.session_id}] Connection state is {state}")
        if state == "connected" and self.on_connected:
            await self.on_connected()
        elif state in ("failed", "closed") and self.on_disconnected:
            await self.on_disconnected()

    async def process_offer(self, sdp: str, sdp_type: str = "offer") -> Tuple[str, str]:
        await self.pc.setRemoteDescription(RTCSessionDescription(sdp=sdp, type=sdp_type))
        answer = await self.pc.createAnswer()
        await self.pc.setLocalDescription(answer)
        return self.pc.localDescription.sdp, self.pc.localDescription.type

    async def release(self) -> None:
        # Closing fires connectionstatechange; nobody should react to it anymore
        self.on_connected = None
        self.on_disconnected = None
        await self.pc.close()
        await super().release()


class PlayerEndpoint(MediaElement):
    """Reads a recorded file and feeds it to the connected HTTP endpoint."""

    def __init__(self, pipeline: "MediaPipeline", uri: Union[str, Path]):
        super().__init__(pipeline)
        self.source_path = path_from_uri(uri)
        self.is_playing = False

    def connect(self, sink: "HttpGetEndpoint") -> None:
        sink.source = self

    def play(self) -> None:
        if not self.source_path.exists():
            raise FileNotFoundError(f"Nothing to play at {self.source_path}")
        self.is_playing = True
        logger.info(f"[{self.session_id}] Playing {self.source_path}")

    def stop(self) -> None:
        self.is_playing = False

    async def release(self) -> None:
        self.stop()
        await super().release()


class HttpGetEndpoint(MediaElement):
    """Serves the connected player's media to one HTTP client."""

    def __init__(self, pipeline: "MediaPipeline", terminate_on_eos: bool = False):
        super().__init__(pipeline)
        self.terminate_on_eos = terminate_on_eos
        self.source: Optional[PlayerEndpoint] = None
        self.on_eos: Optional[StateCallback] = None
        self.bytes_sent = 0

    @property
    def media_type(self) -> str:
        if self.source and self.source.source_path.suffix == ".webm":
            return "video/webm"
        return "application/octet-stream"

    async def iter_media(self) -> AsyncIterator[bytes]:
        if self.source is None:
            raise RuntimeError("HttpGetEndpoint has no source connected")
        async with aiofiles.open(self.source.source_path, "rb") as f:
            while not self.released:
                chunk = await f.read(HTTP_CHUNK_SIZE)
                if not chunk:
                    break
                self.bytes_sent += len(chunk)
                yield chunk
        if self.released:
            return
        logger.info(f"[{self.session_id}] EOS after {self.bytes_sent} bytes")
        if self.terminate_on_eos and self.on_eos:
            await self.on_eos()

    async def release(self) -> None:
        self.on_eos = None
        await super().release()


class MediaPipeline:
    """Container of the media elements built for one session."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        self.elements: List[MediaElement] = []
        self.released = False

    def _add(self, element: MediaElement) -> Any:
        self.elements.append(element)
        return element

    def new_webrtc_endpoint(self) -> WebRtcEndpoint:
        return self._add(WebRtcEndpoint(self))

    def new_recorder_endpoint(self, uri: Union[str, Path], **options) -> RecorderEndpoint:
        return self._add(RecorderEndpoint(self, uri, **options))

    def new_player_endpoint(self, uri: Union[str, Path]) -> PlayerEndpoint:
        return self._add(PlayerEndpoint(self, uri))

    def new_http_get_endpoint(self, terminate_on_eos: bool = False) -> HttpGetEndpoint:
        return self._add(HttpGetEndpoint(self, terminate_on_eos=terminate_on_eos))

    def find(self, element_type: type) -> Optional[Any]:
        for element in self.elements:
            if isinstance(element, element_type):
                return element
        return None

    async def release(self) -> None:
        """
        Release every element, most recently built first. Runs once; the
        first error is re-raised after all elements were given a chance.
        """
        if self.released:
            return
        self.released = True

        first_error: Optional[BaseException] = None
        for element in reversed(self.elements):
            try:
                await element.release()
            except Exception as e:
                logger.error(f"[{self.session_id}] Error releasing {type(element).__name__}: {e}")
                if first_error is None:
                    first_error = e
        if first_error is not None:
            raise first_error
