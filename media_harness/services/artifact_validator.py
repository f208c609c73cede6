"""
Checks on the recorded artifact and on what the browser observed while
playing it back. Every check returns a CheckResult; none of them raises on a
mismatch so a run reports all deviations at once.
"""

import logging
import math
from pathlib import Path
from typing import Optional, Tuple, Union

import av

from media_harness.models.report import CheckResult, ValidationReport

logger = logging.getLogger(__name__)

Color = Tuple[int, int, int]

# PyAV codec names -> container format names as reported by MediaInfo
FORMAT_NAMES = {
    "vp8": "VP8",
    "libvpx": "VP8",
    "vp9": "VP9",
    "libvpx-vp9": "VP9",
    "h264": "AVC",
    "libx264": "AVC",
    "hevc": "HEVC",
    "av1": "AV1",
    "libaom-av1": "AV1",
    "libdav1d": "AV1",
    "vorbis": "Vorbis",
    "libvorbis": "Vorbis",
    "opus": "Opus",
    "libopus": "Opus",
    "aac": "AAC",
    "mp3": "MPEG Audio",
    "pcm_s16le": "PCM",
}

STREAM_KINDS = ("video", "audio")


def format_name(codec_name: str) -> str:
    return FORMAT_NAMES.get(codec_name.lower(), codec_name.upper())


def color_distance(a: Color, b: Color) -> float:
    """Euclidean distance between two RGB colours."""
    return math.sqrt(sum((int(x) - int(y)) ** 2 for x, y in zip(a, b)))


def _stream_duration(stream) -> float:
    # WebM keeps per-stream duration in the DURATION tag
    if stream.duration is None:
        duration_str = stream.metadata.get("DURATION", "0")
        try:
            h, m, s = duration_str.split(":")
            return float(h) * 3600 + float(m) * 60 + float(s)
        except ValueError:
            return 0.0
    return float(stream.duration * stream.time_base)


class ArtifactValidator:
    def __init__(self, report: Optional[ValidationReport] = None):
        self.report = report if report is not None else ValidationReport()

    def codec_of(self, artifact_path: Union[str, Path], stream_kind: str) -> Optional[str]:
        """Format name of the first `stream_kind` stream, or None when there is none."""
        if stream_kind not in STREAM_KINDS:
            raise ValueError(f"Unknown stream kind {stream_kind}")
        with av.open(str(artifact_path)) as container:
            streams = getattr(container.streams, stream_kind)
            if not streams:
                return None
            return format_name(streams[0].codec_context.name)

    def duration_of(self, artifact_path: Union[str, Path]) -> float:
        """Static duration in seconds, from the container or its longest stream."""
        with av.open(str(artifact_path)) as container:
            if container.duration is not None:
                return container.duration / av.time_base
            return max((_stream_duration(s) for s in container.streams), default=0.0)

    def check_codec(self, artifact_path: Union[str, Path], stream_kind: str, expected: str) -> CheckResult:
        name = f"{stream_kind}_codec"
        try:
            actual = self.codec_of(artifact_path, stream_kind)
        except Exception as e:
            logger.error(f"Cannot probe {stream_kind} codec of {artifact_path}: {e}")
            return self.report.record(CheckResult(
                name, False, expected, None, f"Cannot read {artifact_path}: {e}",
            ))
        passed = actual == expected
        message = (
            f"Expected {stream_kind} codec is {expected} and the recorded {stream_kind} codec is {actual}"
        )
        if not passed:
            logger.warning(message)
        return self.report.record(CheckResult(name, passed, expected, actual, message))

    def check_codecs(self, artifact_path: Union[str, Path], expected_video: str, expected_audio: str) -> bool:
        video = self.check_codec(artifact_path, "video", expected_video)
        audio = self.check_codec(artifact_path, "audio", expected_audio)
        return video.passed and audio.passed

    def check_duration(self, observed: Optional[float], expected: float, tolerance: float = 0.10) -> CheckResult:
        if observed is None:
            return self.report.record(CheckResult(
                "duration", False, expected, None, "No playback position was reported",
            ))
        low, high = expected * (1 - tolerance), expected * (1 + tolerance)
        passed = low <= observed <= high
        message = f"Play time must be around {expected}s (observed {observed:.2f}s, allowed {low:.2f}-{high:.2f}s)"
        if not passed:
            logger.warning(message)
        return self.report.record(CheckResult("duration", passed, expected, observed, message))

    def check_color(self, observed: Optional[Color], expected: Color, threshold: float) -> CheckResult:
        if observed is None:
            return self.report.record(CheckResult(
                "color", False, expected, None, "No video frame was rendered",
            ))
        distance = color_distance(observed, expected)
        passed = distance <= threshold
        message = (
            f"The color of the video should be RGB{tuple(expected)}, "
            f"observed RGB{tuple(observed)} (distance {distance:.1f}, threshold {threshold})"
        )
        if not passed:
            logger.warning(message)
        return self.report.record(CheckResult("color", passed, expected, observed, message))
