"""
Fake capture sources for the browser: a solid-colour Y4M clip and a WAV tone,
consumed by Chromium's --use-file-for-fake-*-capture switches.
"""

import logging
import wave
from pathlib import Path
from typing import Tuple

import av
import numpy as np

logger = logging.getLogger(__name__)

# Constants
VIDEO_WIDTH = 640
VIDEO_HEIGHT = 480
VIDEO_RATE = 30
AUDIO_RATE = 48000
TONE_HZ = 440.0


def create_color_video(
    path: Path,
    color: Tuple[int, int, int],
    seconds: float = 2.0,
    width: int = VIDEO_WIDTH,
    height: int = VIDEO_HEIGHT,
    rate: int = VIDEO_RATE,
) -> Path:
    """Write a Y4M file showing a single RGB colour. Chromium loops it."""
    path.parent.mkdir(parents=True, exist_ok=True)
    image = np.zeros((height, width, 3), dtype=np.uint8)
    image[:, :] = color

    container = av.open(str(path), mode="w", format="yuv4mpegpipe")
    try:
        stream = container.add_stream("rawvideo", rate=rate)
        stream.width = width
        stream.height = height
        stream.pix_fmt = "yuv420p"
        for i in range(max(1, int(seconds * rate))):
            frame = av.VideoFrame.from_ndarray(image, format="rgb24").reformat(format="yuv420p")
            frame.pts = i
            for packet in stream.encode(frame):
                container.mux(packet)
        for packet in stream.encode(None):
            container.mux(packet)
    finally:
        container.close()
    logger.info(f"Fake video source RGB{tuple(color)} written to {path}")
    return path


def create_tone_audio(
    path: Path,
    seconds: float = 2.0,
    frequency: float = TONE_HZ,
    sample_rate: int = AUDIO_RATE,
) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    t = np.arange(int(seconds * sample_rate)) / sample_rate
    samples = (0.3 * 32767 * np.sin(2 * np.pi * frequency * t)).astype(np.int16)

    writer = wave.open(str(path), "wb")
    writer.setnchannels(1)
    writer.setsampwidth(2)
    writer.setframerate(sample_rate)
    writer.writeframes(samples.tobytes())
    writer.close()
    return path


def create_capture_sources(directory: Path, color: Tuple[int, int, int]) -> Tuple[Path, Path]:
    """Video and audio fake capture files for one harness run."""
    video = create_color_video(directory / "fake-capture.y4m", color)
    audio = create_tone_audio(directory / "fake-capture.wav")
    return video, audio
