import os
from pathlib import Path
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, field_validator

ENV_PREFIX = "MEDIA_HARNESS_"
ARTIFACT_FILENAME = "webrtc.webm"

RECORDER_PATH = "/webrtcRecorder"
PLAYER_PATH = "/webrtcRecorderPlayer"


def normalize_content_path(value: str) -> str:
    trimmed = value.strip()
    if not trimmed:
        raise ValueError("Content path cannot be empty")
    return "/" + trimmed.strip("/")


class ExpectedValues(BaseModel):
    """Pass criteria for the recorded artifact and its playback."""

    model_config = ConfigDict(frozen=True)

    video_codec: str = "VP8"
    audio_codec: str = "Vorbis"
    duration: float = 5.0
    duration_tolerance: float = 0.10
    color: Tuple[int, int, int] = (0, 135, 0)
    # Euclidean distance in RGB space
    color_threshold: float = 60.0

    @field_validator("duration_tolerance")
    @classmethod
    def validate_tolerance(cls, v: float) -> float:
        if not 0 <= v < 1:
            raise ValueError("Duration tolerance must be a fraction in [0, 1)")
        return v

    @field_validator("color")
    @classmethod
    def validate_color(cls, v: Tuple[int, int, int]) -> Tuple[int, int, int]:
        if any(c < 0 or c > 255 for c in v):
            raise ValueError("Color components must be within 0..255")
        return v


class HarnessSettings(BaseModel):
    host: str = "127.0.0.1"
    port: int = 8765
    recording_dir: Path = Path("/tmp/media-harness")
    recorder_path: str = RECORDER_PATH
    player_path: str = PLAYER_PATH
    record_seconds: float = 5.0
    browser: str = "chromium"
    headless: bool = True
    browser_timeout: float = 60.0
    latch_timeout: Optional[float] = None
    log_level: str = "INFO"
    expected: ExpectedValues = ExpectedValues()

    @field_validator("recorder_path", "player_path")
    @classmethod
    def validate_paths(cls, v: str) -> str:
        return normalize_content_path(v)

    @field_validator("browser")
    @classmethod
    def validate_browser(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in ("chromium", "firefox"):
            raise ValueError("Browser must be chromium or firefox")
        return v

    @property
    def artifact_path(self) -> Path:
        return self.recording_dir / ARTIFACT_FILENAME

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    @property
    def termination_timeout(self) -> float:
        """Latch wait defaults to the browser timeout, like the client's own waits."""
        if self.latch_timeout is not None:
            return self.latch_timeout
        return self.browser_timeout


def load_settings(**overrides) -> HarnessSettings:
    """
    Build settings from defaults, then MEDIA_HARNESS_* environment variables,
    then explicit keyword overrides.
    """
    values = {}
    for name in HarnessSettings.model_fields:
        if name == "expected":
            continue
        raw = os.environ.get(f"{ENV_PREFIX}{name.upper()}")
        if raw is not None and raw != "":
            values[name] = raw
    values.update(overrides)
    return HarnessSettings(**values)
