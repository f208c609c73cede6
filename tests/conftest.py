import av
import pytest

from media_harness.config import HarnessSettings


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: drives a real browser against a live server")


def codec_available(name: str) -> bool:
    try:
        av.codec.Codec(name, "w")
    except Exception:
        return False
    return True


requires_webm_encoders = pytest.mark.skipif(
    not (codec_available("libvpx") and codec_available("libvorbis")),
    reason="PyAV build lacks libvpx/libvorbis encoders",
)


@pytest.fixture
def settings(tmp_path):
    return HarnessSettings(recording_dir=tmp_path / "recordings", record_seconds=0.0, browser_timeout=1.0)
