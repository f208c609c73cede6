"""Browser-driven WebRTC record/playback session harness."""

__version__ = "1.0.0"
