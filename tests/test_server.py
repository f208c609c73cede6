"""
Tests for the background uvicorn server wrapper.
"""

import threading
from unittest.mock import patch

import pytest

from media_harness.errors import SetupFailure
from media_harness.services.content_runtime import ContentRuntime
from media_harness.services.server import HarnessServer


class _StuckServer:
    """Never reports started; runs until told to exit."""

    instances = []

    def __init__(self, config):
        self.config = config
        self.started = False
        self.should_exit = False
        self.exited = threading.Event()
        _StuckServer.instances.append(self)

    def run(self):
        while not self.should_exit:
            threading.Event().wait(0.01)
        self.exited.set()


def test_server_that_never_starts_is_told_to_exit(settings):
    _StuckServer.instances.clear()
    server = HarnessServer(settings, ContentRuntime())

    with patch("media_harness.services.server.Server", _StuckServer):
        with pytest.raises(SetupFailure, match="did not start"):
            server.start(timeout=0.1)

    stuck = _StuckServer.instances[0]
    assert stuck.should_exit is True
    assert stuck.exited.wait(2)
    assert server._thread is None


def test_stop_without_start_is_noop(settings):
    HarnessServer(settings, ContentRuntime()).stop()
