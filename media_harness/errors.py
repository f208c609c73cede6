"""
Error taxonomy for the record/playback harness.
"""

from typing import Optional


class HarnessError(Exception):
    """Base class for every harness failure."""


class SetupFailure(HarnessError):
    """Browser or pipeline never reached the expected started state."""

    def __init__(self, phase: str, message: str):
        self.phase = phase
        super().__init__(f"[{phase}] {message}")


class TerminationTimeout(HarnessError):
    """Stop was requested but the session never reported termination."""

    def __init__(self, phase: str, session_id: Optional[str], timeout: float):
        self.phase = phase
        self.session_id = session_id
        self.timeout = timeout
        super().__init__(
            f"[{phase}] Timeout waiting for termination of session "
            f"{session_id} after {timeout:.1f}s"
        )


class AssertionMismatch(HarnessError):
    """One or more artifact checks did not match their expected value."""

    def __init__(self, failures):
        self.failures = list(failures)
        summary = "; ".join(f.message for f in self.failures)
        super().__init__(f"{len(self.failures)} check(s) failed: {summary}")


class ResourceTeardownError(HarnessError):
    """Releasing pipeline resources failed."""

    def __init__(self, session_id: str, cause: BaseException):
        self.session_id = session_id
        self.cause = cause
        super().__init__(f"[{session_id}] Failed to release pipeline: {cause}")


class ContentRequestError(HarnessError):
    """A handler could not build the resources for a content request."""

    def __init__(self, session_id: str, path: str, cause: BaseException):
        self.session_id = session_id
        self.path = path
        self.cause = cause
        super().__init__(f"[{session_id}] Content request on {path} failed: {cause}")


class UnknownContentPath(HarnessError):
    """No handler is registered for the requested content path."""
