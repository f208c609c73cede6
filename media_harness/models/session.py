from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from media_harness.services.sync import SessionTerminationLatch


class Role(Enum):
    RECORDER = "recorder"
    PLAYER = "player"


class MediaDirection(Enum):
    SEND = "send"
    RECEIVE = "receive"
    SEND_RECEIVE = "sendrecv"


class SessionState(Enum):
    """Content session lifecycle."""

    REQUESTED = "requested"
    STARTED = "started"
    TERMINATED = "terminated"


@dataclass
class ContentSession:
    """
    State of one browser-to-server interaction.

    The pipeline and the termination latch belong to this session alone and
    are never shared with another session on the same path.
    """

    session_id: str
    path: str
    role: Role
    direction: MediaDirection
    state: SessionState = SessionState.REQUESTED
    pipeline: Optional[Any] = None
    latch: Optional[SessionTerminationLatch] = None
    termination_code: Optional[int] = None
    termination_reason: Optional[str] = None
    request_completed: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    # Negotiation payload sent by the client (SDP offer for WebRTC)
    offer: Dict[str, Any] = field(default_factory=dict)
    # Endpoint handed to start(); the runtime negotiates and watches it
    transport: Optional[Any] = None
    answer: Optional[Tuple[str, str]] = None
    media_url: Optional[str] = None
    _release_on_terminate: List[Any] = field(default_factory=list)
    released: bool = False

    def start(self, endpoint: Any) -> None:
        """Select the endpoint that carries this session's media to the client."""
        if self.transport is not None:
            raise RuntimeError(f"Session {self.session_id} already started on {type(self.transport).__name__}")
        self.transport = endpoint

    def release_on_terminate(self, resource: Any) -> None:
        """Register a resource to be released once the session terminates."""
        self._release_on_terminate.append(resource)

    @property
    def releasable(self) -> List[Any]:
        return list(self._release_on_terminate)

    @property
    def is_active(self) -> bool:
        return self.state in {SessionState.REQUESTED, SessionState.STARTED}

    def status(self) -> dict:
        return {
            "session_id": self.session_id,
            "path": self.path,
            "role": self.role.value,
            "direction": self.direction.value,
            "state": self.state.value,
            "termination_code": self.termination_code,
            "termination_reason": self.termination_reason,
            "created_at": self.created_at.isoformat(),
            "released": self.released,
        }
