"""
Timeout-bounded synchronization primitives shared between the test thread,
the browser event loop and the content runtime.
"""

import logging
import threading
import time
from typing import Iterable, Optional, Set

logger = logging.getLogger(__name__)


class EventWaiter:
    """
    Records named events delivered from another thread and lets the control
    thread block until one of them is observed.

    An event that arrives before `wait()` is called is remembered, so the
    wait returns immediately instead of running into the timeout.
    """

    def __init__(self, event_names: Optional[Iterable[str]] = None):
        self._condition = threading.Condition()
        self._observed: Set[str] = set()
        self._subscribed: Optional[Set[str]] = set(event_names) if event_names else None

    def subscribe(self, *event_names: str) -> None:
        with self._condition:
            if self._subscribed is None:
                self._subscribed = set()
            self._subscribed.update(event_names)

    @property
    def subscribed(self) -> Set[str]:
        with self._condition:
            return set(self._subscribed or ())

    def notify(self, event_name: str) -> bool:
        """Record an event. Returns False when the name is not subscribed."""
        with self._condition:
            if self._subscribed is not None and event_name not in self._subscribed:
                return False
            self._observed.add(event_name)
            self._condition.notify_all()
        logger.debug(f"Event observed: {event_name}")
        return True

    def has_seen(self, event_name: str) -> bool:
        with self._condition:
            return event_name in self._observed

    def wait(self, event_name: str, timeout: float) -> bool:
        deadline = time.monotonic() + timeout
        with self._condition:
            while event_name not in self._observed:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    logger.warning(f"Timeout waiting {event_name} event after {timeout:.1f}s")
                    return False
                self._condition.wait(remaining)
            self._observed.discard(event_name)
            return True

    def reset(self) -> None:
        with self._condition:
            self._observed.clear()


class SessionTerminationLatch:
    """One-shot gate signalled when a content session has terminated."""

    def __init__(self, session_id: Optional[str] = None):
        self.session_id = session_id
        self._event = threading.Event()
        self._lock = threading.Lock()

    def signal(self) -> bool:
        """Open the latch. Only the first call has an effect."""
        with self._lock:
            if self._event.is_set():
                return False
            self._event.set()
        logger.debug(f"[{self.session_id}] Termination latch signalled")
        return True

    @property
    def is_signaled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        return self._event.wait(timeout)
