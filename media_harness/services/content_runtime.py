"""
Content runtime: maps content paths to handlers and drives each session
through request -> started -> terminated.

Guarantees enforced here rather than in the handlers:
- on_content_started runs once, and only after on_content_request returned
- on_session_terminated runs at most once per session
- resources registered with release_on_terminate are released exactly once
"""

import asyncio
import logging
import threading
import uuid
from typing import Dict, Iterable, List, Optional

from media_harness.errors import ContentRequestError, ResourceTeardownError, UnknownContentPath
from media_harness.models.session import ContentSession, SessionState
from media_harness.services.content_handlers import ContentSessionHandler
from media_harness.services.pipeline import HttpGetEndpoint, WebRtcEndpoint
from media_harness.services.sync import SessionTerminationLatch

logger = logging.getLogger(__name__)

CODE_NORMAL = 0
CODE_ERROR = 1
CODE_FORCED = 2


class ContentRuntime:
    def __init__(self, handlers: Optional[Dict[str, ContentSessionHandler]] = None):
        self.handlers: Dict[str, ContentSessionHandler] = {}
        self.sessions: Dict[str, ContentSession] = {}
        self.finished: Dict[str, ContentSession] = {}
        self.teardown_errors: List[ResourceTeardownError] = []
        self.loop: Optional[asyncio.AbstractEventLoop] = None
        self._lock = threading.Lock()
        self._start_pending: set = set()

        for path, handler in (handlers or {}).items():
            self.register(path, handler)

    def register(self, path: str, handler: ContentSessionHandler) -> None:
        path = "/" + path.strip("/")
        self.handlers[path] = handler
        logger.info(f"Registered {handler.role.value} handler on {path}")

    def bind_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        self.loop = loop

    def handler_for(self, path: str) -> ContentSessionHandler:
        path = "/" + path.strip("/")
        handler = self.handlers.get(path)
        if handler is None:
            raise UnknownContentPath(f"No content handler registered for {path}")
        return handler

    def get_session(self, session_id: str) -> Optional[ContentSession]:
        with self._lock:
            return self.sessions.get(session_id) or self.finished.get(session_id)

    def active_sessions(self) -> List[ContentSession]:
        with self._lock:
            return list(self.sessions.values())

    def termination_latch(self, session_id: str) -> Optional[SessionTerminationLatch]:
        session = self.get_session(session_id)
        return session.latch if session is not None else None

    async def request_content(self, path: str, offer: Optional[dict] = None) -> ContentSession:
        """
        Open a session on `path` and run its request transition.

        Raises UnknownContentPath for unregistered paths and
        ContentRequestError when the handler fails; in the latter case the
        session has already been terminated and released.
        """
        handler = self.handler_for(path)
        session = ContentSession(
            session_id=uuid.uuid4().hex,
            path="/" + path.strip("/"),
            role=handler.role,
            direction=handler.direction,
            offer=dict(offer or {}),
        )
        with self._lock:
            self.sessions[session.session_id] = session
        logger.info(f"[{session.session_id}] Content request on {session.path}")

        try:
            await handler.on_content_request(session)
            if session.transport is None:
                raise RuntimeError("Handler did not start the session on an endpoint")
            await self._negotiate(session)
        except Exception as e:
            logger.error(f"[{session.session_id}] Content request failed: {e}")
            await self.terminate(session.session_id, CODE_ERROR, f"Content request failed: {e}")
            raise ContentRequestError(session.session_id, session.path, e) from e

        with self._lock:
            session.request_completed = True
            pending = session.session_id in self._start_pending
            self._start_pending.discard(session.session_id)
        if pending:
            await self.content_started(session.session_id)
        return session

    async def _negotiate(self, session: ContentSession) -> None:
        session_id = session.session_id
        transport = session.transport

        if isinstance(transport, WebRtcEndpoint):
            sdp = session.offer.get("sdp")
            if not sdp:
                raise ValueError("WebRTC content request carries no SDP offer")

            async def on_connected() -> None:
                await self.content_started(session_id)

            async def on_disconnected() -> None:
                await self.terminate(session_id, CODE_ERROR, "Transport closed")

            transport.on_connected = on_connected
            transport.on_disconnected = on_disconnected
            session.answer = await transport.process_offer(sdp, session.offer.get("type", "offer"))

        elif isinstance(transport, HttpGetEndpoint):

            async def on_eos() -> None:
                await self.terminate(session_id, CODE_NORMAL, "EOS")

            transport.on_eos = on_eos
            session.media_url = f"/media/{session_id}"

        else:
            raise TypeError(f"Unsupported session endpoint {type(transport).__name__}")

    async def content_started(self, session_id: str) -> bool:
        """Run the started transition. Returns True only for the call that ran it."""
        with self._lock:
            session = self.sessions.get(session_id)
            if session is None or session.state != SessionState.REQUESTED:
                return False
            if not session.request_completed:
                # Transport came up while the request was still being handled
                self._start_pending.add(session_id)
                return False
            session.state = SessionState.STARTED

        handler = self.handler_for(session.path)
        logger.info(f"[{session_id}] Content started")
        try:
            await handler.on_content_started(session)
        except Exception as e:
            logger.error(f"[{session_id}] on_content_started failed: {e}")
            await self.terminate(session_id, CODE_ERROR, f"Start failed: {e}")
            return False
        return True

    async def terminate(self, session_id: str, code: int = CODE_NORMAL, reason: str = "Client stop") -> bool:
        """Run the terminated transition once and release the session's resources."""
        with self._lock:
            session = self.sessions.get(session_id)
            if session is None or session.state == SessionState.TERMINATED:
                return False
            session.state = SessionState.TERMINATED
            session.termination_code = code
            session.termination_reason = reason
            self._start_pending.discard(session_id)

        logger.info(f"[{session_id}] Session terminated ({code}): {reason}")
        try:
            await self.handler_for(session.path).on_session_terminated(session, code, reason)
        except Exception as e:
            logger.error(f"[{session_id}] on_session_terminated failed: {e}")
        finally:
            await self._release(session)
            with self._lock:
                self.sessions.pop(session_id, None)
                self.finished[session_id] = session
        return True

    async def _release(self, session: ContentSession) -> None:
        if session.released:
            return
        session.released = True
        for resource in reversed(session.releasable):
            try:
                await resource.release()
            except Exception as e:
                error = ResourceTeardownError(session.session_id, e)
                logger.error(str(error))
                self.teardown_errors.append(error)

    async def terminate_all(self, code: int = CODE_FORCED, reason: str = "Forced cleanup") -> int:
        count = 0
        for session in self.active_sessions():
            if await self.terminate(session.session_id, code, reason):
                count += 1
        return count

    def force_release(self, session_ids: Optional[Iterable[str]] = None, timeout: float = 10.0) -> int:
        """
        Terminate sessions from a thread other than the runtime loop.
        With no ids, every active session is terminated.
        """
        if self.loop is None or self.loop.is_closed():
            logger.warning("Runtime loop is not running; nothing to force-release")
            return 0

        if session_ids is None:
            coro = self.terminate_all()
        else:
            ids = list(session_ids)

            async def _terminate_ids() -> int:
                results = [await self.terminate(sid, CODE_FORCED, "Forced cleanup") for sid in ids]
                return sum(1 for r in results if r)

            coro = _terminate_ids()

        future = asyncio.run_coroutine_threadsafe(coro, self.loop)
        released = future.result(timeout)
        logger.warning(f"Force-released {released} session(s)")
        return released

    def status(self) -> Dict[str, object]:
        with self._lock:
            return {
                "success": True,
                "paths": {path: h.role.value for path, h in self.handlers.items()},
                "active": [s.status() for s in self.sessions.values()],
                "finished": [s.status() for s in self.finished.values()],
                "teardown_errors": [str(e) for e in self.teardown_errors],
            }
