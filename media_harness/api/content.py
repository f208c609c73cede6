"""
Content endpoints: negotiation, media delivery and termination.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException, Request, Response
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from media_harness.errors import ContentRequestError, UnknownContentPath
from media_harness.services.content_runtime import CODE_NORMAL, ContentRuntime
from media_harness.services.pipeline import HttpGetEndpoint

router = APIRouter()


class ContentRequest(BaseModel):
    sdp: Optional[str] = None
    type: str = "offer"


def get_runtime(request: Request) -> ContentRuntime:
    return request.app.state.runtime


@router.post("/content/{path:path}", response_model=Dict[str, Any])
async def request_content(path: str, body: ContentRequest, request: Request):
    """
    Open a content session on a registered path.

    - WebRTC paths answer with `sessionId`, `sdp` and `type`
    - HTTP player paths answer with `sessionId` and the media `url`
    """
    runtime = get_runtime(request)
    try:
        session = await runtime.request_content(path, body.model_dump(exclude_none=True))
    except UnknownContentPath as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ContentRequestError as e:
        raise HTTPException(status_code=500, detail=str(e))

    result: Dict[str, Any] = {"sessionId": session.session_id}
    if session.answer is not None:
        result["sdp"], result["type"] = session.answer
    if session.media_url is not None:
        result["url"] = session.media_url
    return result


@router.delete("/content/{path:path}/{session_id}", status_code=204)
async def terminate_content(path: str, session_id: str, request: Request):
    """Client-initiated stop. Unknown or finished sessions are ignored."""
    await get_runtime(request).terminate(session_id, CODE_NORMAL, "Client stop")
    return Response(status_code=204)


@router.get("/media/{session_id}")
async def stream_media(session_id: str, request: Request):
    runtime = get_runtime(request)
    session = runtime.get_session(session_id)
    if session is None or not isinstance(session.transport, HttpGetEndpoint) or not session.is_active:
        raise HTTPException(status_code=404, detail=f"No media session {session_id}")

    await runtime.content_started(session_id)
    if not session.is_active:
        raise HTTPException(status_code=500, detail=session.termination_reason or "Session failed to start")

    endpoint: HttpGetEndpoint = session.transport
    return StreamingResponse(endpoint.iter_media(), media_type=endpoint.media_type)


@router.get("/sessions", response_model=Dict[str, Any])
async def list_sessions(request: Request):
    return get_runtime(request).status()
