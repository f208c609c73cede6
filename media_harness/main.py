"""
FastAPI application exposing the harness content endpoints.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles

from media_harness import __version__
from media_harness.api import content
from media_harness.config import HarnessSettings, load_settings
from media_harness.services.content_handlers import create_default_handlers
from media_harness.services.content_runtime import ContentRuntime

logger = logging.getLogger(__name__)

STATIC_DIR = Path(__file__).parent / "static"
CLIENT_PAGES = {
    "WEBRTC": "webrtc.html",
    "PLAYER": "player.html",
}


def create_app(
    settings: Optional[HarnessSettings] = None,
    runtime: Optional[ContentRuntime] = None,
) -> FastAPI:
    settings = settings or load_settings()
    runtime = runtime or ContentRuntime(create_default_handlers(settings))

    app = FastAPI(
        title="Media Harness",
        description="Content endpoints for the WebRTC record/playback harness",
        version=__version__,
    )
    app.state.settings = settings
    app.state.runtime = runtime

    @app.on_event("startup")
    async def on_startup() -> None:
        runtime.bind_loop(asyncio.get_running_loop())
        settings.recording_dir.mkdir(parents=True, exist_ok=True)

    # Shutdown terminates every open session so recordings are closed
    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        count = await runtime.terminate_all(reason="Server shutdown")
        if count:
            logger.warning(f"Terminated {count} open session(s) on shutdown")

    @app.get("/")
    async def client_page(client: str = "WEBRTC"):
        page = CLIENT_PAGES.get(client.upper())
        if page is None:
            raise HTTPException(status_code=404, detail=f"Unknown client {client}")
        return FileResponse(STATIC_DIR / page, media_type="text/html")

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "version": __version__}

    app.mount("/static", StaticFiles(directory=str(STATIC_DIR)), name="static")
    app.include_router(content.router)
    return app
