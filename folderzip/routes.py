"""
API routes for folderzip.

Provides the informational endpoint and the streaming archive download.
"""

import json
import logging
from collections.abc import AsyncIterator
from urllib.parse import quote

from fastapi import APIRouter, Depends, Request
from starlette.responses import StreamingResponse
from starlette.types import Receive, Scope, Send

from .archive import ArchiveStreamer
from .config import Settings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["folderzip"])


# --- Responses ---


def content_disposition(filename: str) -> str:
    """Build an attachment Content-Disposition header value."""
    quoted = quote(filename)
    if quoted != filename:
        return f"attachment; filename*=utf-8''{quoted}"
    return f'attachment; filename="{filename}"'


class ArchiveResponse(StreamingResponse):
    """Streams archive bytes and ends the streamer with the response.

    The streamer is cancelled whenever the response stops, whether the
    body was fully sent, the client disconnected or sending failed.
    Cancelling a finalized streamer does nothing.
    """

    media_type = "application/zip"

    def __init__(
        self,
        content: AsyncIterator[bytes],
        streamer: ArchiveStreamer,
        filename: str,
    ) -> None:
        super().__init__(
            content,
            headers={"Content-Disposition": content_disposition(filename)},
        )
        self.streamer = streamer

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            self.streamer.cancel()


# --- Dependencies ---


def get_settings(request: Request) -> Settings:
    """Get settings from app state."""
    return request.app.state.settings


# --- Routes ---


@router.get("/")
async def index(request: Request, settings: Settings = Depends(get_settings)):
    """
    Identify the service and echo the request headers.

    requestDetails is the JSON-encoded header mapping, as a string.
    """
    return {
        "Name": settings.owner_name,
        "requestDetails": json.dumps(dict(request.headers)),
    }


@router.get(
    "/downloadzip",
    responses={
        200: {"content": {"application/zip": {}}, "description": "ZIP archive"},
        500: {"description": "Archive could not be built"},
    },
)
async def download_zip(settings: Settings = Depends(get_settings)):
    """
    Download the source directory as a ZIP archive.

    The archive is built for this request only and streamed while it is
    being compressed. Failures detected before the first byte is sent
    return 500 with {"error": message}.
    """
    streamer = ArchiveStreamer(settings.archive_request())
    body = await streamer.start()
    return ArchiveResponse(body, streamer=streamer, filename=settings.archive_name)
