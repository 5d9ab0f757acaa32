"""
FastAPI application factory for folderzip.

This module creates the FastAPI app with:
- Settings stored on app.state
- Archive and informational routes
- FolderZipError rendered as a 500 JSON error
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ._version import __version__
from .config import Settings
from .errors import FolderZipError
from .routes import router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Log configuration on startup."""
    settings: Settings = app.state.settings
    logger.info(
        "folderzip started",
        extra={
            "source_dir": str(settings.source_dir),
            "archive_name": settings.archive_name,
            "compression_level": settings.compression_level,
            "port": settings.port,
        },
    )

    yield

    logger.info("folderzip stopped")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or Settings()

    app = FastAPI(
        title="folderzip",
        description="Streams a server-side directory to clients as a ZIP archive.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings

    @app.exception_handler(FolderZipError)
    async def folderzip_error_handler(request: Request, exc: FolderZipError) -> JSONResponse:
        logger.error(
            f"Request failed: {exc.message}",
            extra={"path": request.url.path, "code": exc.code},
        )
        return JSONResponse({"error": exc.message}, status_code=500)

    app.include_router(router)

    @app.get("/health")
    async def health():
        return {"status": "healthy", "service": "folderzip"}

    return app


# Default app instance
app = create_app()
