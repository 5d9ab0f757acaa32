"""
Configuration for folderzip.

Uses pydantic-settings for environment variable loading. Every setting can
be overridden with a FOLDERZIP_ prefixed variable, e.g. FOLDERZIP_SOURCE_DIR.
"""

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from .archive import ArchiveRequest


class Settings(BaseSettings):
    """Service configuration loaded from environment."""

    # Archive
    source_dir: Path = Field(default=Path("Test"), description="Directory to archive")
    archive_name: str = Field(default="folder.zip", description="Suggested download filename")
    compression_level: int = Field(default=9, ge=0, le=9, description="DEFLATE level")
    chunk_size: int = Field(default=64 * 1024, gt=0, description="Bytes read per step")
    max_pending_chunks: int = Field(
        default=8, gt=0, description="Chunks buffered ahead of the client"
    )

    # Greeting endpoint
    owner_name: str = Field(default="Fahim")

    # Server
    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=3000, description="Bind port")

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="text", description="text or json")

    model_config = {"env_prefix": "FOLDERZIP_"}

    @field_validator("archive_name")
    @classmethod
    def _require_zip_suffix(cls, value: str) -> str:
        if not value.lower().endswith(".zip"):
            raise ValueError("archive_name must end with .zip")
        return value

    @field_validator("log_format")
    @classmethod
    def _known_log_format(cls, value: str) -> str:
        value = value.lower()
        if value not in ("text", "json"):
            raise ValueError("log_format must be 'text' or 'json'")
        return value

    def archive_request(self) -> ArchiveRequest:
        """Build the per-request archive parameters."""
        return ArchiveRequest(
            source_dir=self.source_dir,
            compression_level=self.compression_level,
            chunk_size=self.chunk_size,
            max_pending_chunks=self.max_pending_chunks,
        )
