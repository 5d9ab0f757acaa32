"""
Unit tests for folderzip configuration.
"""

import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from folderzip.archive import ArchiveRequest
from folderzip.config import Settings


class TestSettings:
    """Tests for Settings."""

    @pytest.fixture(autouse=True)
    def clean_env(self, monkeypatch):
        """Ignore FOLDERZIP_* variables from the outer environment."""
        for name in list(os.environ):
            if name.startswith("FOLDERZIP_"):
                monkeypatch.delenv(name)

    def test_defaults(self):
        """Defaults match the stock service."""
        settings = Settings()

        assert settings.source_dir == Path("Test")
        assert settings.archive_name == "folder.zip"
        assert settings.compression_level == 9
        assert settings.port == 3000
        assert settings.owner_name == "Fahim"
        assert settings.log_format == "text"

    def test_environment_overrides(self, monkeypatch, tmp_path):
        """FOLDERZIP_ variables override defaults."""
        monkeypatch.setenv("FOLDERZIP_SOURCE_DIR", str(tmp_path))
        monkeypatch.setenv("FOLDERZIP_COMPRESSION_LEVEL", "3")
        monkeypatch.setenv("FOLDERZIP_PORT", "8080")
        monkeypatch.setenv("FOLDERZIP_LOG_FORMAT", "JSON")

        settings = Settings()

        assert settings.source_dir == tmp_path
        assert settings.compression_level == 3
        assert settings.port == 8080
        assert settings.log_format == "json"

    @pytest.mark.parametrize("level", [-1, 10])
    def test_compression_level_bounds(self, level):
        """Compression level must be 0-9."""
        with pytest.raises(ValidationError):
            Settings(compression_level=level)

    def test_archive_name_requires_zip_suffix(self):
        """Download name must look like a zip file."""
        with pytest.raises(ValidationError):
            Settings(archive_name="folder.tar")

    def test_unknown_log_format_rejected(self):
        with pytest.raises(ValidationError):
            Settings(log_format="xml")

    def test_chunk_size_must_be_positive(self):
        with pytest.raises(ValidationError):
            Settings(chunk_size=0)

    def test_archive_request(self, tmp_path):
        """Settings map onto per-request archive parameters."""
        settings = Settings(
            source_dir=tmp_path,
            compression_level=5,
            chunk_size=1024,
            max_pending_chunks=2,
        )

        request = settings.archive_request()

        assert request == ArchiveRequest(
            source_dir=tmp_path,
            compression_level=5,
            chunk_size=1024,
            max_pending_chunks=2,
        )
        assert settings.archive_request() is not request
