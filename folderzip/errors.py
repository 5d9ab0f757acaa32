"""
Error types for folderzip.

This module defines all exception types raised while building archives:
- FolderZipError: Base exception
- ArchiveConstructionError: Source directory or file could not be archived
- ArchiveTransportError: The consumer of the archive stream went away
- ArchiveStateError: Illegal archive state transition

Invariants:
    - All errors inherit from FolderZipError
    - The HTTP layer renders FolderZipError as {"error": message}
"""

from __future__ import annotations

from typing import Any


class FolderZipError(Exception):
    """Base exception for all folderzip errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "FOLDERZIP_ERROR"
        self.details = details or {}


class ArchiveConstructionError(FolderZipError):
    """Archive could not be built.

    Raised when:
    - Source directory is missing or not a directory
    - A source file cannot be opened or read
    - Compression fails
    """

    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__(
            message,
            code="CONSTRUCTION_ERROR",
            details={"path": path},
        )
        self.path = path


class ArchiveTransportError(FolderZipError):
    """The archive stream lost its consumer.

    Raised inside the build worker when the client disconnects so that
    file reads and compression stop early.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message, code="TRANSPORT_ERROR")


class ArchiveStateError(FolderZipError):
    """Illegal archive state transition."""

    def __init__(self, current: str, requested: str) -> None:
        super().__init__(
            f"Cannot move archive from {current} to {requested}",
            code="STATE_ERROR",
            details={"current": current, "requested": requested},
        )
        self.current = current
        self.requested = requested
