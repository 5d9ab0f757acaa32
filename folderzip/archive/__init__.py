"""
Archive module for folderzip.

This module builds ZIP archives of a source directory:
- ArchiveStreamer: per-request streaming build for HTTP responses
- write_archive: synchronous build into any writable file object

Invariants:
    - Entry names are relative to the source directory
    - Each request gets its own streamer; nothing is shared
"""

from .streamer import (
    ArchiveEntry,
    ArchiveRequest,
    ArchiveState,
    ArchiveStreamer,
    ChunkSink,
    scan_directory,
    write_archive,
)

__all__ = [
    "ArchiveEntry",
    "ArchiveRequest",
    "ArchiveState",
    "ArchiveStreamer",
    "ChunkSink",
    "scan_directory",
    "write_archive",
]
