"""
Streaming ZIP archive builder for folderzip.

The ArchiveStreamer builds a DEFLATE-compressed ZIP of one source directory
and hands the compressed bytes to its consumer (the HTTP response) while the
archive is still being built. Only a bounded number of chunks is ever held
in memory.

Flow:
    1. start() scans the source directory off the event loop and checks
       every file can be opened
    2. A dedicated worker thread writes the archive into a ChunkSink,
       draining it into a bounded asyncio.Queue after every read
    3. The consumer pulls chunks from the queue; a full queue blocks the
       worker (backpressure)
    4. The worker appends the central directory and signals the end

State machine:
    IDLE -> BUILDING -> COMPLETED | FAILED

Invariants:
    - One streamer per request; streamers are never shared or reused
    - The state is finalized exactly once
    - Once FAILED, the worker stops reading and compressing at its next step
    - Source file handles are closed on every exit path
    - A failed archive is never completed with a central directory on the wire

How to change safely:
    - Keep all zipfile access on the worker thread
    - Keep all state transitions on the event loop thread
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import contextlib
import logging
import os
import threading
import zipfile
from collections.abc import AsyncIterator, Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from functools import partial
from pathlib import Path
from typing import Any, BinaryIO

from ..errors import (
    ArchiveConstructionError,
    ArchiveStateError,
    ArchiveTransportError,
    FolderZipError,
)

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024
MAX_COMPRESSION_LEVEL = 9

# How often a blocked worker re-checks for cancellation
_PUT_POLL_SECONDS = 0.1


class ArchiveState(Enum):
    """Lifecycle of a single archive request."""

    IDLE = "idle"
    BUILDING = "building"
    COMPLETED = "completed"
    FAILED = "failed"


_TRANSITIONS: dict[ArchiveState, frozenset[ArchiveState]] = {
    ArchiveState.IDLE: frozenset({ArchiveState.BUILDING}),
    ArchiveState.BUILDING: frozenset({ArchiveState.COMPLETED, ArchiveState.FAILED}),
    ArchiveState.COMPLETED: frozenset(),
    ArchiveState.FAILED: frozenset(),
}


@dataclass(frozen=True)
class ArchiveRequest:
    """Parameters for building one archive.

    Attributes:
        source_dir: Directory whose contents are archived
        compression_level: DEFLATE level (0-9)
        chunk_size: Bytes read from a source file per step
        max_pending_chunks: Chunks that may wait for the consumer
    """

    source_dir: Path
    compression_level: int = MAX_COMPRESSION_LEVEL
    chunk_size: int = DEFAULT_CHUNK_SIZE
    max_pending_chunks: int = 8


@dataclass(frozen=True)
class ArchiveEntry:
    """A file or empty directory to be written into the archive."""

    path: Path
    arcname: str
    size: int = 0
    is_dir: bool = False


@dataclass(frozen=True)
class _Failure:
    error: FolderZipError


_END = object()


def open_source(path: Path) -> BinaryIO:
    """Open a source file for reading."""
    return open(path, "rb")


def _raise_walk_error(error: OSError) -> None:
    raise error


def scan_directory(source_dir: Path | str, verify_readable: bool = True) -> list[ArchiveEntry]:
    """List everything under source_dir that belongs in the archive.

    Files are listed with paths relative to source_dir, so the root
    directory itself never appears. Empty directories are listed so they
    survive extraction. Order is deterministic.

    Args:
        source_dir: Directory to scan
        verify_readable: Open each file once so unreadable files fail here,
            before any archive bytes are produced

    Returns:
        Archive entries in write order

    Raises:
        ArchiveConstructionError: If the directory is missing or a file
            cannot be read
    """
    root = Path(source_dir)
    if not root.is_dir():
        raise ArchiveConstructionError(f"Source directory not found: {root}", path=str(root))

    entries: list[ArchiveEntry] = []
    try:
        for dirpath, dirnames, filenames in os.walk(root, onerror=_raise_walk_error):
            dirnames.sort()
            filenames.sort()
            current = Path(dirpath)
            relative = current.relative_to(root)

            if current != root and not dirnames and not filenames:
                entries.append(
                    ArchiveEntry(path=current, arcname=f"{relative.as_posix()}/", is_dir=True)
                )
                continue

            for name in filenames:
                path = current / name
                # Skips sockets, fifos and dangling symlinks
                if not path.is_file():
                    continue
                arcname = (relative / name).as_posix()
                if verify_readable:
                    try:
                        with open_source(path):
                            pass
                    except OSError as e:
                        raise ArchiveConstructionError(
                            f"Cannot read {arcname}: {e.strerror or e}", path=str(path)
                        ) from e
                entries.append(ArchiveEntry(path=path, arcname=arcname, size=path.stat().st_size))
    except OSError as e:
        failed = e.filename or root
        raise ArchiveConstructionError(
            f"Cannot read {failed}: {e.strerror or e}", path=str(failed)
        ) from e

    return entries


class ChunkSink:
    """Non-seekable write target that collects compressed bytes.

    zipfile detects the missing tell()/seek() and writes data descriptors
    instead of seeking back to patch local headers, so output is strictly
    sequential.
    """

    def __init__(self) -> None:
        self._buffer = bytearray()

    def write(self, data: bytes) -> int:
        self._buffer += data
        return len(data)

    def flush(self) -> None:
        pass

    def drain(self) -> bytes:
        """Return and clear everything written since the last drain."""
        data = bytes(self._buffer)
        self._buffer.clear()
        return data


def _no_flush() -> None:
    pass


def write_archive(
    fileobj: Any,
    entries: Iterable[ArchiveEntry],
    *,
    compression_level: int = MAX_COMPRESSION_LEVEL,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    flush: Callable[[], None] | None = None,
) -> None:
    """Write a ZIP archive of entries into fileobj.

    The central directory is written when the archive is closed, which
    also happens when an entry fails. Output of a failed call is not a
    valid archive and must be discarded by the caller.

    Args:
        fileobj: Writable binary file object; need not be seekable
        entries: Entries from scan_directory()
        compression_level: DEFLATE level (0-9)
        chunk_size: Bytes read from a source file per step
        flush: Called after every chunk and entry; may raise to stop the build

    Raises:
        ArchiveConstructionError: If a source cannot be read
        ValueError: If chunk_size is not positive
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    flush = flush or _no_flush
    with zipfile.ZipFile(
        fileobj,
        "w",
        compression=zipfile.ZIP_DEFLATED,
        compresslevel=compression_level,
        strict_timestamps=False,
    ) as archive:
        for entry in entries:
            if entry.is_dir:
                try:
                    archive.write(entry.path, entry.arcname)
                except OSError as e:
                    raise ArchiveConstructionError(
                        f"Cannot read {entry.arcname}: {e.strerror or e}", path=str(entry.path)
                    ) from e
            else:
                _write_file_entry(archive, entry, compression_level, chunk_size, flush)
            flush()


def _write_file_entry(
    archive: zipfile.ZipFile,
    entry: ArchiveEntry,
    compression_level: int,
    chunk_size: int,
    flush: Callable[[], None],
) -> None:
    try:
        zinfo = zipfile.ZipInfo.from_file(entry.path, entry.arcname, strict_timestamps=False)
        source = open_source(entry.path)
    except OSError as e:
        raise ArchiveConstructionError(
            f"Cannot read {entry.arcname}: {e.strerror or e}", path=str(entry.path)
        ) from e

    zinfo.compress_type = zipfile.ZIP_DEFLATED
    if hasattr(zinfo, "compress_level"):
        zinfo.compress_level = compression_level
    else:
        # Python < 3.13 only has the attribute ZipFile.write() itself sets
        zinfo._compresslevel = compression_level

    with source, archive.open(zinfo, "w") as dest:
        while True:
            try:
                chunk = source.read(chunk_size)
            except OSError as e:
                raise ArchiveConstructionError(
                    f"Cannot read {entry.arcname}: {e.strerror or e}", path=str(entry.path)
                ) from e
            if not chunk:
                break
            dest.write(chunk)
            flush()


class ArchiveStreamer:
    """Builds one ZIP archive and streams it to a single consumer.

    Attributes:
        request: Archive parameters
        bytes_written: Archive bytes handed to the consumer so far

    Example:
        >>> streamer = ArchiveStreamer(ArchiveRequest(Path("Test")))
        >>> body = await streamer.start()   # raises before any byte is sent
        >>> async for chunk in body:
        ...     await send(chunk)
        >>> streamer.state
        <ArchiveState.COMPLETED: 'completed'>
    """

    def __init__(self, request: ArchiveRequest) -> None:
        self.request = request
        self.bytes_written = 0

        self._state = ArchiveState.IDLE
        self._cancelled = threading.Event()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._queue: asyncio.Queue[Any] | None = None
        self._worker: threading.Thread | None = None

    @property
    def state(self) -> ArchiveState:
        """Current lifecycle state."""
        return self._state

    @property
    def finalized(self) -> bool:
        """Whether the request reached COMPLETED or FAILED."""
        return self._state in (ArchiveState.COMPLETED, ArchiveState.FAILED)

    async def start(self) -> AsyncIterator[bytes]:
        """Begin building the archive.

        Waits until the first compressed chunk exists, so every failure
        that can be detected up front is raised here, before the caller
        commits a response status.

        Returns:
            Async iterator over the remaining archive bytes

        Raises:
            ArchiveConstructionError: If the archive cannot be started
            ArchiveStateError: If the streamer was already started
        """
        self._transition(ArchiveState.BUILDING)
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue(maxsize=self.request.max_pending_chunks)

        try:
            entries = await self._loop.run_in_executor(
                None, scan_directory, self.request.source_dir
            )
            logger.info(
                "Building archive",
                extra={
                    "source_dir": str(self.request.source_dir),
                    "entries": len(entries),
                    "compression_level": self.request.compression_level,
                },
            )

            self._worker = threading.Thread(
                target=self._produce,
                args=(entries,),
                name="folderzip-archive",
                daemon=True,
            )
            self._worker.start()

            first = await self._next_chunk()
        except FolderZipError as e:
            self._fail(e)
            raise
        except Exception as e:
            error = ArchiveConstructionError(f"Failed to start archive: {e}")
            self._fail(error)
            raise error from e
        except BaseException:
            self.cancel()
            raise

        return self._stream(first)

    def cancel(self) -> None:
        """Abort the build because the consumer went away.

        Does nothing once the request is finalized.
        """
        if self._state is not ArchiveState.BUILDING:
            return
        self._cancelled.set()
        self._transition(ArchiveState.FAILED)
        logger.warning(
            "Archive stream aborted before completion",
            extra={
                "source_dir": str(self.request.source_dir),
                "bytes_written": self.bytes_written,
            },
        )

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the worker thread to exit.

        Must not be called from the event loop thread: the worker needs the
        loop to hand over its remaining chunks. Use asyncio.to_thread().

        Returns:
            True if the worker is no longer running
        """
        if self._worker is None:
            return True
        self._worker.join(timeout)
        return not self._worker.is_alive()

    async def _stream(self, first: bytes | None) -> AsyncIterator[bytes]:
        try:
            chunk = first
            while chunk is not None:
                yield chunk
                chunk = await self._next_chunk()
        finally:
            self.cancel()

    async def _next_chunk(self) -> bytes | None:
        assert self._queue is not None
        item = await self._queue.get()
        if isinstance(item, _Failure):
            self._fail(item.error)
            raise item.error
        if item is _END:
            self._complete()
            return None
        self.bytes_written += len(item)
        return item

    def _transition(self, new_state: ArchiveState) -> None:
        if new_state not in _TRANSITIONS[self._state]:
            raise ArchiveStateError(self._state.value, new_state.value)
        self._state = new_state

    def _complete(self) -> None:
        self._transition(ArchiveState.COMPLETED)
        logger.info(
            "Archive wrote %d bytes",
            self.bytes_written,
            extra={"source_dir": str(self.request.source_dir)},
        )

    def _fail(self, error: FolderZipError) -> None:
        if self.finalized:
            return
        self._cancelled.set()
        self._transition(ArchiveState.FAILED)
        logger.error(
            f"Archive construction failed: {error.message}",
            extra={"source_dir": str(self.request.source_dir), "code": error.code},
        )

    # --- Worker thread ---

    def _produce(self, entries: list[ArchiveEntry]) -> None:
        sink = ChunkSink()
        try:
            write_archive(
                sink,
                entries,
                compression_level=self.request.compression_level,
                chunk_size=self.request.chunk_size,
                flush=partial(self._flush, sink),
            )
            self._flush(sink)
            self._put(_END)
        except ArchiveTransportError:
            logger.info(
                "Archive build stopped, consumer went away",
                extra={"source_dir": str(self.request.source_dir)},
            )
        except Exception as e:
            if isinstance(e, FolderZipError):
                error = e
            else:
                error = ArchiveConstructionError(f"Archive build failed: {e}")
            # The consumer may already be gone
            with contextlib.suppress(ArchiveTransportError):
                self._put(_Failure(error))

    def _flush(self, sink: ChunkSink) -> None:
        data = sink.drain()
        if data:
            self._put(data)
        elif self._cancelled.is_set():
            raise ArchiveTransportError("Archive consumer disconnected")

    def _put(self, item: Any) -> None:
        """Hand an item to the event loop, blocking while the queue is full."""
        assert self._loop is not None and self._queue is not None
        if self._cancelled.is_set():
            raise ArchiveTransportError("Archive consumer disconnected")

        future = asyncio.run_coroutine_threadsafe(self._queue.put(item), self._loop)
        while True:
            try:
                future.result(timeout=_PUT_POLL_SECONDS)
                return
            except concurrent.futures.TimeoutError:
                if self._cancelled.is_set():
                    future.cancel()
                    raise ArchiveTransportError("Archive consumer disconnected") from None
