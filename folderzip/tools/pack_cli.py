"""
Pack CLI tool for folderzip.

Writes the same archive the /downloadzip endpoint streams, but to a local
file.

Usage:
    folderzip-pack Test/ folder.zip
    folderzip-pack Test/ folder.zip --level 6

Invariants:
    - OUTPUT only ever holds a complete archive
    - A failed build leaves no file behind and exits non-zero
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
import tempfile
from pathlib import Path

from ..archive.streamer import (
    DEFAULT_CHUNK_SIZE,
    MAX_COMPRESSION_LEVEL,
    scan_directory,
    write_archive,
)
from ..errors import ArchiveConstructionError, FolderZipError

logger = logging.getLogger(__name__)


def pack_directory(
    source_dir: Path | str,
    output: Path | str,
    compression_level: int = MAX_COMPRESSION_LEVEL,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> int:
    """Archive source_dir into output.

    The archive is written to a temporary file next to output and renamed
    into place once it is complete.

    Args:
        source_dir: Directory to archive
        output: Destination .zip path
        compression_level: DEFLATE level (0-9)
        chunk_size: Bytes read per step

    Returns:
        Number of entries written

    Raises:
        ArchiveConstructionError: If the source cannot be archived
    """
    output = Path(output)
    entries = scan_directory(source_dir)

    try:
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{output.name}.", suffix=".tmp", dir=output.parent
        )
    except OSError as e:
        raise ArchiveConstructionError(
            f"Cannot write to {output.parent}: {e.strerror or e}", path=str(output)
        ) from e

    try:
        with os.fdopen(fd, "wb") as fileobj:
            write_archive(
                fileobj,
                entries,
                compression_level=compression_level,
                chunk_size=chunk_size,
            )
        os.replace(tmp_name, output)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise

    logger.info(
        "Archive written",
        extra={"output": str(output), "entries": len(entries)},
    )
    return len(entries)


def _level(value: str) -> int:
    level = int(value)
    if not 0 <= level <= 9:
        raise argparse.ArgumentTypeError("level must be between 0 and 9")
    return level


def _chunk_size(value: str) -> int:
    size = int(value)
    if size <= 0:
        raise argparse.ArgumentTypeError("chunk size must be positive")
    return size


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="folderzip-pack",
        description="Write a ZIP archive of a directory to a file",
    )
    parser.add_argument("source", help="Directory to archive")
    parser.add_argument("output", help="Destination .zip file")
    parser.add_argument(
        "--level",
        type=_level,
        default=MAX_COMPRESSION_LEVEL,
        help="Compression level 0-9 (default: 9)",
    )
    parser.add_argument(
        "--chunk-size",
        type=_chunk_size,
        default=DEFAULT_CHUNK_SIZE,
        help="Bytes read per step",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Entry point for folderzip-pack."""
    args = build_parser().parse_args(argv)

    try:
        count = pack_directory(
            args.source,
            args.output,
            compression_level=args.level,
            chunk_size=args.chunk_size,
        )
    except FolderZipError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    print(f"Wrote {count} entries to {args.output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
