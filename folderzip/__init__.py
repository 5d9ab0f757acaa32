"""
folderzip - Stream a server-side directory to HTTP clients as a ZIP archive.

The service exposes:
- GET /            Informational payload (owner name + echoed request headers)
- GET /downloadzip Freshly built ZIP of the configured source directory
- GET /health      Liveness probe

Invariants:
    - Every download builds an independent archive; nothing is shared between requests
    - Archive bytes are sent as they are produced, never buffered whole
    - A request is finalized exactly once (completed or failed)

Usage:
    folderzip
    uvicorn folderzip.app:app --port 3000
"""

from ._version import __version__

__all__ = ["__version__"]
