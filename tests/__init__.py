"""
folderzip Test Suite.

This package contains:
- unit/: Unit tests (archive builder, configuration, CLI)
- integration/: HTTP tests against the in-process FastAPI app
"""
