"""Pytest configuration and shared fixtures.

The config module creates its uploads root at import time, so point it at a
throwaway directory before anything from zipdrop_backend is imported.
"""

import os
import tempfile
from pathlib import Path

os.environ.setdefault("ZIPDROP_UPLOADS_ROOT", tempfile.mkdtemp(prefix="zipdrop-tests-"))
os.environ.setdefault("AUTO_COMPACT_ON_START", "false")

import pytest  # noqa: E402


@pytest.fixture
def uploads_root(tmp_path: Path) -> Path:
    """Empty uploads root for one test."""
    root = tmp_path / "uploads"
    root.mkdir()
    return root


@pytest.fixture
def docs_folder(uploads_root: Path) -> Path:
    """A small folder tree directly under the uploads root."""
    folder = uploads_root / "docs"
    (folder / "sub").mkdir(parents=True)
    (folder / "a.txt").write_bytes(b"hello")
    (folder / "sub" / "b.txt").write_bytes(b"world")
    return folder
