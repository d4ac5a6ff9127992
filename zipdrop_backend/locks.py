"""Marker-file upload locks.

`<folder>.uploading` next to the folder means "mid-construction, do not compact".
The marker is the lock: nothing is tracked in memory, so a crashed upload leaves
its marker behind and the folder stays out of compaction until the marker is
cleared by hand.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from .config import LOCK_SUFFIX
from .errors import PathEscape
from .security import is_safe_basename, resolve_within


logger = logging.getLogger(__name__)


def lock_path(root: Path, folder_name: str) -> Path:
    if not is_safe_basename(folder_name):
        raise PathEscape(folder_name)
    return resolve_within(root, f"{folder_name}{LOCK_SUFFIX}")


def acquire(root: Path, folder_name: str) -> Path:
    """Create the marker. Acquiring an already-held lock is not an error."""
    path = lock_path(root, folder_name)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.touch(exist_ok=True)
    logger.debug("Lock acquired for %s", folder_name)
    return path


def release(root: Path, folder_name: str) -> None:
    """Remove the marker. Releasing an absent lock is not an error."""
    lock_path(root, folder_name).unlink(missing_ok=True)
    logger.debug("Lock released for %s", folder_name)


def is_held(root: Path, folder_name: str) -> bool:
    return lock_path(root, folder_name).exists()


@contextmanager
def holding(root: Path, folder_name: str) -> Iterator[Path]:
    path = acquire(root, folder_name)
    try:
        yield path
    finally:
        release(root, folder_name)
