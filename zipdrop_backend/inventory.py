from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass, field
from pathlib import Path

from .config import ARCHIVE_SUFFIX, FOLDER_SIZE_CEILING_BYTES, LOCK_SUFFIX, PARTIAL_SUFFIX


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileRecord:
    name: str
    size: int
    ext: str
    modified: float
    age_seconds: int


@dataclass(frozen=True)
class FolderRecord:
    name: str
    count: int
    zip: bool
    locked: bool
    modified: float
    age_seconds: int
    size: int | None = None
    partial: bool = False


@dataclass(frozen=True)
class Inventory:
    files: list[FileRecord] = field(default_factory=list)
    folders: list[FolderRecord] = field(default_factory=list)


def compute_folder_size(directory: Path, ceiling: int = FOLDER_SIZE_CEILING_BYTES) -> int:
    """Sum file sizes below directory with an explicit stack instead of recursion.

    Stops as soon as the running total passes ceiling and returns that partial
    total. Unreadable subtrees are skipped, so the figure is best-effort.
    """
    total = 0
    stack = [os.fspath(directory)]
    while stack:
        current = stack.pop()
        try:
            with os.scandir(current) as it:
                for entry in it:
                    if entry.is_dir(follow_symlinks=False):
                        stack.append(entry.path)
                    elif entry.is_file(follow_symlinks=False):
                        total += entry.stat(follow_symlinks=False).st_size
                        if total > ceiling:
                            return total
        except OSError as e:
            logger.debug("Skipping unreadable subtree %s: %s", current, e)
    return total


def _age_seconds(now: float, mtime: float) -> int:
    return int(round(now - mtime))


def list_inventory(root: Path, detailed: bool = False, ceiling: int = FOLDER_SIZE_CEILING_BYTES) -> Inventory:
    """Classify the immediate children of root into file and folder records.

    Lock markers and leftover `<name>.zip.partial` files from failed archive
    builds are not listed as files; the owning folder's `locked` and `partial`
    flags report them. Folder sizes are only computed when detailed is set.
    """
    inventory = Inventory()
    if not root.exists():
        return inventory

    now = time.time()
    for child in sorted(root.iterdir(), key=lambda p: p.name):
        name = child.name
        try:
            if child.is_dir() and not child.is_symlink():
                stat = child.stat()
                inventory.folders.append(
                    FolderRecord(
                        name=name,
                        count=sum(1 for _ in child.iterdir()),
                        zip=(root / f"{name}{ARCHIVE_SUFFIX}").is_file(),
                        locked=(root / f"{name}{LOCK_SUFFIX}").exists(),
                        modified=stat.st_mtime,
                        age_seconds=_age_seconds(now, stat.st_mtime),
                        size=compute_folder_size(child, ceiling) if detailed else None,
                        partial=(root / f"{name}{ARCHIVE_SUFFIX}{PARTIAL_SUFFIX}").is_file(),
                    )
                )
            elif child.is_file():
                if name.endswith((LOCK_SUFFIX, ARCHIVE_SUFFIX + PARTIAL_SUFFIX)):
                    continue
                stat = child.stat()
                inventory.files.append(
                    FileRecord(
                        name=name,
                        size=stat.st_size,
                        ext=Path(name).suffix.lstrip(".").lower(),
                        modified=stat.st_mtime,
                        age_seconds=_age_seconds(now, stat.st_mtime),
                    )
                )
        except FileNotFoundError:
            # Removed by a concurrent delete/compaction between iterdir() and stat().
            continue
    return inventory
