from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

from . import locks
from .archiver import archive_path, compact_folder
from .config import PARTIAL_SUFFIX, PREVIEW_MAX_BYTES
from .errors import FolderLocked, NotFound, TooLarge
from .security import resolve_within
from .tree_writer import UploadEntry, plan_batch, write_tree


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadResult:
    mode: str  # "flat" | "folder"
    name: str
    file_count: int
    names: list[str] = field(default_factory=list)


def ingest(root: Path, entries: Sequence[UploadEntry], now_ms: int | None = None) -> UploadResult:
    """Persist one upload batch.

    Flat batches are written straight into root. Folder batches are written
    under their shared root name while `<name>.uploading` is held, then compacted
    into `<name>.zip` (always rebuilt) and the tree removed, all before the lock
    is released.

    A failure aborts the remaining steps without undoing finished ones.
    """
    plan = plan_batch(root, entries, now_ms=now_ms)

    if plan.mode == "flat":
        written = write_tree(plan)
        names = [target.name for _, target in plan.targets]
        return UploadResult(mode="flat", name=names[0], file_count=written, names=names)

    folder_name = plan.folder_name
    assert folder_name is not None
    with locks.holding(root, folder_name):
        resolve_within(root, folder_name).mkdir(parents=True, exist_ok=True)
        written = write_tree(plan)
        outcome = compact_folder(root, folder_name, reuse_existing=False)
    logger.info("Uploaded folder %s (%d files, %s)", folder_name, written, outcome.status.value)
    return UploadResult(mode="folder", name=folder_name, file_count=written)


def resolve_file(root: Path, segments: Sequence[str]) -> Path:
    """Locate a stored file by `[name]` at the root or `[folder, name]` inside a folder."""
    if len(segments) == 1:
        path = resolve_within(root, segments[0])
    elif len(segments) == 2:
        path = resolve_within(resolve_within(root, segments[0]), segments[1])
    else:
        raise NotFound("File not found")
    if not path.is_file():
        raise NotFound("File not found")
    return path


def fetch_file(root: Path, segments: Sequence[str]) -> bytes:
    return resolve_file(root, segments).read_bytes()


def resolve_archive(root: Path, folder_name: str) -> Path:
    path = archive_path(root, folder_name)
    if not path.is_file():
        raise NotFound("ZIP not found")
    return path


def fetch_archive(root: Path, folder_name: str) -> bytes:
    return resolve_archive(root, folder_name).read_bytes()


def delete_file(root: Path, name: str) -> None:
    path = resolve_within(root, name)
    if path.is_dir() and not path.is_symlink():
        raise NotFound("Not a file")
    try:
        path.unlink()
    except FileNotFoundError:
        raise NotFound("File not found")


def delete_folder(root: Path, name: str) -> None:
    """Delete a folder together with its archive (and any stale partial archive).

    Refuses while the folder's upload lock is held.
    """
    folder_dir = resolve_within(root, name)
    if locks.is_held(root, name):
        raise FolderLocked(name)

    archive = archive_path(root, name)
    partial = archive.with_name(archive.name + PARTIAL_SUFFIX)
    found = False
    if folder_dir.is_dir() and not folder_dir.is_symlink():
        shutil.rmtree(folder_dir)
        found = True
    for leftover in (archive, partial):
        if leftover.is_file():
            leftover.unlink()
            found = True
    if not found:
        raise NotFound("Folder not found")


def delete_all(root: Path) -> int:
    """Purge every top-level entry under root. Returns the number removed."""
    deleted = 0
    if not root.exists():
        return 0
    for child in root.iterdir():
        if child.is_dir() and not child.is_symlink():
            shutil.rmtree(child)
        else:
            child.unlink(missing_ok=True)
        deleted += 1
    logger.info("Purged %d entries", deleted)
    return deleted


def preview_text(root: Path, name: str, limit: int = PREVIEW_MAX_BYTES) -> str:
    path = resolve_within(root, name)
    if not path.is_file():
        raise NotFound("Not found")
    size = path.stat().st_size
    if size > limit:
        raise TooLarge(size, limit)
    return path.read_text(encoding="utf-8", errors="replace")
