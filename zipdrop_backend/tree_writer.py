from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Sequence

from .errors import EmptyUpload, PartialWriteFailure, WriteFailure
from .security import resolve_within


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadEntry:
    relative_path: str
    content: bytes


@dataclass(frozen=True)
class BatchPlan:
    """Where a batch lands: flat files at the root, or a tree under one folder."""

    mode: str  # "flat" | "folder"
    folder_name: str | None
    targets: list[tuple[UploadEntry, Path]]


def _posix(path: str) -> str:
    return (path or "").replace("\\", "/")


def root_name(paths: Sequence[str]) -> str | None:
    """Shared top-level folder name, read from the first non-empty path."""
    cleaned = [_posix(p) for p in paths if p]
    if not cleaned:
        return None
    parts = cleaned[0].split("/")
    return parts[0] if len(parts) > 1 and parts[0] else None


def is_nested(paths: Sequence[str]) -> bool:
    return any("/" in _posix(p) for p in paths if p)


def _strip_root(relative_path: str, folder_name: str | None) -> str:
    rel = _posix(relative_path)
    if folder_name and rel.startswith(folder_name + "/"):
        return rel[len(folder_name) + 1 :]
    return rel


def plan_batch(uploads_root: Path, entries: Sequence[UploadEntry], now_ms: int | None = None) -> BatchPlan:
    """Validate every target of a batch before anything touches the disk.

    Raises PathEscape on the first entry that would land outside its sandbox, so a
    rejected batch has no side effects.
    """
    if not entries:
        raise EmptyUpload()

    paths = [e.relative_path for e in entries]
    shared = root_name(paths)

    if not is_nested(paths) and not shared:
        targets = []
        for entry in entries:
            # Flat upload: directory components are discarded, collisions overwrite.
            name = PurePosixPath(_posix(entry.relative_path)).name
            targets.append((entry, resolve_within(uploads_root, name)))
        return BatchPlan(mode="flat", folder_name=None, targets=targets)

    if shared is None:
        stamp = now_ms if now_ms is not None else int(time.time() * 1000)
        folder_name = f"upload_{stamp}"
    else:
        folder_name = shared
    # root_name() yields a single segment, so this lands directly under the root or escapes.
    folder_dir = resolve_within(uploads_root, folder_name)

    targets = [
        (entry, resolve_within(folder_dir, _strip_root(entry.relative_path, shared)))
        for entry in entries
    ]
    return BatchPlan(mode="folder", folder_name=folder_dir.name, targets=targets)


def write_tree(plan: BatchPlan) -> int:
    """Write every planned entry, creating intermediate directories as needed.

    Not transactional: a failed entry does not undo earlier ones. When any entry
    fails, PartialWriteFailure carries the number written and each failure.
    """
    written = 0
    failures: list[WriteFailure] = []
    for entry, target in plan.targets:
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(entry.content)
            written += 1
        except OSError as e:
            logger.warning("Failed to write %s: %s", entry.relative_path, e)
            failures.append(WriteFailure(relative_path=entry.relative_path, message=str(e)))
    if failures:
        raise PartialWriteFailure(written=written, failures=failures)
    return written
