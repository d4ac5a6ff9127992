from __future__ import annotations

import logging
import os
import shutil
import zipfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable

from . import locks
from .config import ARCHIVE_SUFFIX, PARTIAL_SUFFIX, ZIP_COMPRESSLEVEL
from .errors import ArchiveFailure, PathEscape
from .security import is_safe_basename, resolve_within


logger = logging.getLogger(__name__)


class CompactionStatus(str, Enum):
    COMPACTED = "compacted"
    REMOVED = "removed"
    SKIPPED = "skipped"
    ERROR = "error"


@dataclass(frozen=True)
class CompactionOutcome:
    """Per-folder result of a compaction attempt.

    `reason` explains skips and errors; for COMPACTED it may carry a cleanup
    warning when the archive is durable but the folder could not be removed.
    """

    folder: str
    status: CompactionStatus
    reason: str | None = None
    entries: int | None = None


def archive_path(root: Path, folder_name: str) -> Path:
    if not is_safe_basename(folder_name):
        raise PathEscape(folder_name)
    return resolve_within(root, f"{folder_name}{ARCHIVE_SUFFIX}")


def build_archive(
    folder_dir: Path,
    dest: Path,
    *,
    exclude: Iterable[Path] = (),
    compresslevel: int = ZIP_COMPRESSLEVEL,
) -> int:
    """Write every file under folder_dir into a deflated ZIP at dest.

    Entries keep their path relative to folder_dir. Walk order is sorted so the
    same tree always yields the same entry order. Symlinks are not followed or
    stored. Files dated before 1980 are stored as 1980-01-01, the earliest time
    ZIP can represent. The file is flushed and fsynced before returning.

    Returns the number of file entries written.
    """
    skip = {os.path.abspath(p) for p in exclude}
    skip.add(os.path.abspath(dest))
    written = 0

    with open(dest, "wb") as fh:
        with zipfile.ZipFile(
            fh,
            mode="w",
            compression=zipfile.ZIP_DEFLATED,
            compresslevel=compresslevel,
            strict_timestamps=False,
        ) as zf:
            for dirpath, dirnames, filenames in os.walk(folder_dir, followlinks=False):
                dirnames.sort()
                rel_dir = Path(dirpath).relative_to(folder_dir)
                if not filenames and not dirnames and rel_dir != Path("."):
                    # Keep empty directories as explicit entries.
                    zf.writestr(rel_dir.as_posix() + "/", b"")
                for name in sorted(filenames):
                    full = os.path.join(dirpath, name)
                    if os.path.abspath(full) in skip or os.path.islink(full):
                        continue
                    zf.write(full, arcname=(rel_dir / name).as_posix())
                    written += 1
        fh.flush()
        os.fsync(fh.fileno())
    return written


def _yielded(folder_name: str) -> CompactionOutcome:
    logger.info("Upload started on %s during compaction; leaving it", folder_name)
    return CompactionOutcome(folder=folder_name, status=CompactionStatus.SKIPPED, reason="upload-in-progress")


def compact_folder(root: Path, folder_name: str, *, reuse_existing: bool = True, yield_to_lock: bool = False) -> CompactionOutcome:
    """Replace a folder under root with `<folder>.zip`.

    With reuse_existing, an archive that is already present is taken as the
    durable copy and the folder is just removed. Otherwise a fresh archive is
    built into `<folder>.zip.partial` and renamed over `<folder>.zip`; the
    folder is deleted only after that rename.

    With yield_to_lock, the upload lock is checked again right before the folder
    would be deleted (on the fast path, after the build and after the rename);
    an upload that took it meanwhile wins and the folder is left alone.

    Raises ArchiveFailure when the archive cannot be produced (folder and any
    partial file are left in place) or a redundant folder cannot be removed.
    """
    folder_dir = resolve_within(root, folder_name)
    if folder_dir.is_symlink() or not folder_dir.is_dir():
        return CompactionOutcome(folder=folder_name, status=CompactionStatus.SKIPPED, reason="not-directory")

    archive = archive_path(root, folder_name)
    if reuse_existing and archive.exists():
        if yield_to_lock and locks.is_held(root, folder_name):
            return _yielded(folder_name)
        try:
            shutil.rmtree(folder_dir)
        except OSError as e:
            raise ArchiveFailure(folder_name, e) from e
        logger.info("Removed %s; archive already present", folder_name)
        return CompactionOutcome(folder=folder_name, status=CompactionStatus.REMOVED, reason="zip-existed")

    partial = archive.with_name(archive.name + PARTIAL_SUFFIX)
    try:
        entries = build_archive(folder_dir, partial, exclude=(archive, locks.lock_path(root, folder_name)))
    except (OSError, ValueError, zipfile.LargeZipFile) as e:
        raise ArchiveFailure(folder_name, e) from e

    if yield_to_lock and locks.is_held(root, folder_name):
        partial.unlink(missing_ok=True)
        return _yielded(folder_name)

    try:
        os.replace(partial, archive)
    except OSError as e:
        raise ArchiveFailure(folder_name, e) from e
    logger.info("Archived %s (%d files)", folder_name, entries)

    if yield_to_lock and locks.is_held(root, folder_name):
        # The upload rebuilds the archive itself once its tree is complete.
        return _yielded(folder_name)

    try:
        shutil.rmtree(folder_dir)
    except OSError as e:
        # The archive is durable; the next sweep's fast path removes the leftovers.
        logger.warning("Cleanup (folder removal) failed for %s: %s", folder_name, e)
        return CompactionOutcome(
            folder=folder_name,
            status=CompactionStatus.COMPACTED,
            reason=f"cleanup-failed: {e}",
            entries=entries,
        )
    return CompactionOutcome(folder=folder_name, status=CompactionStatus.COMPACTED, entries=entries)
