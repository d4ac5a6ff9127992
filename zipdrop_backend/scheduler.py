from __future__ import annotations

import logging
from pathlib import Path

from . import locks
from .archiver import CompactionOutcome, CompactionStatus, compact_folder
from .config import HIDDEN_PREFIX
from .errors import StorageError
from .security import is_safe_basename


logger = logging.getLogger(__name__)


def compact_all(root: Path) -> list[CompactionOutcome]:
    """Compact every top-level folder under root, one folder at a time.

    Hidden folders, folders whose name cannot be addressed safely (e.g. a
    backslash in it) and folders with a live upload lock are reported as
    skipped and left untouched. A failure on one folder is recorded and the
    sweep moves on. Running it again is harmless: already-archived folders only
    get their leftovers removed.
    """
    results: list[CompactionOutcome] = []
    if not root.exists():
        return results

    for child in sorted(root.iterdir(), key=lambda p: p.name):
        if child.is_symlink() or not child.is_dir():
            continue
        name = child.name
        if name.startswith(HIDDEN_PREFIX):
            results.append(CompactionOutcome(folder=name, status=CompactionStatus.SKIPPED, reason="hidden"))
            continue
        if not is_safe_basename(name):
            logger.warning("Skipping %r: name is not addressable", name)
            results.append(CompactionOutcome(folder=name, status=CompactionStatus.SKIPPED, reason="unsafe-name"))
            continue
        try:
            if locks.is_held(root, name):
                logger.info("Skipping %s: upload in progress", name)
                results.append(
                    CompactionOutcome(folder=name, status=CompactionStatus.SKIPPED, reason="upload-in-progress")
                )
                continue
            results.append(compact_folder(root, name, reuse_existing=True, yield_to_lock=True))
        except (StorageError, OSError, ValueError) as e:
            logger.warning("Compaction of %s failed: %s", name, e)
            results.append(CompactionOutcome(folder=name, status=CompactionStatus.ERROR, reason=str(e)))
    return results
