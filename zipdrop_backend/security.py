from __future__ import annotations

import os
import re
from pathlib import Path, PurePosixPath

from .errors import PathEscape


_LEADING_SEPARATORS_RE = re.compile(r"^[/\\]+")


def is_safe_basename(name: str) -> bool:
    """Allow only simple filenames (no directories)."""
    if not isinstance(name, str) or not name:
        return False
    if name in (".", ".."):
        return False
    if name != PurePosixPath(name).name:
        return False
    if "/" in name or "\\" in name or "\x00" in name:
        return False
    return True


def resolve_within(root: Path, untrusted: str) -> Path:
    """Resolve a client-relative path against root and ensure it stays strictly inside.

    Leading separators are stripped (no absolute overrides), backslashes count as
    separators, and `.`/`..`/empty segments are collapsed before the prefix check.
    This is string canonicalization only: the filesystem is never consulted.
    """
    if not isinstance(untrusted, str) or "\x00" in untrusted:
        raise PathEscape(str(untrusted))

    base = os.path.normpath(os.path.abspath(root))
    relative = _LEADING_SEPARATORS_RE.sub("", untrusted.replace("\\", "/"))
    if relative:
        relative = os.path.normpath(relative)
    candidate = os.path.normpath(os.path.join(base, relative))

    # Strict descendant only: the root itself is not a valid target.
    if os.path.commonpath([base, candidate]) != base or candidate == base:
        raise PathEscape(untrusted)
    return Path(candidate)
