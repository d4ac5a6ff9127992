from __future__ import annotations

import os
from pathlib import Path


# Root directory for every persisted upload (loose files, folders, archives, lock markers).
# Default: project-local ./uploads for easier inspection and cleanup.
# Override with env var ZIPDROP_UPLOADS_ROOT.
_root_raw = os.environ.get("ZIPDROP_UPLOADS_ROOT")
if _root_raw and _root_raw.strip():
    UPLOADS_ROOT = Path(_root_raw)
else:
    # zipdrop_backend/ -> project root
    UPLOADS_ROOT = Path(__file__).resolve().parent.parent / "uploads"
UPLOADS_ROOT = UPLOADS_ROOT.resolve()
UPLOADS_ROOT.mkdir(parents=True, exist_ok=True)

# Compact leftover folders once at startup. Only the literal "false" disables it.
AUTO_COMPACT_ON_START = os.environ.get("AUTO_COMPACT_ON_START", "true").strip().lower() != "false"

# Upload limits (best-effort; also enforced by proxy/browser typically).
MAX_FILE_UPLOAD_BYTES = int(os.environ.get("ZIPDROP_MAX_FILE_UPLOAD_BYTES", str(512 * 1024 * 1024)))  # 512MB

# Folder size computation stops once the running total passes this ceiling.
FOLDER_SIZE_CEILING_BYTES = int(os.environ.get("ZIPDROP_FOLDER_SIZE_CEILING_BYTES", str(1024 * 1024 * 1024)))  # 1GiB

# Text preview refuses anything larger than this.
PREVIEW_MAX_BYTES = int(os.environ.get("ZIPDROP_PREVIEW_MAX_BYTES", str(2 * 1024 * 1024)))  # 2MiB

ZIP_COMPRESSLEVEL = int(os.environ.get("ZIPDROP_ZIP_COMPRESSLEVEL", "9"))

LOG_LEVEL = os.environ.get("ZIPDROP_LOG_LEVEL", "INFO").strip().upper() or "INFO"
PORT = int(os.environ.get("PORT", "6469"))

# Sibling naming at the uploads root: <folder>.zip, <folder>.uploading, <folder>.zip.partial
ARCHIVE_SUFFIX = ".zip"
LOCK_SUFFIX = ".uploading"
PARTIAL_SUFFIX = ".partial"
HIDDEN_PREFIX = "."
