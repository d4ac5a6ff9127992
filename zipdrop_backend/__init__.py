"""Backend engine for the zipdrop upload service.

This package intentionally keeps FastAPI route handlers thin:
- sandboxed path resolution for every client-supplied name
- folder tree reconstruction from an upload batch
- marker-file upload locks
- ZIP compaction of idle folders and the startup/admin sweep
- inventory listing with bounded folder-size computation

Concurrency note:
There is no in-process mutex around folders. The `<name>.uploading` marker on
disk is the lock and `<name>.zip` is the proof of compaction, so every
operation has to go through the same uploads root.
"""
