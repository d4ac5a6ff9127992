"""Error taxonomy shared by the engine and the HTTP adapter."""

from __future__ import annotations

from dataclasses import dataclass


class StorageError(Exception):
    """Base class for every failure the engine reports."""


class PathEscape(StorageError, ValueError):
    """An untrusted path resolved outside (or onto) its sandbox root."""

    def __init__(self, untrusted: str) -> None:
        super().__init__("Path traversal attempt")
        self.untrusted = untrusted


class EmptyUpload(StorageError, ValueError):
    def __init__(self) -> None:
        super().__init__("No files uploaded")


@dataclass(frozen=True)
class WriteFailure:
    relative_path: str
    message: str


class PartialWriteFailure(StorageError):
    """Some entries of a batch were written, at least one was not.

    Files already written stay on disk.
    """

    def __init__(self, written: int, failures: list[WriteFailure]) -> None:
        super().__init__(f"{len(failures)} file(s) failed to write, {written} written")
        self.written = written
        self.failures = failures


class ArchiveFailure(StorageError):
    def __init__(self, folder: str, cause: BaseException) -> None:
        super().__init__(f"Compaction failed for {folder}: {cause}")
        self.folder = folder
        self.cause = cause


class NotFound(StorageError, FileNotFoundError):
    pass


class TooLarge(StorageError):
    def __init__(self, size: int, limit: int) -> None:
        super().__init__(f"File too large ({size} > {limit} bytes)")
        self.size = size
        self.limit = limit


class FolderLocked(StorageError):
    """The folder is mid-upload; its lock marker is present."""

    def __init__(self, folder: str) -> None:
        super().__init__(f"Upload in progress for {folder}")
        self.folder = folder
