"""Unit tests for the upload-facing operations (ingest, fetch, delete, preview)."""

import io
import zipfile
from pathlib import Path

import pytest
from zipdrop_backend import archiver, locks
from zipdrop_backend.errors import (
    ArchiveFailure,
    FolderLocked,
    NotFound,
    PartialWriteFailure,
    PathEscape,
    TooLarge,
)
from zipdrop_backend.tree_writer import UploadEntry
from zipdrop_backend.uploads import (
    delete_all,
    delete_file,
    delete_folder,
    fetch_archive,
    fetch_file,
    ingest,
    preview_text,
)


class TestIngest:
    """Tests for ingest."""

    def test_folder_upload_round_trip(self, uploads_root: Path) -> None:
        """The archive reproduces the batch; the folder and lock are gone afterwards."""
        result = ingest(
            uploads_root,
            [UploadEntry("docs/a.txt", b"hello"), UploadEntry("docs/sub/b.txt", b"world")],
        )

        assert result.mode == "folder"
        assert result.name == "docs"
        assert result.file_count == 2
        assert not (uploads_root / "docs").exists()
        assert not locks.is_held(uploads_root, "docs")

        with zipfile.ZipFile(io.BytesIO(fetch_archive(uploads_root, "docs"))) as zf:
            assert sorted(zf.namelist()) == ["a.txt", "sub/b.txt"]
            assert zf.read("a.txt") == b"hello"
            assert zf.read("sub/b.txt") == b"world"

    def test_flat_upload(self, uploads_root: Path) -> None:
        payload = b"%PDF-1.7 binary\x00\xff"

        result = ingest(uploads_root, [UploadEntry("report.pdf", payload)])

        assert result.mode == "flat"
        assert result.name == "report.pdf"
        assert result.file_count == 1
        assert fetch_file(uploads_root, ["report.pdf"]) == payload

    def test_malicious_path_writes_nothing(self, uploads_root: Path, tmp_path: Path) -> None:
        with pytest.raises(PathEscape):
            ingest(uploads_root, [UploadEntry("../../etc/passwd", b"pwned")])

        assert list(uploads_root.iterdir()) == []
        assert not (tmp_path / "etc").exists()

    def test_reupload_replaces_archive(self, uploads_root: Path) -> None:
        ingest(uploads_root, [UploadEntry("docs/a.txt", b"v1")])
        ingest(uploads_root, [UploadEntry("docs/a.txt", b"v2")])

        with zipfile.ZipFile(uploads_root / "docs.zip") as zf:
            assert zf.read("a.txt") == b"v2"

    def test_lock_is_held_while_writing(self, uploads_root: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        seen: list[bool] = []
        real_build = archiver.build_archive

        def _observe(folder_dir: Path, dest: Path, **kwargs: object) -> int:
            seen.append(locks.is_held(uploads_root, "docs"))
            return real_build(folder_dir, dest, **kwargs)

        monkeypatch.setattr(archiver, "build_archive", _observe)

        ingest(uploads_root, [UploadEntry("docs/a.txt", b"x")])

        assert seen == [True]
        assert not locks.is_held(uploads_root, "docs")

    def test_partial_write_skips_archiving(self, uploads_root: Path) -> None:
        """Written files stay, no archive is made and the lock is released."""
        with pytest.raises(PartialWriteFailure) as exc_info:
            ingest(
                uploads_root,
                [UploadEntry("docs/a.txt", b"1"), UploadEntry("docs/a.txt/b.txt", b"2")],
            )

        assert exc_info.value.written == 1
        assert (uploads_root / "docs" / "a.txt").read_bytes() == b"1"
        assert not (uploads_root / "docs.zip").exists()
        assert not locks.is_held(uploads_root, "docs")

    def test_archive_failure_keeps_tree(self, uploads_root: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        def _broken(folder_dir: Path, dest: Path, **kwargs: object) -> int:
            raise OSError("no space left on device")

        monkeypatch.setattr(archiver, "build_archive", _broken)

        with pytest.raises(ArchiveFailure):
            ingest(uploads_root, [UploadEntry("docs/a.txt", b"keep me")])

        assert (uploads_root / "docs" / "a.txt").read_bytes() == b"keep me"
        assert not (uploads_root / "docs.zip").exists()


class TestFetch:
    """Tests for fetch_file and fetch_archive."""

    def test_two_segment_addressing(self, uploads_root: Path, docs_folder: Path) -> None:
        assert fetch_file(uploads_root, ["docs", "a.txt"]) == b"hello"

    def test_missing_file(self, uploads_root: Path) -> None:
        with pytest.raises(NotFound):
            fetch_file(uploads_root, ["nope.txt"])

    def test_directory_is_not_a_file(self, uploads_root: Path, docs_folder: Path) -> None:
        with pytest.raises(NotFound):
            fetch_file(uploads_root, ["docs"])

    def test_too_many_segments(self, uploads_root: Path) -> None:
        with pytest.raises(NotFound):
            fetch_file(uploads_root, ["a", "b", "c"])

    def test_escape_in_folder_segment(self, uploads_root: Path) -> None:
        with pytest.raises(PathEscape):
            fetch_file(uploads_root, ["..", "passwd"])

    def test_missing_archive(self, uploads_root: Path) -> None:
        with pytest.raises(NotFound):
            fetch_archive(uploads_root, "docs")


class TestDelete:
    """Tests for delete_file, delete_folder and delete_all."""

    def test_delete_file(self, uploads_root: Path) -> None:
        (uploads_root / "a.txt").write_text("a")

        delete_file(uploads_root, "a.txt")

        assert not (uploads_root / "a.txt").exists()

    def test_delete_missing_file(self, uploads_root: Path) -> None:
        with pytest.raises(NotFound):
            delete_file(uploads_root, "a.txt")

    def test_delete_file_refuses_folders(self, uploads_root: Path, docs_folder: Path) -> None:
        with pytest.raises(NotFound):
            delete_file(uploads_root, "docs")
        assert docs_folder.exists()

    def test_delete_folder_removes_archive_too(self, uploads_root: Path, docs_folder: Path) -> None:
        (uploads_root / "docs.zip").write_bytes(b"zip")
        (uploads_root / "docs.zip.partial").write_bytes(b"half")

        delete_folder(uploads_root, "docs")

        assert not docs_folder.exists()
        assert not (uploads_root / "docs.zip").exists()
        assert not (uploads_root / "docs.zip.partial").exists()

    def test_delete_archived_only_folder(self, uploads_root: Path) -> None:
        (uploads_root / "docs.zip").write_bytes(b"zip")

        delete_folder(uploads_root, "docs")

        assert not (uploads_root / "docs.zip").exists()

    def test_delete_locked_folder_refused(self, uploads_root: Path, docs_folder: Path) -> None:
        locks.acquire(uploads_root, "docs")

        with pytest.raises(FolderLocked):
            delete_folder(uploads_root, "docs")
        assert docs_folder.exists()

    def test_delete_missing_folder(self, uploads_root: Path) -> None:
        with pytest.raises(NotFound):
            delete_folder(uploads_root, "ghost")

    def test_delete_all(self, uploads_root: Path, docs_folder: Path) -> None:
        (uploads_root / "a.txt").write_text("a")
        (uploads_root / "docs.zip").write_bytes(b"zip")

        assert delete_all(uploads_root) == 3
        assert list(uploads_root.iterdir()) == []


class TestPreviewText:
    """Tests for preview_text."""

    def test_small_text(self, uploads_root: Path) -> None:
        (uploads_root / "notes.txt").write_text("héllo", encoding="utf-8")

        assert preview_text(uploads_root, "notes.txt") == "héllo"

    def test_invalid_utf8_is_replaced(self, uploads_root: Path) -> None:
        (uploads_root / "bin.dat").write_bytes(b"ok\xff")

        assert preview_text(uploads_root, "bin.dat") == "ok\ufffd"

    def test_too_large(self, uploads_root: Path) -> None:
        (uploads_root / "big.txt").write_bytes(b"x" * 11)

        with pytest.raises(TooLarge) as exc_info:
            preview_text(uploads_root, "big.txt", limit=10)
        assert exc_info.value.size == 11

    def test_default_limit_is_two_mib(self, uploads_root: Path) -> None:
        with open(uploads_root / "big.txt", "wb") as fh:
            fh.truncate(2 * 1024 * 1024 + 1)

        with pytest.raises(TooLarge):
            preview_text(uploads_root, "big.txt")

    def test_missing(self, uploads_root: Path) -> None:
        with pytest.raises(NotFound):
            preview_text(uploads_root, "nope.txt")
