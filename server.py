from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import asdict
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from fastapi import FastAPI, File, Form, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, PlainTextResponse
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from zipdrop_backend.config import (
    AUTO_COMPACT_ON_START,
    LOG_LEVEL,
    MAX_FILE_UPLOAD_BYTES,
    PORT,
    UPLOADS_ROOT,
)
from zipdrop_backend.errors import (
    ArchiveFailure,
    EmptyUpload,
    FolderLocked,
    NotFound,
    PartialWriteFailure,
    PathEscape,
    TooLarge,
)
from zipdrop_backend.inventory import list_inventory
from zipdrop_backend.scheduler import compact_all
from zipdrop_backend.tree_writer import UploadEntry
from zipdrop_backend.uploads import (
    delete_all,
    delete_file,
    delete_folder,
    ingest,
    preview_text,
    resolve_archive,
    resolve_file,
)


logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger("zipdrop.server")


class UploadResponse(BaseModel):
    mode: str
    name: str
    file_count: int
    download_url: str


class FileItem(BaseModel):
    name: str
    size: int
    ext: str
    modified: float
    age_seconds: int


class FolderItem(BaseModel):
    name: str
    count: int
    zip: bool
    locked: bool
    modified: float
    age_seconds: int
    size: Optional[int] = None
    partial: bool = False


class UploadsListing(BaseModel):
    files: list[FileItem]
    folders: list[FolderItem]


class CompactionItem(BaseModel):
    folder: str
    status: str
    reason: Optional[str] = None
    entries: Optional[int] = None


def _run_compaction() -> list[CompactionItem]:
    results = compact_all(UPLOADS_ROOT)
    return [
        CompactionItem(folder=r.folder, status=r.status.value, reason=r.reason, entries=r.entries)
        for r in results
    ]


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Compact folders left behind by a previous run (zip then delete) to save space.
    if AUTO_COMPACT_ON_START:
        try:
            items = await run_in_threadpool(_run_compaction)
            logger.info("Startup compaction: %d folder(s) processed", len(items))
        except OSError:
            logger.exception("Startup compaction failed")
    yield


app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.post("/upload")
async def upload(
    files: Optional[list[UploadFile]] = File(None),
    paths: Optional[list[str]] = Form(None),
) -> UploadResponse:
    """Accept single files or a whole folder tree.

    `paths` is sent in the same order as `files` and carries each file's relative
    path (webkitRelativePath); when missing the uploaded filename is used.
    """
    files = files or []
    paths = paths or []
    if not files:
        raise HTTPException(status_code=400, detail="No files uploaded.")

    entries: list[UploadEntry] = []
    for i, f in enumerate(files):
        # Limit read to prevent a single huge file from exhausting memory.
        data = await f.read(MAX_FILE_UPLOAD_BYTES + 1)
        if len(data) > MAX_FILE_UPLOAD_BYTES:
            raise HTTPException(status_code=413, detail="File too large")
        rel = paths[i] if i < len(paths) and paths[i] else (f.filename or "")
        entries.append(UploadEntry(relative_path=rel, content=data))

    try:
        result = await run_in_threadpool(ingest, UPLOADS_ROOT, entries)
    except (PathEscape, EmptyUpload) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PartialWriteFailure as e:
        return JSONResponse(
            status_code=500,
            content={
                "error": "Upload partially failed",
                "written": e.written,
                "failures": [asdict(f) for f in e.failures],
            },
        )
    except ArchiveFailure as e:
        logger.error("Upload compaction failed: %s", e)
        return JSONResponse(status_code=500, content={"error": "Upload failed", "folder": e.folder})
    except OSError:
        logger.exception("Upload failed")
        raise HTTPException(status_code=500, detail="Upload failed.")

    if result.mode == "folder":
        url = f"/download/zip/{quote(result.name)}"
    elif result.file_count == 1:
        url = f"/download/file/{quote(result.name)}"
    else:
        url = "/api/uploads"
    return UploadResponse(mode=result.mode, name=result.name, file_count=result.file_count, download_url=url)


async def _file_or_404(segments: list[str]) -> Path:
    try:
        return await run_in_threadpool(resolve_file, UPLOADS_ROOT, segments)
    except PathEscape:
        raise HTTPException(status_code=400, detail="Invalid path")
    except NotFound:
        raise HTTPException(status_code=404, detail="File not found")


@app.get("/download/file/{filename}")
async def download_file(filename: str) -> FileResponse:
    path = await _file_or_404([filename])
    return FileResponse(path, filename=path.name)


@app.get("/download/file/{folder}/{filename}")
async def download_folder_file(folder: str, filename: str) -> FileResponse:
    """Download a single file inside a folder upload (backward compatible addressing)."""
    path = await _file_or_404([folder, filename])
    return FileResponse(path, filename=path.name)


@app.get("/download/zip/{folder}")
async def download_zip(folder: str) -> FileResponse:
    try:
        path = await run_in_threadpool(resolve_archive, UPLOADS_ROOT, folder)
    except PathEscape:
        raise HTTPException(status_code=400, detail="Invalid path")
    except NotFound:
        raise HTTPException(status_code=404, detail="ZIP not found.")
    return FileResponse(path, filename=path.name, media_type="application/zip")


@app.get("/raw/{filename}")
async def raw_file(filename: str) -> FileResponse:
    """Serve a root file (or archive) inline; the media type is guessed from its name."""
    path = await _file_or_404([filename])
    return FileResponse(path, filename=path.name, content_disposition_type="inline", headers={"X-Content-Type-Options": "nosniff"})


@app.get("/preview/text/{filename}")
async def preview(filename: str) -> PlainTextResponse:
    try:
        text = await run_in_threadpool(preview_text, UPLOADS_ROOT, filename)
    except PathEscape:
        raise HTTPException(status_code=400, detail="Invalid path")
    except NotFound:
        raise HTTPException(status_code=404, detail="Not found")
    except TooLarge:
        raise HTTPException(status_code=413, detail="File too large to preview")
    return PlainTextResponse(text)


@app.get("/api/uploads")
async def list_uploads(details: Optional[str] = None) -> UploadsListing:
    # Folder sizes are computed lazily, only when asked for via ?details=1.
    try:
        inv = await run_in_threadpool(list_inventory, UPLOADS_ROOT, details == "1")
    except OSError:
        logger.exception("Failed to list uploads")
        raise HTTPException(status_code=500, detail="Failed to list uploads")
    return UploadsListing(
        files=[FileItem(**asdict(f)) for f in inv.files],
        folders=[FolderItem(**asdict(f)) for f in inv.folders],
    )


@app.delete("/delete/file/{name}")
async def delete_file_api(name: str) -> PlainTextResponse:
    try:
        await run_in_threadpool(delete_file, UPLOADS_ROOT, name)
    except PathEscape:
        raise HTTPException(status_code=400, detail="Invalid path")
    except NotFound:
        raise HTTPException(status_code=404, detail="File not found")
    return PlainTextResponse("Deleted")


@app.delete("/delete/folder/{name}")
async def delete_folder_api(name: str) -> PlainTextResponse:
    try:
        await run_in_threadpool(delete_folder, UPLOADS_ROOT, name)
    except PathEscape:
        raise HTTPException(status_code=400, detail="Invalid path")
    except FolderLocked:
        raise HTTPException(status_code=409, detail="Upload in progress")
    except NotFound:
        raise HTTPException(status_code=404, detail="Folder not found")
    return PlainTextResponse("Deleted")


@app.delete("/delete/all")
async def delete_everything() -> JSONResponse:
    try:
        deleted = await run_in_threadpool(delete_all, UPLOADS_ROOT)
    except OSError:
        logger.exception("Purge failed")
        raise HTTPException(status_code=500, detail="Failed to purge")
    return JSONResponse({"ok": True, "deleted": deleted})


@app.post("/api/compact")
async def compact() -> list[CompactionItem]:
    """Manually trigger compaction of existing folders."""
    try:
        return await run_in_threadpool(_run_compaction)
    except OSError:
        logger.exception("Compaction sweep failed")
        raise HTTPException(status_code=500, detail="Compaction failed")


if __name__ == "__main__":
    # Convenience: python server.py
    import uvicorn

    uvicorn.run("server:app", host="127.0.0.1", port=PORT, reload=False)
