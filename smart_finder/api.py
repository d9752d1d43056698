"""FastAPI surface of the indexer.

Thin layer over IndexerApplication: request validation, status codes and
JSON shapes only. Store calls are blocking, so handlers are plain ``def``
and run in FastAPI's threadpool.
"""

from __future__ import annotations

from typing import List, Optional, Union

from fastapi import FastAPI, Header, HTTPException, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from smart_finder.application.bootstrap import IndexerApplication
from smart_finder.domain.files import FileRecord, IndexStoreError
from smart_finder.utils.logging import get_logger

logger = get_logger("smart_finder.api")


class FileResponse(BaseModel):
    """Indexed file."""
    md5: str = Field(..., description="MD5 fingerprint of the content")
    path: str = Field(..., description="Absolute path")
    filename: str
    size: int = Field(..., description="Size in bytes")
    modified_at: str = Field(..., description="Modification time, ISO 8601")


class FileListResponse(BaseModel):
    files: List[FileResponse]
    total: int
    page: int
    page_size: int = Field(..., alias="pageSize")

    model_config = ConfigDict(populate_by_name=True)


class StatusResponse(BaseModel):
    """Reconciliation pass counters."""
    is_scanning: bool
    started_at: Optional[str] = None
    finished_at: Optional[str] = None
    total_files: int
    processed_files: int
    skipped_files: int
    error_files: int
    deleted_files: int
    current_dir: str
    progress: float
    elapsed_seconds: float
    indexed_files: int
    completed_passes: int


class DirectoryRequest(BaseModel):
    path: str


class PathRequest(BaseModel):
    path: str


class LocationResponse(BaseModel):
    md5: str
    path: str
    url: str


class IgnorePatternsRequest(BaseModel):
    """List of globs or newline-separated text."""
    patterns: Union[List[str], str]


def _file_response(record: FileRecord) -> FileResponse:
    return FileResponse(**record.as_dict())


def create_app(application: IndexerApplication) -> FastAPI:
    """Build the FastAPI app bound to an assembled IndexerApplication."""
    app = FastAPI(
        title=application.settings.APP_NAME,
        description="Content-addressed file index: lookup files by MD5",
        version=application.settings.VERSION,
    )
    app.state.application = application

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "X-Check-Request"],
        expose_headers=["Content-Disposition"],
    )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(IndexStoreError)
    async def store_error_handler(request: Request, exc: IndexStoreError):
        logger.error("Database error | path=%s error=%s", request.url.path, exc)
        return JSONResponse(status_code=500, content={"detail": "Database error"})

    @app.get("/health")
    @app.get("/api/health")
    def health():
        """Service health check"""
        return {"status": "healthy", "service": "smart-finder", "version": application.settings.VERSION}

    @app.get("/api/status", response_model=StatusResponse)
    def get_status():
        status = application.get_status().as_dict()
        status["indexed_files"] = application.count_records()
        status["completed_passes"] = application.reconciler.completed_passes
        return status

    @app.post("/api/scan")
    def trigger_scan():
        """Request a reconciliation pass now; ignored while one is running."""
        accepted = application.trigger_manual_pass()
        return {"accepted": accepted, "status": "started" if accepted else "already running"}

    # --- Monitored directories --------------------------------------------------------
    @app.get("/api/directories")
    def list_directories() -> List[str]:
        return application.list_monitored_directories()

    @app.post("/api/directories", status_code=201)
    def add_directory(body: DirectoryRequest):
        directory = application.add_monitored_directory(body.path)
        return {"status": "success", "path": directory}

    @app.delete("/api/directories")
    def remove_directory(path: str = Query(..., min_length=1)):
        deleted = application.remove_monitored_directory(path)
        return {"status": "success", "deleted_files": deleted}

    # --- Ignore patterns --------------------------------------------------------------
    @app.get("/api/ignore-patterns")
    def get_ignore_patterns():
        return {"patterns": application.get_ignore_patterns()}

    @app.post("/api/ignore-patterns")
    def set_ignore_patterns(body: IgnorePatternsRequest):
        return {"patterns": application.set_ignore_patterns(body.patterns)}

    # --- Lookups ----------------------------------------------------------------------
    @app.get("/api/files", response_model=FileListResponse, response_model_by_alias=True)
    def list_files(
        page: int = Query(1, ge=1),
        page_size: int = Query(20, ge=1, le=500, alias="pageSize"),
        search: Optional[str] = None,
    ):
        records, total = application.list_files(page=page, page_size=page_size, search=search)
        return FileListResponse(
            files=[_file_response(record) for record in records],
            total=total,
            page=page,
            page_size=page_size,
        )

    @app.get("/api/md5", response_model=FileResponse)
    def get_by_md5(hash: str = Query(..., min_length=1)):
        record = application.lookup_by_fingerprint(hash)
        if record is None:
            raise HTTPException(status_code=404, detail="File not found")
        return _file_response(record)

    @app.post("/api/path2url", response_model=LocationResponse)
    def path_to_url(body: PathRequest):
        location = application.lookup_by_path(body.path)
        if location is None:
            raise HTTPException(status_code=404, detail="File is not indexed")
        return LocationResponse(md5=location.fingerprint, path=location.path, url=location.url)

    @app.get("/md5")
    def reveal(
        hash: str = Query(..., min_length=1),
        x_check_request: Optional[str] = Header(None),
    ):
        """Show the file in the native file browser; with X-Check-Request: true only probe."""
        check_only = (x_check_request or "").lower() == "true"
        record = application.reveal_file(hash, check_only=check_only)
        if record is None:
            if check_only:
                return Response(status_code=404)
            raise HTTPException(status_code=404, detail="File not found")
        if check_only:
            return Response(status_code=200)
        return {"status": "success", "path": record.path}

    return app
