"""FastAPI application exposing backup, restore and export endpoints."""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse

from backup.api import BackupService
from backup.errors import BackupError, BackupFileNotFound, BackupInputError

from .auth import SessionAuth, SessionValidator
from .models import (
    ArtifactListResponse,
    ArtifactResponse,
    BackupNowResponse,
    BackupSettingsRequest,
    BackupSettingsResponse,
    DeleteResponse,
    LogEntryResponse,
    LogListResponse,
    RestoreResponse,
    StatusResponse,
    UploadResponse,
)

LOGGER = logging.getLogger("growthlog.api")

GZIP_MEDIA_TYPE = "application/gzip"


@dataclass(slots=True)
class APIServerConfig:
    """Runtime configuration for the FastAPI application."""

    service: BackupService
    session_validator: SessionValidator
    cors_origins: Sequence[str] = ()
    app_version: str = "dev"
    lan_only: bool = True
    max_upload_bytes: int = 500 * 1024 * 1024
    start_scheduler: bool = True


_LOCAL_CLIENT_SENTINELS = {
    "127.0.0.1",
    "::1",
    "localhost",
    "testclient",
}


def _normalise_remote_host(host: Optional[str]) -> Optional[str]:
    if host is None:
        return None
    value = host.strip().lower()
    if not value:
        return None
    if value.startswith("::ffff:"):
        value = value.rsplit(":", 1)[-1]
    if value.startswith("[") and value.endswith("]"):
        value = value[1:-1]
    if "%" in value:  # strip IPv6 scope id
        value = value.split("%", 1)[0]
    return value


def _is_loopback_host(host: Optional[str]) -> bool:
    value = _normalise_remote_host(host)
    if value is None:
        return True
    return value in _LOCAL_CLIENT_SENTINELS or value.startswith("127.")


def create_app(config: APIServerConfig) -> FastAPI:
    """Create a FastAPI application bound to the given configuration."""

    app = FastAPI(
        title="GrowthLog Backup API",
        version=config.app_version,
        docs_url="/docs",
        openapi_url="/openapi.json",
    )

    allowed_origins: List[str] = [origin for origin in config.cors_origins if origin]
    if allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=allowed_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "DELETE"],
            allow_headers=["*"],
        )

    service = config.service
    require_session = SessionAuth(config.session_validator)
    lan_only = bool(config.lan_only)
    max_upload = max(int(config.max_upload_bytes), 1)

    @app.on_event("startup")
    async def _startup() -> None:
        if config.start_scheduler:
            await asyncio.to_thread(service.start)

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        service.stop()

    @app.middleware("http")
    async def log_requests(request: Request, call_next):  # type: ignore[override]
        start = time.perf_counter()
        response: Optional[Response] = None
        client_host = request.client.host if request.client else None
        try:
            if lan_only and not _is_loopback_host(client_host):
                LOGGER.warning("Rejected non-local HTTP request from %s", client_host or "<unknown>")
                response = JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content={"error": "LAN access disabled"})
            else:
                response = await call_next(request)
            return response
        finally:
            duration_ms = (time.perf_counter() - start) * 1000
            status_code = response.status_code if response is not None else 500
            LOGGER.info(
                "%s %s -> %s (%.1f ms) ip=%s",
                request.method,
                request.url.path,
                status_code,
                duration_ms,
                client_host or "-",
            )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(_request: Request, exc: HTTPException):
        detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
        return JSONResponse(status_code=exc.status_code, content={"error": detail})

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "invalid parameters", "details": exc.errors()},
        )

    @app.exception_handler(BackupError)
    async def backup_exception_handler(_request: Request, exc: BackupError):
        if isinstance(exc, BackupInputError):
            code = status.HTTP_400_BAD_REQUEST
        elif isinstance(exc, BackupFileNotFound):
            code = status.HTTP_404_NOT_FOUND
        else:
            LOGGER.error("Backup operation failed: %s", exc)
            code = status.HTTP_500_INTERNAL_SERVER_ERROR
        return JSONResponse(status_code=code, content={"error": str(exc), "kind": type(exc).__name__})

    async def read_archive_body(request: Request) -> bytes:
        declared = request.headers.get("content-length")
        if declared and declared.isdigit() and int(declared) > max_upload:
            raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail="upload too large")
        body = await request.body()
        if len(body) > max_upload:
            raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail="upload too large")
        if not body:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="no file uploaded")
        return body

    def settings_response() -> BackupSettingsResponse:
        return BackupSettingsResponse.from_config(service.get_config(), service.status()["next_run"])

    # ------------------------------------------------------------------
    @app.get("/api/status", response_model=StatusResponse)
    def get_status(_session: str = Depends(require_session)) -> StatusResponse:
        scheduler = service.status()
        return StatusResponse(
            version=config.app_version,
            time_utc=datetime.now(timezone.utc).isoformat(),
            scheduler_state=scheduler["state"],
            next_run=scheduler["next_run"],
        )

    @app.get("/api/backup/settings", response_model=BackupSettingsResponse)
    def get_backup_settings(_session: str = Depends(require_session)) -> BackupSettingsResponse:
        return settings_response()

    @app.post("/api/backup/settings", response_model=BackupSettingsResponse)
    def update_backup_settings(
        payload: BackupSettingsRequest,
        _session: str = Depends(require_session),
    ) -> BackupSettingsResponse:
        service.update_config(payload.model_dump(exclude_none=True))
        return settings_response()

    @app.post("/api/backup/now", response_model=BackupNowResponse)
    def run_backup_now(_session: str = Depends(require_session)):
        outcome = service.backup_now()
        body = BackupNowResponse.from_outcome(outcome)
        if not outcome.success:
            return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=body.model_dump())
        return body

    @app.get("/api/backup/logs", response_model=LogListResponse)
    def list_backup_logs(
        limit: Optional[int] = Query(None, ge=1, le=1000),
        _session: str = Depends(require_session),
    ) -> LogListResponse:
        return LogListResponse(logs=[LogEntryResponse.from_entry(entry) for entry in service.list_logs(limit)])

    @app.get("/api/backup/files", response_model=ArtifactListResponse)
    def list_backup_files(_session: str = Depends(require_session)) -> ArtifactListResponse:
        return ArtifactListResponse(files=[ArtifactResponse.from_info(info) for info in service.list_artifacts()])

    @app.get("/api/backup/download/{filename}")
    def download_backup(filename: str, _session: str = Depends(require_session)) -> FileResponse:
        path = service.artifact_path(filename)
        return FileResponse(path, media_type=GZIP_MEDIA_TYPE, filename=filename)

    @app.post("/api/backup/upload", response_model=UploadResponse)
    async def upload_backup(request: Request, _session: str = Depends(require_session)) -> UploadResponse:
        body = await read_archive_body(request)
        filename = await asyncio.to_thread(service.upload_artifact, body)
        return UploadResponse(filename=filename)

    @app.post("/api/backup/restore/{filename}", response_model=RestoreResponse)
    def restore_backup(filename: str, _session: str = Depends(require_session)) -> RestoreResponse:
        return RestoreResponse.from_outcome(service.restore_artifact(filename))

    @app.delete("/api/backup/files/{filename}", response_model=DeleteResponse)
    def delete_backup(filename: str, _session: str = Depends(require_session)) -> DeleteResponse:
        return DeleteResponse(deleted=service.delete_artifact(filename))

    @app.get("/api/export")
    def export_snapshot(_session: str = Depends(require_session)) -> Response:
        filename, payload = service.export_snapshot()
        return Response(
            content=payload,
            media_type=GZIP_MEDIA_TYPE,
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    @app.post("/api/import", response_model=RestoreResponse)
    async def import_snapshot(request: Request, _session: str = Depends(require_session)) -> RestoreResponse:
        body = await read_archive_body(request)
        outcome = await asyncio.to_thread(service.import_snapshot, body)
        return RestoreResponse.from_outcome(outcome)

    return app


__all__ = ["APIServerConfig", "create_app"]
