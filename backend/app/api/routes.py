"""
HTTP API routes for video processing.

Provides endpoints for:
- Starting background processing of a file in the inbox
- Polling upload progress
- Metrics and audit trail
"""

import asyncio
import logging
import shutil
import uuid
from datetime import datetime

from fastapi import APIRouter, HTTPException, Query, Request

from app.models.schemas import (
    AuditEventType,
    AuditLogEntry,
    MetricsSummary,
    ProcessingMetrics,
    ProcessRequest,
    ProcessResponse,
    ProgressStatus,
    UploadProgress,
)
from app.services.errors import DatabaseError
from app.services.pipeline import ProcessingContext, start_processing
from app.utils.media_utils import generate_slug, is_safe_filename, is_video_file

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/videos", tags=["videos"])


def progress_url(upload_id: str) -> str:
    return f"{router.prefix}/upload/{upload_id}/progress"


@router.post("/process", response_model=ProcessResponse, status_code=202)
async def process_video(body: ProcessRequest, request: Request) -> ProcessResponse:
    """
    Start processing a video from the inbox directory.

    The file is moved into the temp area, a video record is created and
    a background job is scheduled. Progress is available immediately
    via the returned progress_url or WebSocket /ws/{upload_id}.

    Args:
        body: ProcessRequest with filename, title and visibility

    Returns:
        ProcessResponse with upload_id, slug and progress_url

    Raises:
        400: Unsafe filename or unsupported extension
        404: File not found in inbox
        413: File larger than the configured limit
        500: Record could not be created
    """
    state = request.app.state
    settings = state.settings
    storage = state.storage

    if not is_safe_filename(body.filename):
        raise HTTPException(status_code=400, detail=f"Invalid filename: {body.filename}")
    if not is_video_file(body.filename):
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported video format: {body.filename}",
        )

    source = settings.inbox_dir / body.filename
    if not source.is_file():
        raise HTTPException(status_code=404, detail=f"Video file not found: {body.filename}")

    file_size = source.stat().st_size
    if file_size > settings.max_file_size:
        raise HTTPException(
            status_code=413,
            detail=f"File too large: {file_size} bytes (limit {settings.max_file_size})",
        )

    upload_id = str(uuid.uuid4())
    slug = generate_slug(body.title)
    temp_path = storage.temp_path(upload_id)

    await asyncio.to_thread(shutil.move, str(source), str(temp_path))

    try:
        await state.repository.create_upload_record(
            upload_id,
            slug,
            body.title,
            body.is_public,
            filename=body.filename,
            user_id=body.user_id,
        )
    except DatabaseError as e:
        # Give the file back so the request can be retried
        await asyncio.to_thread(shutil.move, str(temp_path), str(source))
        raise HTTPException(status_code=500, detail=e.user_message)

    await state.progress_tracker.init(
        upload_id, slug, filename=body.filename, file_size=file_size
    )
    await state.audit_logger.log(
        AuditEventType.UPLOAD_STARTED,
        upload_id,
        slug,
        user_id=body.user_id,
        details={"filename": body.filename, "file_size": str(file_size)},
        ip_address=request.client.host if request.client else None,
    )

    start_processing(ProcessingContext(
        upload_id=upload_id,
        slug=slug,
        temp_file_path=temp_path,
        is_public=body.is_public,
        original_filename=body.filename,
        settings=settings,
        progress_tracker=state.progress_tracker,
        metrics_store=state.metrics_store,
        audit_logger=state.audit_logger,
        repository=state.repository,
        media_tool=state.media_tool,
        presets=state.quality_presets,
        user_id=body.user_id,
    ))

    logger.info(f"Accepted upload {upload_id} ({slug}): {body.filename}")
    return ProcessResponse(upload_id=upload_id, slug=slug, progress_url=progress_url(upload_id))


@router.get("/upload/{upload_id}/progress", response_model=UploadProgress)
async def get_upload_progress(upload_id: str, request: Request) -> UploadProgress:
    """
    Get progress of an upload.

    Falls back to the persisted record once the in-memory entry has
    expired.

    Raises:
        404: Unknown upload
    """
    state = request.app.state
    entry = state.progress_tracker.get(upload_id)
    if entry is not None:
        return entry

    try:
        persisted = await state.repository.get_processing_state(upload_id)
    except DatabaseError as e:
        logger.error(f"Progress lookup failed for {upload_id}: {e}")
        raise HTTPException(status_code=500, detail=e.user_message)

    if persisted is None:
        raise HTTPException(status_code=404, detail=f"Upload not found: {upload_id}")

    status = ProgressStatus(persisted.processing_status)
    return UploadProgress(
        upload_id=persisted.upload_id,
        slug=persisted.slug,
        status=status,
        progress=persisted.processing_progress,
        stage=status.value,
        started_at=persisted.created_at or datetime.now(),
        error=persisted.processing_error,
    )


@router.get("/uploads", response_model=list[UploadProgress])
async def list_uploads(request: Request) -> list[UploadProgress]:
    """All uploads currently tracked in memory."""
    return request.app.state.progress_tracker.get_all()


@router.get("/metrics", response_model=MetricsSummary)
async def get_metrics(request: Request) -> MetricsSummary:
    state = request.app.state
    return await state.metrics_store.summary(
        active_uploads=state.progress_tracker.active_count()
    )


@router.get("/metrics/detailed", response_model=ProcessingMetrics)
async def get_detailed_metrics(request: Request) -> ProcessingMetrics:
    """Full metrics including per-stage and per-quality statistics."""
    return await request.app.state.metrics_store.snapshot()


@router.get("/audit", response_model=list[AuditLogEntry])
async def get_audit_log(
    request: Request,
    upload_id: str | None = None,
    limit: int = Query(100, ge=1, le=1000),
) -> list[AuditLogEntry]:
    """
    Recent audit entries, oldest first.

    Args:
        upload_id: Only entries for this upload
        limit: Maximum number of entries
    """
    audit_logger = request.app.state.audit_logger
    if upload_id:
        entries = await audit_logger.entries_for_upload(upload_id)
        return entries[-limit:]
    return await audit_logger.recent_entries(limit)
