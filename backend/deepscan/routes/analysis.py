"""
Analysis routes - media intake, status polling, reports
"""
from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import JSONResponse
from typing import List, Optional

from ..config import Settings
from ..dependencies import get_service, get_settings
from ..logger import logger
from ..schemas import AnalyzeUrlRequest, Job, JobAccepted, JobStatusResponse
from ..service import DetectionService
from ..services.intake import (
    describe_media_url,
    parse_job_id,
    parse_selected_models,
    validate_media,
)

router = APIRouter(prefix="/api", tags=["Analysis"])

UPLOAD_CHUNK_BYTES = 1024 * 1024


async def _measure_upload(file: UploadFile, max_bytes: int) -> int:
    """Count the upload's bytes without keeping them, stopping just past the limit"""
    size = 0
    while True:
        chunk = await file.read(UPLOAD_CHUNK_BYTES)
        if not chunk:
            break
        size += len(chunk)
        if size > max_bytes:
            break
    return size


@router.post("/upload", response_model=JobAccepted, status_code=201)
async def upload_media(
    file: UploadFile = File(...),
    selectedModels: Optional[str] = Form(None),
    userId: Optional[int] = Form(None),
    service: DetectionService = Depends(get_service),
    settings: Settings = Depends(get_settings),
):
    """
    Register an uploaded file and start its analysis.
    Returns mediaId for status polling.
    """
    logger.info(
        "Upload request received",
        extra={
            "uploaded_file": file.filename,
            "content_type": file.content_type,
            "selected_models": selectedModels,
        }
    )

    model_ids = parse_selected_models(selectedModels)
    filesize = await _measure_upload(file, settings.MAX_UPLOAD_BYTES)
    validate_media(file.content_type, filesize, settings.ALLOWED_MIME_TYPES, settings.MAX_UPLOAD_BYTES)

    job = await service.create_job(
        filename=file.filename or "upload",
        filesize=filesize,
        filetype=file.content_type,
        user_id=userId,
    )
    await service.dispatch_analysis(job.id, model_ids)

    return JobAccepted(message="Upload successful, processing started", mediaId=job.id)


@router.post("/analyze-url", response_model=JobAccepted, status_code=201)
async def analyze_url(
    request: AnalyzeUrlRequest,
    service: DetectionService = Depends(get_service),
):
    """
    Register a remote media URL and start its analysis.
    The size of remote media is unknown and recorded as 0.
    """
    logger.info("URL analysis request received", extra={"url": request.url})

    filename, filetype = describe_media_url(request.url)
    model_ids = parse_selected_models(request.selectedModels)

    job = await service.create_job(filename=filename, filesize=0, filetype=filetype)
    await service.dispatch_analysis(job.id, model_ids)

    return JobAccepted(message="URL analysis started", mediaId=job.id)


@router.get("/analysis/{media_id}/status", response_model=JobStatusResponse)
async def get_analysis_status(media_id: str, service: DetectionService = Depends(get_service)):
    """
    Get current status of an analysis job.
    """
    return await service.get_status(parse_job_id(media_id))


@router.get("/analysis/{media_id}")
async def get_analysis(media_id: str, service: DetectionService = Depends(get_service)):
    """
    Get the aggregated report for a completed analysis job.
    """
    report = await service.get_report(parse_job_id(media_id))
    return JSONResponse(content=report.model_dump(mode="json", exclude_none=True))


@router.get("/uploads", response_model=List[Job])
async def list_uploads(
    userId: Optional[int] = Query(None),
    service: DetectionService = Depends(get_service),
):
    """
    List analysis jobs, oldest first, optionally for one user.
    """
    return await service.list_jobs(user_id=userId)
