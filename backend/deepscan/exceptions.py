from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from typing import Optional
import traceback
from .logger import logger


class DeepScanError(Exception):
    """Base exception for the media analysis service"""
    def __init__(self, message: str, code: str = "INTERNAL_ERROR", status_code: int = 500):
        self.message = message
        self.code = code
        self.status_code = status_code
        super().__init__(self.message)


class ValidationError(DeepScanError):
    """Raised when input is malformed or out of range"""
    def __init__(self, message: str = "Invalid input"):
        super().__init__(message, "VALIDATION_ERROR", 400)


class PayloadTooLargeError(DeepScanError):
    """Raised when an upload exceeds the configured size limit"""
    def __init__(self, max_bytes: int):
        super().__init__(
            f"File exceeds the maximum allowed size of {max_bytes} bytes",
            "PAYLOAD_TOO_LARGE",
            413,
        )


class JobNotFoundError(DeepScanError):
    """Raised when job is not found"""
    def __init__(self, job_id: int):
        self.job_id = job_id
        super().__init__(f"Job {job_id} not found", "JOB_NOT_FOUND", 404)


class ModelNotFoundError(DeepScanError):
    """Raised when a detection model is not found"""
    def __init__(self, model_id: int):
        self.model_id = model_id
        super().__init__(f"Detection model {model_id} not found", "MODEL_NOT_FOUND", 404)


class ReportNotFoundError(DeepScanError):
    """Raised when a job has no stored results to build a report from"""
    def __init__(self, job_id: int):
        self.job_id = job_id
        super().__init__(f"Analysis for job {job_id} not found", "ANALYSIS_NOT_FOUND", 404)


class InvalidJobStateError(DeepScanError):
    """Raised when job is in invalid state for operation"""
    def __init__(self, job_id: int, current_state: str, expected_state: str):
        self.job_id = job_id
        self.current_state = current_state
        super().__init__(
            f"Job {job_id} is in state '{current_state}', expected '{expected_state}'",
            "INVALID_JOB_STATE",
            409,
        )


class ProcessingFailure(DeepScanError):
    """Raised when a detection model fails while analysing a job"""
    def __init__(self, job_id: int, model_id: Optional[int] = None, reason: str = "analysis failed"):
        self.job_id = job_id
        self.model_id = model_id
        target = f"model {model_id}" if model_id is not None else "analysis"
        super().__init__(
            f"Job {job_id}: {target} failed: {reason}",
            "PROCESSING_FAILURE",
            500,
        )


class InternalError(DeepScanError):
    """Raised when the store or an invariant is violated"""
    def __init__(self, message: str = "Internal invariant violated"):
        super().__init__(message, "INTERNAL_ERROR", 500)


class DuplicateResultError(InternalError):
    """Raised when a result for the same (job, model) pair already exists"""
    def __init__(self, job_id: int, model_id: int):
        self.job_id = job_id
        self.model_id = model_id
        super().__init__(f"Result for job {job_id} and model {model_id} already exists")
        self.code = "DUPLICATE_RESULT"


async def deepscan_exception_handler(request: Request, exc: DeepScanError):
    """Handle custom application exceptions"""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"Application exception: {exc.code} - {exc.message}",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "request_path": request.url.path,
        }
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.code,
            "message": exc.message,
            "status_code": exc.status_code,
        }
    )


async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions"""
    logger.warning(
        f"HTTP {exc.status_code}: {exc.detail}",
        extra={
            "http_status_code": exc.status_code,
            "http_detail": exc.detail,
            "request_path": request.url.path,
        }
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": "HTTP_ERROR",
            "message": exc.detail,
            "status_code": exc.status_code,
        }
    )


async def generic_exception_handler(request: Request, exc: Exception):
    """Handle all other exceptions"""
    logger.error(
        f"Unhandled exception: {type(exc).__name__} - {str(exc)}",
        extra={
            "exc_type": type(exc).__name__,
            "exc_message": str(exc),
            "request_path": request.url.path,
            "exc_traceback": traceback.format_exc(),
        }
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": "INTERNAL_SERVER_ERROR",
            "message": "An internal error occurred. Please try again later.",
        }
    )
