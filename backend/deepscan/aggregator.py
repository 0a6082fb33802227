"""
Report aggregation.

Builds the unified AnalysisResponse for a job from its stored per-model
results. Nothing here is persisted; the report is rebuilt on every read and
depends only on stored state, so repeated calls return identical reports.
"""
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from .exceptions import ModelNotFoundError, ReportNotFoundError
from .schemas import (
    AnalysisResponse,
    AnalysisResult,
    DetectionModel,
    FileInfo,
    Job,
    JobStatus,
    ManipulationCandidate,
    ModelResult,
    ReportAnomaly,
    ReportMetadata,
)
from .store.base import JobStore

DEEPFAKE_THRESHOLD = 60
UNKNOWN_MODEL_NAME = "Unknown Model"


def order_results(results: Sequence[AnalysisResult]) -> List[AnalysisResult]:
    """Deterministic order: analyzedAt ascending, then modelId ascending."""
    return sorted(results, key=lambda r: (r.analyzedAt, r.modelId))


def overall_confidence(scores: Sequence[int]) -> int:
    """Mean of the scores rounded half-up, in exact integer arithmetic."""
    if not scores:
        raise ValueError("overall confidence needs at least one score")
    n = len(scores)
    return (2 * sum(scores) + n) // (2 * n)


def is_deepfake(confidence: int) -> bool:
    return confidence > DEEPFAKE_THRESHOLD


def merge_manipulation_types(results: Sequence[AnalysisResult]) -> List[ManipulationCandidate]:
    """
    Union of every model's manipulation candidates, highest confidence first.

    Only exact (type, confidence) duplicates collapse. The same type reported
    at two different confidences is kept twice.
    """
    seen = set()
    merged: List[ManipulationCandidate] = []
    for result in results:
        for candidate in result.manipulationCandidates:
            key = (candidate.type, candidate.confidence)
            if key in seen:
                continue
            seen.add(key)
            merged.append(candidate)
    return sorted(merged, key=lambda c: -c.confidence)


def format_detection_time(value: datetime) -> str:
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def _model_result(result: AnalysisResult, model: Optional[DetectionModel] = None) -> ModelResult:
    return ModelResult(
        modelId=result.modelId,
        modelName=model.name if model else UNKNOWN_MODEL_NAME,
        modelDescription=model.description if model else "",
        confidenceScore=result.confidenceScore,
        anomalies=[
            ReportAnomaly(type=a.category, description=a.description, severity=a.severity)
            for a in result.anomalies
        ],
        detailsData=result.modelDetails,
    )


def build_report(job: Job, results: Sequence[AnalysisResult], models: Dict[int, DetectionModel]) -> AnalysisResponse:
    """Pure report construction; `results` must be non-empty."""
    if not results:
        raise ReportNotFoundError(job.id)

    ordered = order_results(results)
    representative = ordered[0]
    confidence = overall_confidence([r.confidenceScore for r in ordered])

    return AnalysisResponse(
        mediaId=job.id,
        filename=job.filename,
        filetype=job.filetype,
        status=job.status,
        overallConfidence=confidence,
        isDeepfake=is_deepfake(confidence),
        detectionTime=format_detection_time(representative.analyzedAt),
        manipulationTypes=merge_manipulation_types(ordered),
        modelResults=[_model_result(r, models.get(r.modelId)) for r in ordered],
        metadata=ReportMetadata(
            fileInfo=FileInfo(
                filename=job.filename,
                filesize=job.filesize,
                filetype=job.filetype,
                duration=representative.metadataFindings.duration,
                resolution=representative.metadataFindings.resolution,
            ),
            technicalAnalysis=representative.technicalFindings,
        ),
    )


class Aggregator:
    def __init__(self, store: JobStore):
        self.store = store

    async def _models_for(self, results: Sequence[AnalysisResult]) -> Dict[int, DetectionModel]:
        models: Dict[int, DetectionModel] = {}
        for model_id in sorted({r.modelId for r in results}):
            try:
                models[model_id] = await self.store.get_model(model_id)
            except ModelNotFoundError:
                continue
        return models

    async def aggregate(self, job_id: int) -> AnalysisResponse:
        """
        Report for a job.

        Raises JobNotFoundError for an unknown job and ReportNotFoundError
        while the job has no results (pending, processing, failed, or
        completed with an empty model set). Results written while the job is
        still processing are not reported until it completes.
        """
        job = await self.store.get_job(job_id)
        if job.status != JobStatus.COMPLETED:
            raise ReportNotFoundError(job_id)
        results = await self.store.list_results(job_id)
        if not results:
            raise ReportNotFoundError(job_id)
        return build_report(job, results, await self._models_for(results))
