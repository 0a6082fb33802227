from __future__ import annotations

import asyncio
from itertools import count
from typing import Dict, List, Optional, Sequence, Tuple

from ..exceptions import (
    DuplicateResultError,
    InternalError,
    InvalidJobStateError,
    JobNotFoundError,
    ModelNotFoundError,
)
from ..schemas import (
    AnalysisResult,
    AnalysisResultCreate,
    DetectionModel,
    DetectionModelCreate,
    Job,
    JobCreate,
    JobStatus,
)
from ..services.job_status import check_transition
from .base import Clock, JobStore, KeyedLock, utcnow


class InMemoryJobStore(JobStore):
    """
    Dict-backed store for a single process.

    Every read returns a copy, so nothing outside the store can change
    stored state without going through a write method.
    """

    def __init__(self, clock: Clock = utcnow):
        self._clock = clock
        self._jobs: Dict[int, Job] = {}
        self._models: Dict[int, DetectionModel] = {}
        self._results: Dict[int, AnalysisResult] = {}
        self._result_keys: Dict[Tuple[int, int], int] = {}

        self._job_ids = count(1)
        self._model_ids = count(1)
        self._result_ids = count(1)

        self._job_locks = KeyedLock()
        self._catalog_lock = asyncio.Lock()

    async def create_job(self, data: JobCreate) -> Job:
        job_id = next(self._job_ids)
        now = self._clock()
        job = Job(
            id=job_id,
            filename=data.filename,
            filesize=data.filesize,
            filetype=data.filetype,
            userId=data.userId,
            status=JobStatus.PENDING,
            uploadedAt=now,
            updatedAt=now,
        )
        self._jobs[job_id] = job
        return job.model_copy(deep=True)

    def _require_job(self, job_id: int) -> Job:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    async def get_job(self, job_id: int) -> Job:
        return self._require_job(job_id).model_copy(deep=True)

    async def list_jobs(
        self,
        *,
        status: Optional[JobStatus] = None,
        user_id: Optional[int] = None,
    ) -> List[Job]:
        jobs = [j for _, j in sorted(self._jobs.items())]
        if status is not None:
            jobs = [j for j in jobs if j.status == status]
        if user_id is not None:
            jobs = [j for j in jobs if j.userId == user_id]
        return [j.model_copy(deep=True) for j in jobs]

    async def set_status(self, job_id: int, status: JobStatus) -> Job:
        async with self._job_locks.hold(job_id):
            job = self._require_job(job_id)
            check_transition(job_id, job.status, status)
            updated = job.model_copy(update={"status": JobStatus(status), "updatedAt": self._clock()})
            self._jobs[job_id] = updated
            return updated.model_copy(deep=True)

    async def add_results(self, job_id: int, drafts: Sequence[AnalysisResultCreate]) -> List[AnalysisResult]:
        async with self._job_locks.hold(job_id):
            job = self._require_job(job_id)
            if job.status != JobStatus.PROCESSING:
                raise InvalidJobStateError(job_id, job.status.value, JobStatus.PROCESSING.value)

            # check the whole batch before touching any state
            keys = set()
            for data in drafts:
                if data.jobId != job_id:
                    raise InternalError(f"Result for job {data.jobId} submitted in a batch for job {job_id}")
                key = (job_id, data.modelId)
                if key in self._result_keys or key in keys:
                    raise DuplicateResultError(job_id, data.modelId)
                keys.add(key)

            stored = []
            for data in drafts:
                result = AnalysisResult(id=next(self._result_ids), **data.model_dump())
                self._results[result.id] = result
                self._result_keys[(job_id, data.modelId)] = result.id
                stored.append(result.model_copy(deep=True))
            return stored

    async def list_results(self, job_id: int) -> List[AnalysisResult]:
        return [
            r.model_copy(deep=True)
            for _, r in sorted(self._results.items())
            if r.jobId == job_id
        ]

    async def create_model(self, data: DetectionModelCreate) -> DetectionModel:
        async with self._catalog_lock:
            model = DetectionModel(id=next(self._model_ids), **data.model_dump())
            self._models[model.id] = model
            return model.model_copy(deep=True)

    async def list_models(self) -> List[DetectionModel]:
        return [m.model_copy(deep=True) for _, m in sorted(self._models.items())]

    async def get_model(self, model_id: int) -> DetectionModel:
        model = self._models.get(model_id)
        if model is None:
            raise ModelNotFoundError(model_id)
        return model.model_copy(deep=True)
