"""
Job store interface.

A store is the single source of truth for job status, the detection model
catalog and per-model results. Implementations must serialize writes that
target the same job id; writes to different job ids may interleave freely.
"""
from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Callable, Dict, List, Optional, Sequence

from ..schemas import (
    AnalysisResult,
    AnalysisResultCreate,
    DetectionModel,
    DetectionModelCreate,
    Job,
    JobCreate,
    JobStatus,
)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Naive UTC timestamp, the representation used by every store."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class KeyedLock:
    """
    Per-key asyncio locks. Callers holding different keys never block each other.

    A key's lock is dropped once its last holder or waiter releases it, so the
    table only holds keys that are in use.
    """

    def __init__(self):
        self._locks: Dict[int, asyncio.Lock] = {}
        self._users: Dict[int, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, key: int) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]


class JobStore(ABC):
    """Async keyed storage for jobs, detection models and analysis results."""

    # Jobs

    @abstractmethod
    async def create_job(self, data: JobCreate) -> Job:
        """Create a pending job with a new, monotonically increasing id."""

    @abstractmethod
    async def get_job(self, job_id: int) -> Job:
        """Return the job or raise JobNotFoundError."""

    @abstractmethod
    async def list_jobs(
        self,
        *,
        status: Optional[JobStatus] = None,
        user_id: Optional[int] = None,
    ) -> List[Job]:
        """List jobs ordered by id, optionally filtered."""

    @abstractmethod
    async def set_status(self, job_id: int, status: JobStatus) -> Job:
        """
        Move a job to `status`.

        Only forward transitions are accepted; anything else (including a
        repeat of the current status) raises InvalidJobStateError and leaves
        the job unchanged.
        """

    # Results

    @abstractmethod
    async def add_results(self, job_id: int, drafts: Sequence[AnalysisResultCreate]) -> List[AnalysisResult]:
        """
        Store every model's result for a processing job in one write.

        Either the whole batch is stored or none of it is. Raises
        JobNotFoundError, InvalidJobStateError when the job is not processing,
        and DuplicateResultError when a (job, model) pair already has a result
        or appears twice in the batch.
        """

    async def add_result(self, data: AnalysisResultCreate) -> AnalysisResult:
        """Store one model's result; a batch of one."""
        stored = await self.add_results(data.jobId, [data])
        return stored[0]

    @abstractmethod
    async def list_results(self, job_id: int) -> List[AnalysisResult]:
        """Results for a job, ordered by result id."""

    # Models

    @abstractmethod
    async def create_model(self, data: DetectionModelCreate) -> DetectionModel:
        ...

    @abstractmethod
    async def list_models(self) -> List[DetectionModel]:
        ...

    @abstractmethod
    async def get_model(self, model_id: int) -> DetectionModel:
        """Return the model or raise ModelNotFoundError."""

    async def init_schema(self) -> None:
        return None

    async def close(self) -> None:
        return None
