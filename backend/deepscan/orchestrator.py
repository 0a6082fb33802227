"""
Analysis orchestrator.

Drives a job through pending -> processing -> completed | failed:

1. move the job to processing
2. resolve the model set with the selector
3. run every selected model's producer
4. persist all results, or none of them if any model failed
5. move the job to completed (or failed)

`dispatch` runs this as a supervised asyncio task whose failure always
lands the job in a terminal state.
"""
import asyncio
import traceback
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from pydantic import ValidationError as PayloadValidationError

from .exceptions import (
    InternalError,
    InvalidJobStateError,
    JobNotFoundError,
    ProcessingFailure,
    ValidationError,
)
from .inference.base import AnalysisProducer, LatencyFn, no_delay
from .logger import logger
from .schemas import (
    AnalysisResult,
    AnalysisResultCreate,
    DetectionModel,
    Job,
    JobStatus,
    ProducerOutput,
)
from .services.job_status import is_terminal
from .services.selector import select_models
from .store.base import Clock, JobStore, utcnow


class AnalysisOrchestrator:
    def __init__(
        self,
        store: JobStore,
        producer: AnalysisProducer,
        *,
        latency: LatencyFn = no_delay,
        concurrent_models: bool = False,
        clock: Clock = utcnow,
    ):
        self.store = store
        self.producer = producer
        self.latency = latency
        self.concurrent_models = concurrent_models
        self.clock = clock
        self._tasks: Dict["asyncio.Task[JobStatus]", int] = {}

    # ----- single job -----

    async def _invoke(self, job: Job, model: DetectionModel) -> AnalysisResultCreate:
        try:
            output = await self.producer(job, model)
            if not isinstance(output, ProducerOutput):
                output = ProducerOutput.model_validate(output)
        except PayloadValidationError as e:
            raise ProcessingFailure(job.id, model.id, f"invalid payload: {e.error_count()} errors")
        except ProcessingFailure:
            raise
        except Exception as e:
            raise ProcessingFailure(job.id, model.id, f"{type(e).__name__}: {e}")

        return AnalysisResultCreate(
            jobId=job.id,
            modelId=model.id,
            analyzedAt=self.clock(),
            **output.model_dump(),
        )

    async def _run_models(self, job: Job, models: List[DetectionModel]) -> List[AnalysisResultCreate]:
        if not self.concurrent_models:
            return [await self._invoke(job, model) for model in models]

        outcomes = await asyncio.gather(
            *(self._invoke(job, model) for model in models),
            return_exceptions=True,
        )
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome
        return list(outcomes)

    async def run(self, job_id: int, explicit_model_ids: Optional[Iterable[int]] = None) -> List[AnalysisResult]:
        """
        Analyse one job to completion and return the stored results.

        Raises ProcessingFailure after moving the job to failed when any
        model fails; nothing is persisted for the job in that case.
        """
        job = await self.store.set_status(job_id, JobStatus.PROCESSING)
        logger.info(f"Job {job_id} status updated to 'processing'", extra={"job_id": job_id})

        try:
            catalog = await self.store.list_models()
            models = select_models(job, catalog, explicit_model_ids)
            logger.info(
                f"Selected {len(models)} models for job {job_id}",
                extra={"job_id": job_id, "model_ids": [m.id for m in models]},
            )

            await self.latency(job)
            drafts = await self._run_models(job, models)
        except ValidationError as e:
            await self._fail(job_id, ProcessingFailure(job_id, None, e.message))
        except ProcessingFailure as e:
            await self._fail(job_id, e)

        stored = await self.store.add_results(job_id, drafts)
        await self.store.set_status(job_id, JobStatus.COMPLETED)
        logger.info(
            f"Job {job_id} completed successfully with {len(stored)} results",
            extra={"job_id": job_id},
        )
        return stored

    async def _fail(self, job_id: int, failure: ProcessingFailure) -> None:
        await self.store.set_status(job_id, JobStatus.FAILED)
        logger.error(
            f"Analysis failed for job {job_id}: {failure.message}",
            extra={"job_id": job_id, "model_id": failure.model_id, "error_code": failure.code},
        )
        raise failure

    # ----- supervision -----

    async def _mark_failed(self, job_id: int) -> None:
        try:
            job = await self.store.get_job(job_id)
            if not is_terminal(job.status):
                await self.store.set_status(job_id, JobStatus.FAILED)
        except Exception as e:
            logger.error(
                f"Could not mark job {job_id} as failed: {e}",
                extra={"job_id": job_id, "traceback": traceback.format_exc()},
            )

    async def _supervise(self, job_id: int, explicit_model_ids: Optional[List[int]]) -> JobStatus:
        try:
            await self.run(job_id, explicit_model_ids)
            return JobStatus.COMPLETED
        except ProcessingFailure:
            # run() already moved the job to failed and logged it
            return JobStatus.FAILED
        except InvalidJobStateError as e:
            logger.warning(
                f"Job {job_id} was not dispatched: {e.message}",
                extra={"job_id": job_id, "error_code": e.code},
            )
            job = await self.store.get_job(job_id)
            return job.status
        except JobNotFoundError as e:
            logger.error(f"Cannot analyse job {job_id}: {e.message}", extra={"job_id": job_id, "error_code": e.code})
            raise
        except InternalError as e:
            logger.error(
                f"Internal error while analysing job {job_id}: {e.message}",
                extra={"job_id": job_id, "error_code": e.code, "traceback": traceback.format_exc()},
            )
            await self._mark_failed(job_id)
            raise
        except Exception as e:
            logger.error(
                f"Unexpected error while analysing job {job_id}: {e}",
                extra={"job_id": job_id, "error_code": "INTERNAL_ERROR", "traceback": traceback.format_exc()},
            )
            await self._mark_failed(job_id)
            raise InternalError(f"Job {job_id}: {type(e).__name__}: {e}") from e

    def _on_done(self, task: "asyncio.Task[JobStatus]") -> None:
        self._tasks.pop(task, None)
        if not task.cancelled():
            # _supervise logged it already; retrieving keeps asyncio from warning again
            task.exception()

    def dispatch(self, job_id: int, explicit_model_ids: Optional[Iterable[int]] = None) -> "asyncio.Task[JobStatus]":
        """Start analysing a job in the background and return the supervising task."""
        ids = list(explicit_model_ids) if explicit_model_ids else None
        task = asyncio.create_task(self._supervise(job_id, ids), name=f"analysis-job-{job_id}")
        self._tasks[task] = job_id
        task.add_done_callback(self._on_done)
        logger.info(f"Dispatched analysis for job {job_id}", extra={"job_id": job_id, "model_ids": ids})
        return task

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    @property
    def owned_job_ids(self) -> FrozenSet[int]:
        """Jobs this process is analysing right now; recovery must not touch them."""
        return frozenset(self._tasks.values())

    async def join(self) -> List[Tuple[str, object]]:
        """Wait for every in-flight analysis; returns (task name, outcome) pairs."""
        tasks = list(self._tasks)
        if not tasks:
            return []
        outcomes = await asyncio.gather(*tasks, return_exceptions=True)
        return [(t.get_name(), o) for t, o in zip(tasks, outcomes)]
