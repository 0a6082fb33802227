"""
Detection service: the boundary operations of the analysis pipeline.

A DetectionService owns one store, one orchestrator and one aggregator.
Nothing is module-global, so tests and multiple app instances each build
their own.
"""
from datetime import timedelta
from typing import Iterable, List, Optional

from .aggregator import Aggregator
from .config import Settings
from .inference.base import AnalysisProducer, LatencyFn, no_delay
from .inference.simulated import SimulatedProducer, sleep_latency
from .logger import logger
from .orchestrator import AnalysisOrchestrator
from .recovery import RecoveryReport, RecoverySweeper
from .schemas import (
    AnalysisResponse,
    DetectionModel,
    DetectionModelCreate,
    Job,
    JobCreate,
    JobStatusResponse,
)
from .seed_data import seed_default_models
from .store.base import Clock, JobStore, utcnow


class DetectionService:
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
        self.orchestrator = AnalysisOrchestrator(
            store,
            producer,
            latency=latency,
            concurrent_models=concurrent_models,
            clock=clock,
        )
        self.aggregator = Aggregator(store)
        self.sweeper: Optional[RecoverySweeper] = None

    async def create_job(
        self,
        filename: str,
        filesize: int,
        filetype: str,
        user_id: Optional[int] = None,
    ) -> Job:
        job = await self.store.create_job(
            JobCreate(filename=filename, filesize=filesize, filetype=filetype, userId=user_id)
        )
        logger.info(
            f"Job created: {job.id}",
            extra={"job_id": job.id, "uploaded_file": filename, "filetype": filetype, "filesize": filesize},
        )
        return job

    async def list_jobs(self, user_id: Optional[int] = None) -> List[Job]:
        return await self.store.list_jobs(user_id=user_id)

    async def list_models(self) -> List[DetectionModel]:
        return await self.store.list_models()

    async def create_model(self, data: DetectionModelCreate) -> DetectionModel:
        model = await self.store.create_model(data)
        logger.info(f"Detection model registered: {model.id} ({model.name})", extra={"model_id": model.id})
        return model

    async def get_status(self, job_id: int) -> JobStatusResponse:
        job = await self.store.get_job(job_id)
        return JobStatusResponse(status=job.status)

    async def get_report(self, job_id: int) -> AnalysisResponse:
        return await self.aggregator.aggregate(job_id)

    async def dispatch_analysis(self, job_id: int, explicit_model_ids: Optional[Iterable[int]] = None) -> None:
        """Start analysis in the background. Fails fast only for an unknown job."""
        await self.store.get_job(job_id)
        self.orchestrator.dispatch(job_id, explicit_model_ids)

    async def seed_default_models(self) -> List[DetectionModel]:
        return await seed_default_models(self.store)

    async def start_recovery(self, older_than: timedelta, interval: float) -> RecoveryReport:
        """Fail stuck jobs now and keep sweeping every `interval` seconds until shutdown."""
        if self.sweeper is None:
            self.sweeper = RecoverySweeper(
                self.store,
                older_than,
                interval,
                owned_job_ids=lambda: self.orchestrator.owned_job_ids,
            )
        return await self.sweeper.start()

    async def shutdown(self) -> None:
        if self.sweeper is not None:
            await self.sweeper.stop()
        if self.orchestrator.in_flight:
            logger.info(f"Waiting for {self.orchestrator.in_flight} in-flight analyses")
        await self.orchestrator.join()
        await self.store.close()


def build_store(settings: Settings) -> JobStore:
    if settings.STORE_BACKEND == "memory":
        from .store.memory import InMemoryJobStore
        return InMemoryJobStore()
    if settings.STORE_BACKEND == "sql":
        from .store.sql import SqlJobStore
        return SqlJobStore.from_url(settings.DATABASE_URL)
    raise ValueError(f"Unknown STORE_BACKEND: {settings.STORE_BACKEND!r}")


def build_service(settings: Settings, store: Optional[JobStore] = None) -> DetectionService:
    latency: LatencyFn = no_delay
    if settings.SIMULATE_LATENCY:
        latency = sleep_latency(settings.VIDEO_LATENCY_CAP_MS, settings.IMAGE_LATENCY_CAP_MS)

    return DetectionService(
        store or build_store(settings),
        SimulatedProducer(seed=settings.PRODUCER_SEED),
        latency=latency,
        concurrent_models=settings.RUN_MODELS_CONCURRENTLY,
    )
