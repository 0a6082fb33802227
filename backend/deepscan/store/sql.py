from __future__ import annotations

from typing import List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from ..db import create_tables, make_engine, make_sessionmaker
from ..exceptions import (
    DuplicateResultError,
    InternalError,
    InvalidJobStateError,
    JobNotFoundError,
    ModelNotFoundError,
)
from ..logger import logger
from ..models import AnalysisResultRow, DetectionModelRow, MediaJob
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


def _job_from_row(row: MediaJob) -> Job:
    return Job(
        id=row.id,
        filename=row.filename,
        filesize=row.filesize,
        filetype=row.filetype,
        status=JobStatus(row.status),
        uploadedAt=row.uploaded_at,
        updatedAt=row.updated_at,
        userId=row.user_id,
    )


def _model_from_row(row: DetectionModelRow) -> DetectionModel:
    return DetectionModel(
        id=row.id,
        name=row.name,
        description=row.description,
        mediaCompat=row.media_compat,
        category=row.category,
        isActive=row.is_active,
    )


def _result_from_row(row: AnalysisResultRow) -> AnalysisResult:
    return AnalysisResult(
        id=row.id,
        jobId=row.job_id,
        modelId=row.model_id,
        confidenceScore=row.confidence_score,
        anomalies=row.anomalies,
        manipulationCandidates=row.manipulation_candidates,
        modelDetails=row.model_details,
        metadataFindings=row.metadata_findings,
        technicalFindings=row.technical_findings,
        analyzedAt=row.analyzed_at,
    )


def _row_from_draft(data: AnalysisResultCreate) -> AnalysisResultRow:
    payload = data.model_dump(mode="json")
    return AnalysisResultRow(
        job_id=data.jobId,
        model_id=data.modelId,
        confidence_score=data.confidenceScore,
        anomalies=payload["anomalies"],
        manipulation_candidates=payload["manipulationCandidates"],
        model_details=payload["modelDetails"],
        metadata_findings=payload["metadataFindings"],
        technical_findings=payload["technicalFindings"],
        analyzed_at=data.analyzedAt,
    )


def _first_repeat(model_ids: Sequence[int]) -> int:
    seen = set()
    for model_id in model_ids:
        if model_id in seen:
            return model_id
        seen.add(model_id)
    return model_ids[0]


class SqlJobStore(JobStore):
    """
    SQLAlchemy-backed store.

    Writes to one job are serialized twice: by an in-process KeyedLock and by
    a row lock (SELECT ... FOR UPDATE) for databases that support it. The
    (job_id, model_id) unique constraint rejects duplicate results even when
    two processes race.
    """

    def __init__(self, engine: AsyncEngine, clock: Clock = utcnow, owns_engine: bool = False):
        self._engine = engine
        self._sessions = make_sessionmaker(engine)
        self._clock = clock
        self._owns_engine = owns_engine
        self._job_locks = KeyedLock()

    @classmethod
    def from_url(cls, database_url: str, clock: Clock = utcnow) -> "SqlJobStore":
        return cls(make_engine(database_url), clock=clock, owns_engine=True)

    async def init_schema(self) -> None:
        await create_tables(self._engine)
        logger.info("Database tables created successfully")

    async def close(self) -> None:
        if self._owns_engine:
            await self._engine.dispose()

    async def _load_job(self, db: AsyncSession, job_id: int, for_update: bool = False) -> MediaJob:
        stmt = select(MediaJob).filter(MediaJob.id == job_id)
        if for_update:
            stmt = stmt.with_for_update()
        res = await db.execute(stmt)
        row = res.scalar_one_or_none()
        if row is None:
            raise JobNotFoundError(job_id)
        return row

    async def create_job(self, data: JobCreate) -> Job:
        now = self._clock()
        async with self._sessions() as db:
            row = MediaJob(
                filename=data.filename,
                filesize=data.filesize,
                filetype=data.filetype,
                user_id=data.userId,
                status=JobStatus.PENDING.value,
                uploaded_at=now,
                updated_at=now,
            )
            db.add(row)
            await db.commit()
            await db.refresh(row)
            return _job_from_row(row)

    async def get_job(self, job_id: int) -> Job:
        async with self._sessions() as db:
            return _job_from_row(await self._load_job(db, job_id))

    async def list_jobs(
        self,
        *,
        status: Optional[JobStatus] = None,
        user_id: Optional[int] = None,
    ) -> List[Job]:
        stmt = select(MediaJob).order_by(MediaJob.id)
        if status is not None:
            stmt = stmt.filter(MediaJob.status == JobStatus(status).value)
        if user_id is not None:
            stmt = stmt.filter(MediaJob.user_id == user_id)
        async with self._sessions() as db:
            res = await db.execute(stmt)
            return [_job_from_row(row) for row in res.scalars().all()]

    async def set_status(self, job_id: int, status: JobStatus) -> Job:
        async with self._job_locks.hold(job_id):
            async with self._sessions() as db:
                row = await self._load_job(db, job_id, for_update=True)
                check_transition(job_id, JobStatus(row.status), status)
                row.status = JobStatus(status).value
                row.updated_at = self._clock()
                await db.commit()
                await db.refresh(row)
                return _job_from_row(row)

    async def add_results(self, job_id: int, drafts: Sequence[AnalysisResultCreate]) -> List[AnalysisResult]:
        for data in drafts:
            if data.jobId != job_id:
                raise InternalError(f"Result for job {data.jobId} submitted in a batch for job {job_id}")

        async with self._job_locks.hold(job_id):
            async with self._sessions() as db:
                job = await self._load_job(db, job_id, for_update=True)
                if job.status != JobStatus.PROCESSING.value:
                    raise InvalidJobStateError(job_id, job.status, JobStatus.PROCESSING.value)

                model_ids = [data.modelId for data in drafts]
                if model_ids:
                    res = await db.execute(
                        select(AnalysisResultRow.model_id).filter(
                            AnalysisResultRow.job_id == job_id,
                            AnalysisResultRow.model_id.in_(model_ids),
                        )
                    )
                    existing = res.scalars().first()
                    if existing is not None:
                        raise DuplicateResultError(job_id, existing)

                rows = [_row_from_draft(data) for data in drafts]
                db.add_all(rows)
                # one commit for the whole batch; the unique constraint
                # rolls all of it back on a repeated pair
                try:
                    await db.commit()
                except IntegrityError:
                    await db.rollback()
                    raise DuplicateResultError(job_id, _first_repeat(model_ids))
                for row in rows:
                    await db.refresh(row)
                return [_result_from_row(row) for row in rows]

    async def list_results(self, job_id: int) -> List[AnalysisResult]:
        stmt = (
            select(AnalysisResultRow)
            .filter(AnalysisResultRow.job_id == job_id)
            .order_by(AnalysisResultRow.id)
        )
        async with self._sessions() as db:
            res = await db.execute(stmt)
            return [_result_from_row(row) for row in res.scalars().all()]

    async def create_model(self, data: DetectionModelCreate) -> DetectionModel:
        async with self._sessions() as db:
            row = DetectionModelRow(
                name=data.name,
                description=data.description,
                media_compat=data.mediaCompat.value,
                category=data.category.value,
                is_active=data.isActive,
            )
            db.add(row)
            await db.commit()
            await db.refresh(row)
            return _model_from_row(row)

    async def list_models(self) -> List[DetectionModel]:
        async with self._sessions() as db:
            res = await db.execute(select(DetectionModelRow).order_by(DetectionModelRow.id))
            return [_model_from_row(row) for row in res.scalars().all()]

    async def get_model(self, model_id: int) -> DetectionModel:
        async with self._sessions() as db:
            res = await db.execute(select(DetectionModelRow).filter(DetectionModelRow.id == model_id))
            row = res.scalar_one_or_none()
            if row is None:
                raise ModelNotFoundError(model_id)
            return _model_from_row(row)
