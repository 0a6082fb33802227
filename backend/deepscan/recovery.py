"""
Recovery for jobs left in processing.

Analysis runs inside the serving process, so a restart orphans every job
that was processing at the time. Nothing will ever finish those jobs; this
module finds them and moves them to failed.

A job only counts as stuck once its last status change is older than the
timeout, so a sweep at startup cannot see jobs orphaned just before the
restart. `RecoverySweeper` therefore keeps sweeping on an interval for the
life of the process. Jobs this process is analysing itself are never
touched.
"""
import asyncio
import traceback
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Collection, List, Optional

from .exceptions import InvalidJobStateError
from .logger import logger
from .schemas import Job, JobStatus
from .store.base import JobStore, utcnow


@dataclass
class RecoveryReport:
    total: int = 0
    failed_job_ids: List[int] = field(default_factory=list)
    skipped_job_ids: List[int] = field(default_factory=list)


async def find_stuck_jobs(
    store: JobStore,
    older_than: timedelta,
    now: Optional[datetime] = None,
    owned_job_ids: Collection[int] = (),
) -> List[Job]:
    """Jobs in processing whose last status change is older than `older_than`."""
    cutoff = (now or utcnow()) - older_than
    processing = await store.list_jobs(status=JobStatus.PROCESSING)
    stuck = [job for job in processing if job.updatedAt < cutoff and job.id not in owned_job_ids]

    for job in stuck:
        logger.info(
            f"Found stuck job: {job.id} (processing since {job.updatedAt.isoformat()})",
            extra={"job_id": job.id},
        )
    return stuck


async def recover_stuck_jobs(
    store: JobStore,
    older_than: timedelta,
    now: Optional[datetime] = None,
    dry_run: bool = False,
    owned_job_ids: Collection[int] = (),
) -> RecoveryReport:
    """
    Move every stuck processing job to failed.

    A job that finished between the scan and the update is skipped.
    """
    logger.info("=== Checking for stuck jobs ===")

    stuck = await find_stuck_jobs(store, older_than, now, owned_job_ids)
    report = RecoveryReport(total=len(stuck))

    if not stuck:
        logger.info("No stuck jobs found")
        return report

    for job in stuck:
        if dry_run:
            report.skipped_job_ids.append(job.id)
            continue
        try:
            await store.set_status(job.id, JobStatus.FAILED)
            report.failed_job_ids.append(job.id)
        except InvalidJobStateError as e:
            logger.info(f"Job {job.id} left processing during recovery: {e.message}", extra={"job_id": job.id})
            report.skipped_job_ids.append(job.id)

    logger.warning(
        f"Recovery complete: {len(report.failed_job_ids)} of {report.total} stuck jobs marked failed",
        extra={"failed_job_ids": report.failed_job_ids, "dry_run": dry_run},
    )
    return report


class RecoverySweeper:
    """
    Runs `recover_stuck_jobs` once on start and then every `interval` seconds.

    `owned_job_ids` is asked before each sweep for the jobs this process is
    analysing, so live work is never failed however old it is.
    """

    def __init__(
        self,
        store: JobStore,
        older_than: timedelta,
        interval: float,
        owned_job_ids: Callable[[], Collection[int]] = frozenset,
    ):
        self.store = store
        self.older_than = older_than
        self.interval = interval
        self.owned_job_ids = owned_job_ids
        self._task: Optional["asyncio.Task[None]"] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def sweep(self) -> RecoveryReport:
        return await recover_stuck_jobs(self.store, self.older_than, owned_job_ids=self.owned_job_ids())

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.sweep()
            except Exception as e:
                # a failed sweep is retried on the next tick
                logger.error(
                    f"Stuck job sweep failed: {e}",
                    extra={"traceback": traceback.format_exc()},
                )

    async def start(self) -> RecoveryReport:
        """Sweep once now, then keep sweeping in the background."""
        report = await self.sweep()
        if not self.running:
            self._task = asyncio.create_task(self._loop(), name="stuck-job-sweeper")
            logger.info(
                f"Stuck job sweeper started (every {self.interval}s, timeout {self.older_than.total_seconds()}s)"
            )
        return report

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
