from __future__ import annotations

import argparse
import asyncio
from dataclasses import dataclass
from datetime import timedelta

from deepscan.config import settings
from deepscan.logger import logger
from deepscan.recovery import recover_stuck_jobs
from deepscan.schemas import JobStatus
from deepscan.store.sql import SqlJobStore


@dataclass(frozen=True)
class StatusCounts:
    pending: int
    processing: int
    completed: int
    failed: int


async def _get_counts(store: SqlJobStore) -> StatusCounts:
    counts = {}
    for status in JobStatus:
        counts[status.value] = len(await store.list_jobs(status=status))
    return StatusCounts(**counts)


async def recover(*, older_than_minutes: int, dry_run: bool) -> None:
    store = SqlJobStore.from_url(settings.DATABASE_URL)
    try:
        before = await _get_counts(store)
        logger.warning(
            "Stuck job recovery requested",
            extra={
                "older_than_minutes": older_than_minutes,
                "dry_run": dry_run,
                "before": {
                    "pending": before.pending,
                    "processing": before.processing,
                    "completed": before.completed,
                    "failed": before.failed,
                },
            },
        )

        report = await recover_stuck_jobs(
            store,
            timedelta(minutes=older_than_minutes),
            dry_run=dry_run,
        )

        after = await _get_counts(store)
        logger.warning(
            "Stuck job recovery completed",
            extra={
                "stuck": report.total,
                "failed_job_ids": report.failed_job_ids,
                "skipped_job_ids": report.skipped_job_ids,
                "after": {
                    "pending": after.pending,
                    "processing": after.processing,
                    "completed": after.completed,
                    "failed": after.failed,
                },
            },
        )
    finally:
        await store.close()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Mark analysis jobs stuck in 'processing' as failed.",
    )
    parser.add_argument(
        "--older-than-minutes",
        type=int,
        default=max(1, int(settings.STUCK_JOB_TIMEOUT_SECONDS // 60)),
        help="Only touch jobs whose last status change is older than this.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report stuck jobs without changing them.",
    )
    return parser


def main() -> None:
    parser = _build_parser()
    args = parser.parse_args()
    asyncio.run(recover(older_than_minutes=args.older_than_minutes, dry_run=bool(args.dry_run)))


if __name__ == "__main__":
    main()
