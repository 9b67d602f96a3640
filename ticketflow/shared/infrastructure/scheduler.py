"""
Background Job Scheduler
========================

Wrapper around APScheduler for the periodic jobs (escalation sweep,
outbox dispatch, idempotency key purge).
"""

from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from ticketflow.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

JobFunc = Callable[[], Awaitable[object]]


@dataclass(frozen=True)
class IntervalJob:
    job_id: str
    func: JobFunc
    interval_seconds: int
    name: Optional[str] = None


class JobScheduler:
    """
    Manages the lifecycle of the scheduler and its interval jobs.

    Every job runs with ``max_instances=1`` so a slow run is never overlapped
    by the next tick of the same job.
    """

    def __init__(self):
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._jobs: List[IntervalJob] = []
        self._running = False

    def add_job(
        self,
        job_id: str,
        func: JobFunc,
        interval_seconds: int,
        name: Optional[str] = None,
    ) -> None:
        if self._running:
            raise RuntimeError("Cannot add jobs to a running scheduler")
        self._jobs.append(IntervalJob(job_id, func, interval_seconds, name))

    @staticmethod
    async def _run(job: IntervalJob) -> None:
        try:
            await job.func()
        except Exception as e:
            logger.error(
                "Background job failed",
                extra={"job_id": job.job_id, "error": str(e)},
                exc_info=True,
            )

    async def start(self) -> None:
        if self._running:
            logger.warning("Job scheduler already running")
            return

        self._scheduler = AsyncIOScheduler()
        for job in self._jobs:
            self._scheduler.add_job(
                self._run,
                "interval",
                args=[job],
                seconds=job.interval_seconds,
                id=job.job_id,
                name=job.name or job.job_id,
                misfire_grace_time=60,
                max_instances=1,
                coalesce=True,
                replace_existing=True,
            )

        self._scheduler.start()
        self._running = True
        logger.info(
            "Job scheduler started",
            extra={"jobs": {job.job_id: job.interval_seconds for job in self._jobs}}
        )

    async def stop(self) -> None:
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=True)

        self._running = False
        logger.info("Job scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def job_ids(self) -> List[str]:
        return [job.job_id for job in self._jobs]
