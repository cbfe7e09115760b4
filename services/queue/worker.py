import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config import ENV, get_env
from services.gateways import PaymentGateway
from services.queue.handlers import HANDLERS, JobContext, JobHandler, get_handler
from services.queue.repository import JobRepository
from services.redis import RedisClient

LOG_PREFIX = "[Queue Worker]"


@dataclass
class WorkerReport:
    processed: int = 0
    failed: int = 0
    attempted: list[int] = field(default_factory=list)
    # max_jobs, time_limit, error or drained
    stopped_by: str = "drained"
    cleaned_jobs: int = 0
    cleaned_cache: int = 0
    elapsed_seconds: float = 0.0


class QueueWorker:
    """
    One batch run: claim due jobs one at a time until the job cap, the time
    ceiling or an empty queue, then purge old jobs and expired cache entries.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        env: ENV | None = None,
        cache: RedisClient | None = None,
        gateway_factory: Callable[[str], PaymentGateway] | None = None,
        handlers: Dict[str, JobHandler] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.session_maker = session_maker
        self.env = env or get_env()
        self.cache = cache
        self.handlers = handlers if handlers is not None else HANDLERS
        self.clock = clock
        self.context = JobContext(session_maker=session_maker, cache=cache, gateway_factory=gateway_factory)

    async def _claim(self, exclude: list[int]):
        async with self.session_maker() as session:
            return await JobRepository(session).next_job(exclude=exclude)

    async def _process(self, job_id: int, job_type: str, payload: dict, timeout: float) -> None:
        handler = get_handler(job_type, self.handlers)
        result = await asyncio.wait_for(handler(self.context, payload), timeout=timeout)
        async with self.session_maker() as session:
            await JobRepository(session).complete_job(job_id)
        logging.info(f"{LOG_PREFIX} Job {job_id} ({job_type}) completed: {result}")

    async def _fail(self, job_id: int, error: str) -> None:
        async with self.session_maker() as session:
            job = await JobRepository(session).fail_job(job_id, error)
            logging.error(f"{LOG_PREFIX} Job {job_id} failed (attempt {job.attempts}/{job.max_attempts}): {error}")

    async def run(self) -> WorkerReport:
        report = WorkerReport()
        started = self.clock()
        max_jobs = self.env.QUEUE_MAX_JOBS
        time_limit = self.env.QUEUE_TIME_LIMIT_SECONDS
        logging.info(f"{LOG_PREFIX} Starting (max {max_jobs} jobs, {time_limit}s)")

        while True:
            if len(report.attempted) >= max_jobs:
                report.stopped_by = "max_jobs"
                break
            remaining = time_limit - (self.clock() - started)
            if remaining <= 0:
                report.stopped_by = "time_limit"
                break

            job = await self._claim(report.attempted)
            if job is None:
                report.stopped_by = "drained"
                break

            job_id, job_type, payload = job.id, job.job_type, dict(job.payload or {})
            report.attempted.append(job_id)
            try:
                await self._process(job_id, job_type, payload, remaining)
                report.processed += 1
            except Exception as e:
                report.failed += 1
                error = str(e) or type(e).__name__
                await self._fail(job_id, error)
                if self.env.QUEUE_STOP_ON_ERROR:
                    report.stopped_by = "error"
                    break

        await self._cleanup(report)
        report.elapsed_seconds = round(self.clock() - started, 3)
        logging.info(
            f"{LOG_PREFIX} Finished: processed={report.processed} failed={report.failed} "
            f"stopped_by={report.stopped_by} elapsed={report.elapsed_seconds}s"
        )
        return report

    async def _cleanup(self, report: WorkerReport) -> None:
        try:
            async with self.session_maker() as session:
                report.cleaned_jobs = await JobRepository(session).clean_old_jobs(self.env.QUEUE_JOB_RETENTION_DAYS)
        except Exception as e:
            logging.warning(f"{LOG_PREFIX} Old job cleanup failed: {e}")

        if self.cache is None:
            return
        try:
            report.cleaned_cache = await self.cache.clean_expired()
        except Exception as e:
            logging.warning(f"{LOG_PREFIX} Cache cleanup failed: {e}")


async def run_worker(env: ENV | None = None) -> WorkerReport:
    from api.database import async_session_maker

    cache = RedisClient()
    try:
        return await QueueWorker(async_session_maker, env=env, cache=cache).run()
    finally:
        await cache.close()
