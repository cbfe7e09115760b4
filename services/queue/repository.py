import logging
from datetime import datetime, timedelta
from typing import Any, Collection, Dict

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from api.models import Job, JobStatus
from services.errors import BusinessRuleError, NotFound, ValidationFailed
from services.queue.handlers import HANDLERS
from utils.clock import utcnow


class JobRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def enqueue(
        self,
        job_type: str,
        payload: Dict[str, Any] | None = None,
        priority: int = 5,
        scheduled_at: datetime | None = None,
        max_attempts: int = 3,
    ) -> Job:
        if job_type not in HANDLERS:
            raise ValidationFailed(f"Unknown job type {job_type!r}")

        job = Job(
            job_type=job_type,
            payload=payload or {},
            priority=priority,
            status=JobStatus.PENDING,
            attempts=0,
            max_attempts=max_attempts,
            scheduled_at=scheduled_at,
        )
        self.session.add(job)
        await self.session.commit()
        logging.info(f"Enqueued job {job.id} ({job_type}) with priority {priority}")
        return job

    async def next_job(self, exclude: Collection[int] = ()) -> Job | None:
        """Claim the next due job: marks it processing and counts the attempt."""
        now = utcnow()
        query = (
            select(Job)
            .where(
                Job.status == JobStatus.PENDING,
                or_(Job.scheduled_at.is_(None), Job.scheduled_at <= now),
                Job.attempts < Job.max_attempts,
            )
            .order_by(Job.priority.desc(), Job.created_at.asc(), Job.id.asc())
            .limit(1)
            .with_for_update(skip_locked=True)
        )
        if exclude:
            query = query.where(Job.id.not_in(list(exclude)))

        job = (await self.session.execute(query)).scalar_one_or_none()
        if job is None:
            await self.session.rollback()
            return None

        job.status = JobStatus.PROCESSING
        job.attempts += 1
        job.started_at = now
        await self.session.commit()
        return job

    async def complete_job(self, job_id: int) -> None:
        job = await self.session.get(Job, job_id)
        if not job:
            raise NotFound("Job not found")
        job.status = JobStatus.COMPLETED
        job.completed_at = utcnow()
        job.error_message = None
        await self.session.commit()

    async def fail_job(self, job_id: int, error: str) -> Job:
        """Back to pending while attempts remain, otherwise failed for good."""
        job = await self.session.get(Job, job_id)
        if not job:
            raise NotFound("Job not found")
        job.error_message = error[:2000]
        if job.attempts < job.max_attempts:
            job.status = JobStatus.PENDING
        else:
            job.status = JobStatus.FAILED
            job.completed_at = utcnow()
        await self.session.commit()
        return job

    async def retry_job(self, job_id: int) -> Job:
        job = await self.session.get(Job, job_id)
        if not job:
            raise NotFound("Job not found")
        if job.status != JobStatus.FAILED:
            raise BusinessRuleError(f"Only failed jobs can be retried, job is {job.status.value}")
        job.status = JobStatus.PENDING
        job.attempts = 0
        job.error_message = None
        job.completed_at = None
        await self.session.commit()
        return job

    async def clean_old_jobs(self, days: int = 30) -> int:
        cutoff = utcnow() - timedelta(days=days)
        result = await self.session.execute(
            delete(Job).where(
                Job.status.in_((JobStatus.COMPLETED, JobStatus.FAILED)),
                Job.created_at < cutoff,
            )
        )
        await self.session.commit()
        return result.rowcount or 0

    async def job_stats(self) -> Dict[str, int]:
        stats = {status.value: 0 for status in JobStatus}
        try:
            rows = (await self.session.execute(select(Job.status, func.count(Job.id)).group_by(Job.status))).all()
        except SQLAlchemyError:
            logging.exception("Failed to load job stats")
            return stats
        for status, count in rows:
            stats[JobStatus(status).value] = count
        return stats
