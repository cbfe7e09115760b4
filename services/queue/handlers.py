from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from services.errors import ValidationFailed
from services.gateways import PaymentGateway
from services.redis import RedisClient
from services.tasks import TaskService
from services.withdrawals import WithdrawalService


@dataclass
class JobContext:
    session_maker: async_sessionmaker[AsyncSession]
    cache: RedisClient | None = None
    gateway_factory: Callable[[str], PaymentGateway] | None = None


JobHandler = Callable[[JobContext, Dict[str, Any]], Awaitable[Dict[str, Any]]]


async def auto_payout(ctx: JobContext, payload: Dict[str, Any]) -> Dict[str, Any]:
    async with ctx.session_maker() as session:
        report = await WithdrawalService(session, gateway_factory=ctx.gateway_factory).process_auto_payout(payload)
    return {"status": report.status, "succeeded": report.succeeded, "failed": report.failed}


async def cleanup_cache(ctx: JobContext, payload: Dict[str, Any]) -> Dict[str, Any]:
    if ctx.cache is None:
        raise RuntimeError("Cache is not configured")
    return {"removed": await ctx.cache.clean_expired()}


async def backfill_task_links(ctx: JobContext, payload: Dict[str, Any]) -> Dict[str, Any]:
    async with ctx.session_maker() as session:
        linked = await TaskService(session).backfill_request_links()
    return {"linked": linked}


HANDLERS: Dict[str, JobHandler] = {
    "auto_payout": auto_payout,
    "cleanup_cache": cleanup_cache,
    "backfill_task_links": backfill_task_links,
}


def get_handler(job_type: str, handlers: Dict[str, JobHandler] | None = None) -> JobHandler:
    handler = (handlers if handlers is not None else HANDLERS).get(job_type)
    if handler is None:
        raise ValidationFailed(f"Unknown job type {job_type!r}")
    return handler
