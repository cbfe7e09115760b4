import uuid
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.database import get_async_session
from api.models import AdminStatus, RechargeStatus, WithdrawalStatus
from api.routers.errors import DOMAIN_ERRORS, http_error
from api.routers.seller.schemas import RechargeRead
from api.routers.user.schemas import WithdrawalRead
from api.security import ActorRole, AuthContext, require_role
from schemas import ReviewRequestRead, TaskRead, TransactionRead
from services.queue import JobRepository
from services.recharges import RechargeService
from services.review_requests import ReviewRequestService
from services.tasks import TaskAssign, TaskService
from services.wallet import WalletService
from services.withdrawals import WithdrawalService
from .schemas import (
    JobCreate,
    JobRead,
    RechargeApprove,
    RechargeReject,
    RefundRelease,
    Rejection,
    RequestApprove,
    TaskAssignCreate,
    WalletAdjust,
    WithdrawalComplete,
    WithdrawalReject,
)

router = APIRouter()

admin_ctx = require_role(ActorRole.ADMIN)


def get_request_service(session: AsyncSession = Depends(get_async_session)) -> ReviewRequestService:
    return ReviewRequestService(session)


def get_task_service(session: AsyncSession = Depends(get_async_session)) -> TaskService:
    return TaskService(session)


def get_withdrawal_service(session: AsyncSession = Depends(get_async_session)) -> WithdrawalService:
    return WithdrawalService(session)


def get_recharge_service(session: AsyncSession = Depends(get_async_session)) -> RechargeService:
    return RechargeService(session)


def get_job_repository(session: AsyncSession = Depends(get_async_session)) -> JobRepository:
    return JobRepository(session)


# review requests

@router.get("/requests", response_model=List[ReviewRequestRead], summary="All review requests")
async def list_requests(
    admin_status: Optional[AdminStatus] = Query(None, description="Filter by admin status"),
    ctx: AuthContext = Depends(admin_ctx),
    service: ReviewRequestService = Depends(get_request_service),
):
    return [ReviewRequestRead.from_listing(listing) for listing in await service.list_requests(ctx, admin_status)]


@router.patch("/requests/{request_id}/approve", response_model=ReviewRequestRead, summary="Approve a paid request")
async def approve_request(
    request_id: uuid.UUID,
    dto: RequestApprove,
    ctx: AuthContext = Depends(admin_ctx),
    service: ReviewRequestService = Depends(get_request_service),
):
    try:
        return await service.approve(ctx, request_id, dto.note)
    except DOMAIN_ERRORS as e:
        raise http_error(e)


@router.patch("/requests/{request_id}/reject", response_model=ReviewRequestRead, summary="Reject a request")
async def reject_request(
    request_id: uuid.UUID,
    dto: Rejection,
    ctx: AuthContext = Depends(admin_ctx),
    service: ReviewRequestService = Depends(get_request_service),
):
    """
    Rejects a pending request. If it was already paid, the grand total goes
    back to the seller wallet and `payment_status` becomes `refunded`.
    """
    try:
        return await service.reject(ctx, request_id, dto.reason)
    except DOMAIN_ERRORS as e:
        raise http_error(e)


# tasks

@router.post("/tasks", response_model=TaskRead, status_code=status.HTTP_201_CREATED, summary="Assign a task")
async def assign_task(
    dto: TaskAssignCreate,
    ctx: AuthContext = Depends(admin_ctx),
    service: TaskService = Depends(get_task_service),
):
    try:
        return await service.assign_task(ctx, TaskAssign(**dto.model_dump()))
    except DOMAIN_ERRORS as e:
        raise http_error(e)


@router.patch("/tasks/{task_id}/steps/{step_number}/approve", response_model=TaskRead, summary="Approve a step")
async def approve_step(
    task_id: uuid.UUID,
    step_number: int = Path(..., ge=1, le=4),
    ctx: AuthContext = Depends(admin_ctx),
    service: TaskService = Depends(get_task_service),
):
    try:
        return await service.approve_step(ctx, task_id, step_number)
    except DOMAIN_ERRORS as e:
        raise http_error(e)


@router.patch("/tasks/{task_id}/steps/{step_number}/reject", response_model=TaskRead, summary="Send a step back")
async def reject_step(
    task_id: uuid.UUID,
    dto: Rejection,
    step_number: int = Path(..., ge=1, le=4),
    ctx: AuthContext = Depends(admin_ctx),
    service: TaskService = Depends(get_task_service),
):
    try:
        return await service.reject_step(ctx, task_id, step_number, dto.reason)
    except DOMAIN_ERRORS as e:
        raise http_error(e)


@router.post("/tasks/{task_id}/refund", response_model=TaskRead, summary="Release refund and commission")
async def release_refund(
    task_id: uuid.UUID,
    dto: RefundRelease,
    ctx: AuthContext = Depends(admin_ctx),
    service: TaskService = Depends(get_task_service),
):
    """
    Completes step 4: credits the refund and the task commission to the
    reviewer wallet and closes the task, all in one transaction.
    """
    try:
        return await service.release_refund(ctx, task_id, dto.refund_amount_minor)
    except DOMAIN_ERRORS as e:
        raise http_error(e)


@router.post("/tasks/{task_id}/refund/reject", response_model=TaskRead, summary="Reject refund request")
async def reject_refund(
    task_id: uuid.UUID,
    dto: Rejection,
    ctx: AuthContext = Depends(admin_ctx),
    service: TaskService = Depends(get_task_service),
):
    try:
        return await service.reject_refund(ctx, task_id, dto.reason)
    except DOMAIN_ERRORS as e:
        raise http_error(e)


# wallets and withdrawals

@router.post("/sellers/{seller_id}/wallet", response_model=TransactionRead, summary="Adjust seller wallet")
async def adjust_seller_wallet(
    seller_id: uuid.UUID,
    dto: WalletAdjust,
    ctx: AuthContext = Depends(admin_ctx),
    session: AsyncSession = Depends(get_async_session),
):
    try:
        return await WalletService(session).adjust_seller_wallet(seller_id, dto.amount_minor, dto.direction, dto.note)
    except DOMAIN_ERRORS as e:
        raise http_error(e)


@router.get("/withdrawals", response_model=List[WithdrawalRead], summary="Withdrawal requests by status")
async def list_withdrawals(
    withdrawal_status: WithdrawalStatus = Query(WithdrawalStatus.PENDING, alias="status"),
    ctx: AuthContext = Depends(admin_ctx),
    service: WithdrawalService = Depends(get_withdrawal_service),
):
    return await service.get_requests_by_status(withdrawal_status)


@router.patch("/withdrawals/{withdrawal_id}/approve", response_model=WithdrawalRead, summary="Approve a withdrawal")
async def approve_withdrawal(
    withdrawal_id: uuid.UUID,
    ctx: AuthContext = Depends(admin_ctx),
    service: WithdrawalService = Depends(get_withdrawal_service),
):
    try:
        return await service.approve(ctx, withdrawal_id)
    except DOMAIN_ERRORS as e:
        raise http_error(e)


@router.patch("/withdrawals/{withdrawal_id}/reject", response_model=WithdrawalRead, summary="Reject a withdrawal")
async def reject_withdrawal(
    withdrawal_id: uuid.UUID,
    dto: WithdrawalReject,
    ctx: AuthContext = Depends(admin_ctx),
    service: WithdrawalService = Depends(get_withdrawal_service),
):
    try:
        return await service.reject(ctx, withdrawal_id, dto.note)
    except DOMAIN_ERRORS as e:
        raise http_error(e)


@router.patch("/withdrawals/{withdrawal_id}/complete", response_model=WithdrawalRead, summary="Mark a withdrawal paid")
async def complete_withdrawal(
    withdrawal_id: uuid.UUID,
    dto: WithdrawalComplete,
    ctx: AuthContext = Depends(admin_ctx),
    service: WithdrawalService = Depends(get_withdrawal_service),
):
    try:
        return await service.complete(ctx, withdrawal_id, dto.gateway_ref)
    except DOMAIN_ERRORS as e:
        raise http_error(e)


@router.get("/wallet-recharges", response_model=List[RechargeRead], summary="Seller top-up requests")
async def list_recharges(
    recharge_status: Optional[RechargeStatus] = Query(None, alias="status", description="Filter by status"),
    ctx: AuthContext = Depends(admin_ctx),
    service: RechargeService = Depends(get_recharge_service),
):
    return await service.list_recharges(recharge_status)


@router.patch("/wallet-recharges/{recharge_id}/approve", response_model=RechargeRead, summary="Approve a top-up")
async def approve_recharge(
    recharge_id: uuid.UUID,
    dto: RechargeApprove,
    ctx: AuthContext = Depends(admin_ctx),
    service: RechargeService = Depends(get_recharge_service),
):
    """
    Credits the seller wallet with a `bank_transfer` ledger row and marks the
    request approved in one transaction.

    Status codes:
    - 200 OK - wallet credited
    - 400 Bad Request - request already processed
    - 404 Not Found - unknown request
    """
    try:
        return (await service.approve(ctx, recharge_id, dto.remarks)).recharge
    except DOMAIN_ERRORS as e:
        raise http_error(e)


@router.patch("/wallet-recharges/{recharge_id}/reject", response_model=RechargeRead, summary="Reject a top-up")
async def reject_recharge(
    recharge_id: uuid.UUID,
    dto: RechargeReject,
    ctx: AuthContext = Depends(admin_ctx),
    service: RechargeService = Depends(get_recharge_service),
):
    try:
        return await service.reject(ctx, recharge_id, dto.remarks)
    except DOMAIN_ERRORS as e:
        raise http_error(e)


# job queue

@router.post("/jobs", response_model=JobRead, status_code=status.HTTP_201_CREATED, summary="Enqueue a job")
async def enqueue_job(
    dto: JobCreate,
    ctx: AuthContext = Depends(admin_ctx),
    jobs: JobRepository = Depends(get_job_repository),
):
    """
    Known job types:
    - `auto_payout` - payload `{"min_amount": int, "max_amount": int | null, "gateway": "razorpay"}`
    - `cleanup_cache` - no payload
    - `backfill_task_links` - no payload
    """
    try:
        return await jobs.enqueue(dto.job_type, dto.payload, dto.priority, dto.scheduled_at, dto.max_attempts)
    except DOMAIN_ERRORS as e:
        raise http_error(e)


@router.get("/jobs/stats", response_model=Dict[str, int], summary="Job counts by status")
async def job_stats(
    ctx: AuthContext = Depends(admin_ctx),
    jobs: JobRepository = Depends(get_job_repository),
):
    return await jobs.job_stats()


@router.post("/jobs/{job_id}/retry", response_model=JobRead, summary="Retry a failed job")
async def retry_job(
    job_id: int,
    ctx: AuthContext = Depends(admin_ctx),
    jobs: JobRepository = Depends(get_job_repository),
):
    try:
        return await jobs.retry_job(job_id)
    except DOMAIN_ERRORS as e:
        raise http_error(e)
