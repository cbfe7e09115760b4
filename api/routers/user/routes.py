import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.database import get_async_session
from api.models import OwnerType, TaskStatus
from api.routers.errors import DOMAIN_ERRORS, http_error
from api.security import ActorRole, AuthContext, require_role
from schemas import TaskRead, TransactionRead, WalletOverview, WalletRead
from services.tasks import StepProof, TaskService
from services.wallet import WalletService
from services.withdrawals import WithdrawalService
from .schemas import StepSubmit, WithdrawalCreate, WithdrawalRead

router = APIRouter()

user_ctx = require_role(ActorRole.USER)


def get_task_service(session: AsyncSession = Depends(get_async_session)) -> TaskService:
    return TaskService(session)


def get_withdrawal_service(session: AsyncSession = Depends(get_async_session)) -> WithdrawalService:
    return WithdrawalService(session)


@router.get("/tasks", response_model=List[TaskRead], summary="My tasks")
async def list_tasks(
    task_status: Optional[TaskStatus] = Query(None, alias="status", description="Filter by task status"),
    ctx: AuthContext = Depends(user_ctx),
    service: TaskService = Depends(get_task_service),
):
    return await service.list_user_tasks(ctx, task_status)


@router.post("/tasks/{task_id}/steps/{step_number}", response_model=TaskRead, summary="Submit step proof")
async def submit_step(
    dto: StepSubmit,
    task_id: uuid.UUID,
    step_number: int = Path(..., ge=1, le=4),
    ctx: AuthContext = Depends(user_ctx),
    service: TaskService = Depends(get_task_service),
):
    """
    Submits the proof for one step of a task. Steps go strictly 1 → 4.

    Required proof:
    - step 1 (order placed): `order_number`, `order_date`, `order_amount_minor`
    - step 2 (delivered): `screenshot_url`
    - step 3 (review submitted): `screenshot_url`
    - step 4 (refund request): `screenshot_url` of the live review and `payment_qr_url`

    Status codes:
    - 200 OK - step stored
    - 400 Bad Request - previous step not completed or step already completed
    - 404 Not Found - no such task for this user
    - 409 Conflict - order number already used on another task
    - 422 Unprocessable Entity - proof fields missing
    """
    try:
        return await service.submit_step(ctx, task_id, step_number, StepProof(**dto.model_dump()))
    except DOMAIN_ERRORS as e:
        raise http_error(e)


@router.get("/wallet", response_model=WalletOverview, summary="Wallet balance and history")
async def get_wallet(
    ctx: AuthContext = Depends(user_ctx),
    session: AsyncSession = Depends(get_async_session),
):
    wallets = WalletService(session)
    wallet = await wallets.get_wallet(OwnerType.USER, ctx.actor_id)
    history = await wallets.history(OwnerType.USER, ctx.actor_id)
    return WalletOverview(
        wallet=WalletRead.model_validate(wallet) if wallet else WalletRead(),
        transactions=[TransactionRead.model_validate(tx) for tx in history],
    )


@router.post(
        "/withdrawals",
        response_model=WithdrawalRead,
        status_code=status.HTTP_201_CREATED,
        summary="Request a withdrawal"
        )
async def request_withdrawal(
    dto: WithdrawalCreate,
    ctx: AuthContext = Depends(user_ctx),
    service: WithdrawalService = Depends(get_withdrawal_service),
):
    """
    Holds the amount in the wallet until an admin pays it out.

    `requisites_json.method` picks the payout details:
    - `upi` - `upi_id`
    - `bank` - `bank_name`, `bank_account`, `bank_ifsc`
    - `paytm` - `paytm_number` (10 digit mobile)

    Status codes:
    - 201 Created - request stored, amount held
    - 400 Bad Request - another request is still pending
    - 402 Payment Required - wallet balance too low
    - 422 Unprocessable Entity - below `MIN_WITHDRAWAL` or bad payout details
    """
    try:
        return await service.request_withdrawal(ctx, dto.amount_minor, dto.requisites_json)
    except DOMAIN_ERRORS as e:
        raise http_error(e)


@router.get("/withdrawals", response_model=List[WithdrawalRead], summary="My withdrawals")
async def list_withdrawals(
    ctx: AuthContext = Depends(user_ctx),
    service: WithdrawalService = Depends(get_withdrawal_service),
):
    return await service.list_user_withdrawals(ctx)


@router.post("/withdrawals/{withdrawal_id}/cancel", response_model=WithdrawalRead, summary="Cancel a pending withdrawal")
async def cancel_withdrawal(
    withdrawal_id: uuid.UUID,
    ctx: AuthContext = Depends(user_ctx),
    service: WithdrawalService = Depends(get_withdrawal_service),
):
    """
    Returns the held amount to the wallet. Only pending requests of the
    caller can be cancelled; approved ones are already with the payout desk.
    """
    try:
        return await service.cancel(ctx, withdrawal_id)
    except DOMAIN_ERRORS as e:
        raise http_error(e)
