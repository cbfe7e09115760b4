import uuid
from dataclasses import asdict
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.database import get_async_session
from api.models import AdminStatus, OwnerType
from api.routers.errors import DOMAIN_ERRORS, http_error
from api.security import ActorRole, AuthContext, require_role
from schemas import ReviewRequestRead, TransactionRead, WalletOverview, WalletRead
from services.invoices import InvoiceService
from services.payments import PaymentResult, PaymentService
from services.recharges import RechargeDraft, RechargeService
from services.review_requests import NEXT_STEP_PAY, ReviewRequestDraft, ReviewRequestService
from services.wallet import WalletService
from .schemas import (
    GatewayOrderRead,
    InvoiceRead,
    PaymentCallback,
    PaymentFailure,
    PaymentInitiateRead,
    PaymentRead,
    RechargeCreate,
    RechargeRead,
    RequestEntryRead,
    ReviewRequestCreate,
    ReviewRequestCreated,
)

router = APIRouter()

seller_ctx = require_role(ActorRole.SELLER)


def get_request_service(session: AsyncSession = Depends(get_async_session)) -> ReviewRequestService:
    return ReviewRequestService(session)


def get_payment_service(session: AsyncSession = Depends(get_async_session)) -> PaymentService:
    return PaymentService(session)


def get_recharge_service(session: AsyncSession = Depends(get_async_session)) -> RechargeService:
    return RechargeService(session)


def _payment_read(result: PaymentResult) -> PaymentRead:
    return PaymentRead(
        request=ReviewRequestRead.model_validate(result.request),
        transaction_id=result.transaction.id,
        payment_id=result.request.payment_id,
        invoice_number=result.invoice.invoice_number,
    )


@router.post(
        "/requests",
        response_model=ReviewRequestCreated,
        status_code=status.HTTP_201_CREATED,
        summary="Create a review request"
        )
async def create_request(
    dto: ReviewRequestCreate,
    ctx: AuthContext = Depends(seller_ctx),
    service: ReviewRequestService = Depends(get_request_service),
):
    """
    Creates a pending review request and prices it.

    Status codes:
    - 201 Created - request stored, `next_step` is `pay`
    - 404 Not Found - seller account missing or inactive
    - 422 Unprocessable Entity - invalid product terms

    Pricing:
    - `subtotal = (product_price + commission) * reviews_needed`
    - `gst = subtotal * GST_RATE / 100`, rounded half-up to a paisa
    - `grand_total = subtotal + gst`
    """
    try:
        request = await service.create_request(ctx, ReviewRequestDraft(**dto.model_dump()))
    except DOMAIN_ERRORS as e:
        raise http_error(e)
    return ReviewRequestCreated(request=ReviewRequestRead.model_validate(request), next_step=NEXT_STEP_PAY)


@router.get("/requests", response_model=List[ReviewRequestRead], summary="List own review requests")
async def list_requests(
    admin_status: Optional[AdminStatus] = Query(None, description="Filter by admin status"),
    ctx: AuthContext = Depends(seller_ctx),
    service: ReviewRequestService = Depends(get_request_service),
):
    return [ReviewRequestRead.from_listing(listing) for listing in await service.list_requests(ctx, admin_status)]


@router.get("/requests/{request_id}", response_model=ReviewRequestRead, summary="Review request details")
async def get_request(
    request_id: uuid.UUID,
    ctx: AuthContext = Depends(seller_ctx),
    service: ReviewRequestService = Depends(get_request_service),
):
    try:
        return await service.get_request(ctx, request_id)
    except DOMAIN_ERRORS as e:
        raise http_error(e)


@router.get(
        "/requests/{request_id}/entries",
        response_model=List[RequestEntryRead],
        summary="Reviewer entries of a request"
        )
async def request_entries(
    request_id: uuid.UUID,
    ctx: AuthContext = Depends(seller_ctx),
    service: ReviewRequestService = Depends(get_request_service),
):
    """
    Tasks working on the request, each with a progress label taken from its
    highest completed step: `Refund Completed`, `Review Submitted`,
    `Delivered`, `Order Placed` or `Pending`.
    """
    try:
        entries = await service.request_entries(ctx, request_id)
    except DOMAIN_ERRORS as e:
        raise http_error(e)
    return [
        RequestEntryRead(
            task_id=entry.task.id,
            user_id=entry.task.user_id,
            task_status=entry.task.task_status,
            status_label=entry.status_label,
            created_at=entry.task.created_at,
        )
        for entry in entries
    ]


@router.post("/requests/{request_id}/pay/wallet", response_model=PaymentRead, summary="Pay from wallet balance")
async def pay_with_wallet(
    request_id: uuid.UUID,
    ctx: AuthContext = Depends(seller_ctx),
    service: PaymentService = Depends(get_payment_service),
):
    """
    Pays the grand total from the seller wallet. The debit, the ledger row,
    the request status and the tax invoice are written in one transaction.

    Status codes:
    - 200 OK - paid, invoice issued
    - 402 Payment Required - wallet balance too low
    - 404 Not Found - no such request for this seller
    - 409 Conflict - request already paid
    """
    try:
        return _payment_read(await service.pay_with_wallet(ctx, request_id))
    except DOMAIN_ERRORS as e:
        raise http_error(e)


@router.post(
        "/requests/{request_id}/pay/initiate",
        response_model=PaymentInitiateRead,
        summary="Start a gateway payment"
        )
async def initiate_payment(
    request_id: uuid.UUID,
    ctx: AuthContext = Depends(seller_ctx),
    service: PaymentService = Depends(get_payment_service),
):
    """
    Creates an order with the first enabled gateway and returns the checkout
    fields. With `PAYMENT_DEMO_MODE` the request is marked paid immediately.
    """
    try:
        result = await service.initiate(ctx, request_id)
    except DOMAIN_ERRORS as e:
        raise http_error(e)
    return PaymentInitiateRead(
        mode=result.mode,
        request=ReviewRequestRead.model_validate(result.request),
        order=GatewayOrderRead(**asdict(result.order)) if result.order else None,
        payment=_payment_read(result.payment) if result.payment else None,
    )


@router.post("/payments/callback", response_model=PaymentRead, summary="Gateway success callback")
async def payment_callback(
    dto: PaymentCallback,
    ctx: AuthContext = Depends(seller_ctx),
    service: PaymentService = Depends(get_payment_service),
):
    """
    Verifies the gateway signature before touching any state, then captures
    the payment and issues the invoice.

    Status codes:
    - 200 OK - payment captured
    - 400 Bad Request - signature or amount verification failed
    - 404 Not Found - unknown order
    - 409 Conflict - already paid
    """
    try:
        return _payment_read(await service.handle_callback(ctx, dto.gateway, dto.payload))
    except DOMAIN_ERRORS as e:
        raise http_error(e)


@router.post("/payments/failure", response_model=ReviewRequestRead, summary="Gateway failure callback")
async def payment_failure(
    dto: PaymentFailure,
    ctx: AuthContext = Depends(seller_ctx),
    service: PaymentService = Depends(get_payment_service),
):
    try:
        return await service.mark_failed(ctx, dto.gateway_order_id)
    except DOMAIN_ERRORS as e:
        raise http_error(e)


@router.get("/wallet", response_model=WalletOverview, summary="Wallet balance and history")
async def get_wallet(
    ctx: AuthContext = Depends(seller_ctx),
    session: AsyncSession = Depends(get_async_session),
):
    wallets = WalletService(session)
    wallet = await wallets.get_wallet(OwnerType.SELLER, ctx.actor_id)
    history = await wallets.history(OwnerType.SELLER, ctx.actor_id)
    return WalletOverview(
        wallet=WalletRead.model_validate(wallet) if wallet else WalletRead(),
        transactions=[TransactionRead.model_validate(tx) for tx in history],
    )


@router.post(
        "/wallet/recharges",
        response_model=RechargeRead,
        status_code=status.HTTP_201_CREATED,
        summary="Report a bank transfer top-up"
        )
async def submit_recharge(
    dto: RechargeCreate,
    ctx: AuthContext = Depends(seller_ctx),
    service: RechargeService = Depends(get_recharge_service),
):
    """
    Records a bank transfer made to the platform account. The wallet is
    credited only after an admin matches the UTR and approves the request.

    Status codes:
    - 201 Created - request waiting for review
    - 400 Bad Request - UTR already submitted
    - 422 Unprocessable Entity - amount outside `MIN_RECHARGE`..`MAX_RECHARGE`, missing UTR, date or screenshot
    """
    try:
        return await service.submit(ctx, RechargeDraft(**dto.model_dump()))
    except DOMAIN_ERRORS as e:
        raise http_error(e)


@router.get("/wallet/recharges", response_model=List[RechargeRead], summary="My top-up requests")
async def list_recharges(
    ctx: AuthContext = Depends(seller_ctx),
    service: RechargeService = Depends(get_recharge_service),
):
    return await service.list_seller_recharges(ctx)


@router.get("/invoices", response_model=List[InvoiceRead], summary="Tax invoices")
async def list_invoices(
    ctx: AuthContext = Depends(seller_ctx),
    session: AsyncSession = Depends(get_async_session),
):
    return await InvoiceService(session).list_invoices(ctx.actor_id)


@router.get("/invoices/{invoice_number}", response_model=InvoiceRead, summary="Tax invoice by number")
async def get_invoice(
    invoice_number: str,
    ctx: AuthContext = Depends(seller_ctx),
    session: AsyncSession = Depends(get_async_session),
):
    try:
        return await InvoiceService(session).get_invoice(ctx.actor_id, invoice_number)
    except DOMAIN_ERRORS as e:
        raise http_error(e)
