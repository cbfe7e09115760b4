import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from api.database import get_async_session
from api.routers.errors import DOMAIN_ERRORS, http_error
from services.payments import PaymentService
from .schemas import GatewayReturnRead

router = APIRouter()


def get_payment_service(session: AsyncSession = Depends(get_async_session)) -> PaymentService:
    return PaymentService(session)


async def _form_payload(request: Request) -> dict:
    form = await request.form()
    return {key: value for key, value in form.items() if isinstance(value, str)}


@router.post("/payu/success", response_model=GatewayReturnRead, summary="PayU success return")
async def payu_success(
    request: Request,
    service: PaymentService = Depends(get_payment_service),
):
    """
    PayU posts the checkout result here as a form after the buyer pays.
    No bearer token is expected: the response hash is verified first, and
    the stored order for `txnid` decides which seller and request are paid.

    Status codes:
    - 200 OK - payment captured, invoice issued
    - 400 Bad Request - hash, status or amount verification failed
    - 404 Not Found - unknown `txnid`
    - 409 Conflict - order already captured
    """
    payload = await _form_payload(request)
    logging.info(f"PayU success return for txnid {payload.get('txnid')}")
    try:
        result = await service.handle_gateway_return("payu", payload)
    except DOMAIN_ERRORS as e:
        raise http_error(e)
    return GatewayReturnRead(
        review_request_id=result.request.id,
        payment_status=result.request.payment_status,
        payment_id=result.request.payment_id,
        invoice_number=result.invoice.invoice_number,
    )


@router.post("/payu/failure", response_model=GatewayReturnRead, summary="PayU failure return")
async def payu_failure(
    request: Request,
    service: PaymentService = Depends(get_payment_service),
):
    payload = await _form_payload(request)
    logging.info(f"PayU failure return for txnid {payload.get('txnid')}")
    try:
        review_request = await service.handle_gateway_failure("payu", payload)
    except DOMAIN_ERRORS as e:
        raise http_error(e)
    return GatewayReturnRead(
        review_request_id=review_request.id,
        payment_status=review_request.payment_status,
    )
