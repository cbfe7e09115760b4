import logging
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.models import (
    OwnerType,
    PaymentOrder,
    PaymentOrderStatus,
    PaymentStatus,
    PaymentTransaction,
    ReviewRequest,
    Seller,
    TaxInvoice,
    TransactionDirection,
    TransactionGateway,
    TransactionStatus,
)
from api.models.review_request import AdminStatus
from api.security import AuthContext
from config import ENV, get_env
from services.errors import AlreadyPaid, BusinessRuleError, GatewayError, NotFound, PaymentVerificationError
from services.gateways import GatewayOrder, PaymentGateway, VerifiedPayment, available_gateways, get_gateway
from services.invoices import InvoiceService
from services.pricing import rupees_to_minor
from services.wallet import WalletService
from utils.refs import make_payment_id

GATEWAY_ALIASES = {"payumoney": "payu"}


@dataclass
class PaymentResult:
    request: ReviewRequest
    transaction: PaymentTransaction
    invoice: TaxInvoice


@dataclass
class InitiateResult:
    mode: str
    request: ReviewRequest
    order: GatewayOrder | None = None
    payment: PaymentResult | None = None


class PaymentService:
    def __init__(
        self,
        session: AsyncSession,
        env: ENV | None = None,
        gateway_factory: Callable[[str], PaymentGateway] | None = None,
    ):
        self.session = session
        self.env = env or get_env()
        self.gateway_factory = gateway_factory or (lambda code: get_gateway(code, self.env))
        self.wallets = WalletService(session)
        self.invoices = InvoiceService(session, self.env)

    async def _get_request(self, seller_id: uuid.UUID, request_id: uuid.UUID, lock: bool = False) -> ReviewRequest:
        query = select(ReviewRequest).where(ReviewRequest.id == request_id, ReviewRequest.seller_id == seller_id)
        if lock:
            query = query.with_for_update()
        request = (await self.session.execute(query)).scalar_one_or_none()
        if not request:
            raise NotFound("Review request not found")
        return request

    @staticmethod
    def _ensure_payable(request: ReviewRequest) -> None:
        if request.payment_status in (PaymentStatus.PAID, PaymentStatus.REFUNDED):
            raise AlreadyPaid("Review request is already paid")
        if request.admin_status == AdminStatus.REJECTED:
            raise BusinessRuleError("Review request was rejected")

    async def _get_seller(self, seller_id: uuid.UUID) -> Seller:
        seller = await self.session.get(Seller, seller_id)
        if not seller:
            raise NotFound("Seller not found")
        return seller

    def _mark_paid(self, request: ReviewRequest, payment_id: str, method: str) -> None:
        request.payment_status = PaymentStatus.PAID
        request.payment_id = payment_id
        request.payment_method = method

    async def _record_external_payment(
        self,
        request: ReviewRequest,
        seller: Seller,
        gateway: TransactionGateway,
        payment_id: str,
        order_id: str | None = None,
        signature: str | None = None,
    ) -> PaymentResult:
        """Money that arrived from outside the wallet: ledger row without balance change, spent total, invoice."""
        self._mark_paid(request, payment_id, gateway.value)
        tx = PaymentTransaction(
            owner_type=OwnerType.SELLER,
            owner_id=seller.id,
            review_request_id=request.id,
            direction=TransactionDirection.DEBIT,
            amount_minor=request.grand_total_minor,
            base_amount_minor=request.total_amount_minor,
            gst_amount_minor=request.gst_amount_minor,
            balance_after_minor=None,
            gateway=gateway,
            gateway_order_id=order_id,
            gateway_payment_id=payment_id,
            gateway_signature=signature,
            status=TransactionStatus.SUCCESS,
            description=f"Payment for review request {request.id}",
        )
        self.session.add(tx)
        await self.session.flush()
        await self.wallets.add_spent(OwnerType.SELLER, seller.id, request.grand_total_minor)
        invoice = await self.invoices.issue_invoice(request, seller, tx)
        return PaymentResult(request=request, transaction=tx, invoice=invoice)

    async def pay_with_wallet(self, ctx: AuthContext, request_id: uuid.UUID) -> PaymentResult:
        try:
            request = await self._get_request(ctx.actor_id, request_id, lock=True)
            self._ensure_payable(request)
            seller = await self._get_seller(ctx.actor_id)

            tx = await self.wallets.debit(
                OwnerType.SELLER,
                seller.id,
                request.grand_total_minor,
                TransactionGateway.WALLET,
                f"Payment for review request {request.id}",
                review_request_id=request.id,
                gst_amount_minor=request.gst_amount_minor,
                base_amount_minor=request.total_amount_minor,
                count_as_spent=True,
            )
            payment_id = make_payment_id("WALLET")
            self._mark_paid(request, payment_id, "wallet")
            tx.gateway_payment_id = payment_id
            invoice = await self.invoices.issue_invoice(request, seller, tx)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logging.info(f"Review request {request_id} paid from wallet by seller {ctx.actor_id}")
        return PaymentResult(request=request, transaction=tx, invoice=invoice)

    async def initiate(self, ctx: AuthContext, request_id: uuid.UUID) -> InitiateResult:
        if self.env.PAYMENT_DEMO_MODE:
            try:
                request = await self._get_request(ctx.actor_id, request_id, lock=True)
                self._ensure_payable(request)
                seller = await self._get_seller(ctx.actor_id)
                payment = await self._record_external_payment(
                    request, seller, TransactionGateway.DEMO, make_payment_id("DEMO")
                )
                await self.session.commit()
            except Exception:
                await self.session.rollback()
                raise
            logging.info(f"Review request {request_id} marked paid in demo mode")
            return InitiateResult(mode="demo", request=request, payment=payment)

        request = await self._get_request(ctx.actor_id, request_id)
        self._ensure_payable(request)
        seller = await self._get_seller(ctx.actor_id)

        codes = available_gateways(self.env)
        if not codes:
            raise GatewayError("No payment gateway is configured")
        gateway = self.gateway_factory(codes[0])

        try:
            order = await gateway.create_order(
                request.grand_total_minor,
                f"REQ_{request.id}",
                {"review_request_id": str(request.id), "name": seller.name, "email": seller.email},
            )
        except GatewayError:
            logging.exception(f"Gateway {gateway.code} failed to create order for request {request_id}")
            raise

        self.session.add(
            PaymentOrder(
                gateway=gateway.code,
                gateway_order_id=order.order_id,
                review_request_id=request.id,
                seller_id=seller.id,
                amount_minor=order.amount_minor,
                status=PaymentOrderStatus.CREATED,
            )
        )
        await self.session.commit()
        logging.info(f"Created {gateway.code} order {order.order_id} for request {request_id}")
        return InitiateResult(mode="gateway", request=request, order=order)

    async def _get_order(
        self, gateway_order_id: str, seller_id: uuid.UUID | None = None, lock: bool = False
    ) -> PaymentOrder:
        query = select(PaymentOrder).where(PaymentOrder.gateway_order_id == gateway_order_id)
        if lock:
            query = query.with_for_update()
        order = (await self.session.execute(query)).scalar_one_or_none()
        if not order or (seller_id is not None and order.seller_id != seller_id):
            raise NotFound("Payment order not found")
        return order

    @staticmethod
    def _paid_amount_minor(payload: Dict[str, Any]) -> int:
        try:
            return rupees_to_minor(payload["amount"])
        except (ArithmeticError, ValueError, TypeError):
            raise PaymentVerificationError("Invalid amount")

    async def _capture(
        self,
        gateway_code: str,
        verified: VerifiedPayment,
        payload: Dict[str, Any],
        seller_id: uuid.UUID | None = None,
    ) -> PaymentResult:
        try:
            order = await self._get_order(verified.order_id, seller_id, lock=True)
            if order.gateway != gateway_code:
                raise PaymentVerificationError("Callback gateway does not match the order")
            if "amount" in payload and self._paid_amount_minor(payload) != order.amount_minor:
                raise PaymentVerificationError("Paid amount does not match the order")
            if order.status == PaymentOrderStatus.PAID:
                raise AlreadyPaid("Payment order is already captured")

            request = await self._get_request(order.seller_id, order.review_request_id, lock=True)
            self._ensure_payable(request)
            seller = await self._get_seller(order.seller_id)

            result = await self._record_external_payment(
                request,
                seller,
                TransactionGateway(gateway_code),
                verified.payment_id,
                order_id=verified.order_id,
                signature=verified.signature,
            )
            order.status = PaymentOrderStatus.PAID
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logging.info(f"Captured {gateway_code} payment {verified.payment_id} for order {verified.order_id}")
        return result

    def _verify(self, gateway_code: str, payload: Dict[str, Any], source: str, failure: bool = False):
        gateway = self.gateway_factory(gateway_code)
        try:
            return gateway.verify_failure(payload) if failure else gateway.verify(payload)
        except PaymentVerificationError:
            logging.warning(f"Rejected {gateway_code} callback from {source}: verification failed")
            raise

    async def handle_callback(self, ctx: AuthContext, gateway_code: str, payload: Dict[str, Any]) -> PaymentResult:
        gateway_code = GATEWAY_ALIASES.get(gateway_code, gateway_code)
        verified = self._verify(gateway_code, payload, f"seller {ctx.actor_id}")
        return await self._capture(gateway_code, verified, payload, seller_id=ctx.actor_id)

    async def handle_gateway_return(self, gateway_code: str, payload: Dict[str, Any]) -> PaymentResult:
        """
        Browser return from a hosted checkout. There is no bearer token here:
        the signed payload identifies the stored order, and the order names the seller.
        """
        gateway_code = GATEWAY_ALIASES.get(gateway_code, gateway_code)
        verified = self._verify(gateway_code, payload, "gateway return")
        return await self._capture(gateway_code, verified, payload)

    async def _fail_order(
        self, gateway_order_id: str, seller_id: uuid.UUID | None = None, gateway_code: str | None = None
    ) -> ReviewRequest:
        try:
            order = await self._get_order(gateway_order_id, seller_id, lock=True)
            if gateway_code is not None and order.gateway != gateway_code:
                raise PaymentVerificationError("Callback gateway does not match the order")
            if order.status == PaymentOrderStatus.PAID:
                raise AlreadyPaid("Payment order is already captured")
            request = await self._get_request(order.seller_id, order.review_request_id, lock=True)

            order.status = PaymentOrderStatus.FAILED
            if request.payment_status in (PaymentStatus.PENDING, PaymentStatus.FAILED):
                request.payment_status = PaymentStatus.FAILED
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logging.warning(f"Payment failed for order {gateway_order_id} (request {request.id})")
        return request

    async def mark_failed(self, ctx: AuthContext, gateway_order_id: str) -> ReviewRequest:
        return await self._fail_order(gateway_order_id, seller_id=ctx.actor_id)

    async def handle_gateway_failure(self, gateway_code: str, payload: Dict[str, Any]) -> ReviewRequest:
        gateway_code = GATEWAY_ALIASES.get(gateway_code, gateway_code)
        verified = self._verify(gateway_code, payload, "gateway return", failure=True)
        return await self._fail_order(verified.order_id, gateway_code=gateway_code)
