import pytest
from sqlalchemy import func, select

from api.models import (
    OwnerType,
    PaymentOrder,
    PaymentOrderStatus,
    PaymentStatus,
    PaymentTransaction,
    ReviewRequest,
    TaxInvoice,
    TransactionGateway,
    Wallet,
)
from api.security import ActorRole, AuthContext
from services.errors import AlreadyPaid, InsufficientBalance, NotFound, PaymentVerificationError
from services.gateways import PayUGateway
from services.gateways.payu import response_hash
from services.gateways.razorpay import razorpay_signature
from services.invoices import InvoiceService
from services.payments import PaymentService
from tests.conftest import fund_wallet, make_request
from tests.fakes import FakeRazorpay


@pytest.fixture
def razorpay(env):
    return FakeRazorpay(env)


@pytest.fixture
def payments(session, env, razorpay):
    return PaymentService(session, env, gateway_factory=lambda code: razorpay)


async def _count(session_maker, model, *where) -> int:
    async with session_maker() as session:
        return (await session.execute(select(func.count()).select_from(model).where(*where))).scalar_one()


async def test_wallet_payment_marks_paid_and_issues_invoice(session, session_maker, payments, seller, seller_ctx):
    await fund_wallet(session, OwnerType.SELLER, seller.id, 50000)
    request = await make_request(session, seller)
    request_id, seller_id = request.id, seller.id

    result = await payments.pay_with_wallet(seller_ctx, request_id)

    assert result.request.payment_status == PaymentStatus.PAID
    assert result.request.payment_method == "wallet"
    assert result.request.payment_id.startswith("WALLET_")
    assert result.transaction.amount_minor == 35400
    assert result.transaction.gst_amount_minor == 5400
    assert result.transaction.balance_after_minor == 14600
    assert result.invoice.invoice_number.startswith("INV-")
    # seller and platform are both in state 27
    assert (result.invoice.cgst_minor, result.invoice.sgst_minor, result.invoice.igst_minor) == (2700, 2700, 0)
    assert result.invoice.grand_total_minor == 35400

    async with session_maker() as fresh:
        wallet = await fresh.get(Wallet, (OwnerType.SELLER, seller_id))
        assert wallet.balance_minor == 14600
        assert wallet.total_spent_minor == 35400
    assert await _count(session_maker, TaxInvoice, TaxInvoice.review_request_id == request_id) == 1


async def test_second_payment_is_rejected_without_mutation(session, session_maker, payments, seller, seller_ctx):
    await fund_wallet(session, OwnerType.SELLER, seller.id, 100000)
    request = await make_request(session, seller)
    request_id, seller_id = request.id, seller.id
    await payments.pay_with_wallet(seller_ctx, request_id)

    with pytest.raises(AlreadyPaid):
        await payments.pay_with_wallet(seller_ctx, request_id)

    async with session_maker() as fresh:
        wallet = await fresh.get(Wallet, (OwnerType.SELLER, seller_id))
        assert wallet.balance_minor == 100000 - 35400
    assert await _count(session_maker, PaymentTransaction, PaymentTransaction.owner_id == seller_id) == 1
    assert await _count(session_maker, TaxInvoice, TaxInvoice.seller_id == seller_id) == 1


async def test_insufficient_balance_leaves_request_pending(session, session_maker, payments, seller, seller_ctx):
    await fund_wallet(session, OwnerType.SELLER, seller.id, 1000)
    request = await make_request(session, seller)
    request_id, seller_id = request.id, seller.id

    with pytest.raises(InsufficientBalance):
        await payments.pay_with_wallet(seller_ctx, request_id)

    async with session_maker() as fresh:
        assert (await fresh.get(ReviewRequest, request_id)).payment_status == PaymentStatus.PENDING
    assert await _count(session_maker, TaxInvoice, TaxInvoice.seller_id == seller_id) == 0


async def test_other_sellers_request_is_not_found(session, payments, seller, seller_ctx, admin_ctx):
    request = await make_request(session, seller)
    request_id = request.id
    stranger = AuthContext(actor_id=admin_ctx.actor_id, role=ActorRole.SELLER)
    with pytest.raises(NotFound):
        await payments.pay_with_wallet(stranger, request_id)


async def test_gateway_initiate_persists_order(session, session_maker, payments, razorpay, seller, seller_ctx):
    request = await make_request(session, seller)
    request_id = request.id

    result = await payments.initiate(seller_ctx, request_id)

    assert result.mode == "gateway"
    assert result.order.order_id == "order_0001"
    assert result.order.checkout["key"] == "rzp_test_key"
    assert razorpay.orders[0]["amount"] == 35400
    assert razorpay.orders[0]["receipt"] == f"REQ_{request_id}"
    async with session_maker() as fresh:
        order = (await fresh.execute(select(PaymentOrder))).scalar_one()
        assert order.review_request_id == request_id
        assert order.status == PaymentOrderStatus.CREATED


async def test_gateway_callback_captures_payment(session, session_maker, payments, env, seller, seller_ctx):
    seller.state_code = "29"
    await session.commit()
    request = await make_request(session, seller)
    request_id, seller_id = request.id, seller.id
    order = (await payments.initiate(seller_ctx, request_id)).order

    payload = {
        "razorpay_order_id": order.order_id,
        "razorpay_payment_id": "pay_123",
        "razorpay_signature": razorpay_signature(env.RAZORPAY_KEY_SECRET, order.order_id, "pay_123"),
    }
    result = await payments.handle_callback(seller_ctx, "razorpay", payload)

    assert result.request.payment_status == PaymentStatus.PAID
    assert result.request.payment_id == "pay_123"
    assert result.transaction.gateway == TransactionGateway.RAZORPAY
    assert result.transaction.gateway_order_id == order.order_id
    assert result.transaction.balance_after_minor is None
    # inter-state supply
    assert (result.invoice.cgst_minor, result.invoice.sgst_minor, result.invoice.igst_minor) == (0, 0, 5400)

    async with session_maker() as fresh:
        wallet = await fresh.get(Wallet, (OwnerType.SELLER, seller_id))
        assert wallet.balance_minor == 0
        assert wallet.total_spent_minor == 35400
        stored = (await fresh.execute(select(PaymentOrder))).scalar_one()
        assert stored.status == PaymentOrderStatus.PAID


async def test_bad_signature_changes_nothing(session, session_maker, payments, seller, seller_ctx):
    request = await make_request(session, seller)
    request_id, seller_id = request.id, seller.id
    order = (await payments.initiate(seller_ctx, request_id)).order

    payload = {"razorpay_order_id": order.order_id, "razorpay_payment_id": "pay_1", "razorpay_signature": "0" * 64}
    with pytest.raises(PaymentVerificationError):
        await payments.handle_callback(seller_ctx, "razorpay", payload)

    async with session_maker() as fresh:
        assert (await fresh.get(ReviewRequest, request_id)).payment_status == PaymentStatus.PENDING
    assert await _count(session_maker, PaymentTransaction, PaymentTransaction.owner_id == seller_id) == 0


async def test_replayed_callback_is_already_paid(session, session_maker, payments, env, seller, seller_ctx):
    request = await make_request(session, seller)
    request_id, seller_id = request.id, seller.id
    order = (await payments.initiate(seller_ctx, request_id)).order
    payload = {
        "razorpay_order_id": order.order_id,
        "razorpay_payment_id": "pay_9",
        "razorpay_signature": razorpay_signature(env.RAZORPAY_KEY_SECRET, order.order_id, "pay_9"),
    }
    await payments.handle_callback(seller_ctx, "razorpay", payload)

    with pytest.raises(AlreadyPaid):
        await payments.handle_callback(seller_ctx, "razorpay", payload)
    assert await _count(session_maker, TaxInvoice, TaxInvoice.seller_id == seller_id) == 1


async def test_failed_gateway_payment_can_be_retried_from_wallet(session, session_maker, payments, seller, seller_ctx):
    await fund_wallet(session, OwnerType.SELLER, seller.id, 50000)
    request = await make_request(session, seller)
    request_id = request.id
    order = (await payments.initiate(seller_ctx, request_id)).order

    failed = await payments.mark_failed(seller_ctx, order.order_id)
    assert failed.payment_status == PaymentStatus.FAILED

    result = await payments.pay_with_wallet(seller_ctx, request_id)
    assert result.request.payment_status == PaymentStatus.PAID


async def test_demo_mode_marks_paid_without_gateway(session, payments, env, monkeypatch, seller, seller_ctx):
    monkeypatch.setattr(env, "PAYMENT_DEMO_MODE", True)
    request = await make_request(session, seller)

    result = await payments.initiate(seller_ctx, request.id)

    assert result.mode == "demo"
    assert result.order is None
    assert result.payment.transaction.gateway == TransactionGateway.DEMO
    assert result.request.payment_id.startswith("DEMO_")


async def test_callback_with_unparseable_amount_is_rejected(session, session_maker, payments, env, seller, seller_ctx):
    request = await make_request(session, seller)
    request_id, seller_id = request.id, seller.id
    order = (await payments.initiate(seller_ctx, request_id)).order
    payload = {
        "razorpay_order_id": order.order_id,
        "razorpay_payment_id": "pay_7",
        "razorpay_signature": razorpay_signature(env.RAZORPAY_KEY_SECRET, order.order_id, "pay_7"),
        "amount": "abc",
    }

    with pytest.raises(PaymentVerificationError, match="Invalid amount"):
        await payments.handle_callback(seller_ctx, "razorpay", payload)

    async with session_maker() as fresh:
        assert (await fresh.get(ReviewRequest, request_id)).payment_status == PaymentStatus.PENDING
        stored = (await fresh.execute(select(PaymentOrder))).scalar_one()
        assert stored.status == PaymentOrderStatus.CREATED
    assert await _count(session_maker, PaymentTransaction, PaymentTransaction.owner_id == seller_id) == 0


async def test_callback_amount_mismatch_is_rejected(session, payments, env, seller, seller_ctx):
    request = await make_request(session, seller)
    order = (await payments.initiate(seller_ctx, request.id)).order
    payload = {
        "razorpay_order_id": order.order_id,
        "razorpay_payment_id": "pay_8",
        "razorpay_signature": razorpay_signature(env.RAZORPAY_KEY_SECRET, order.order_id, "pay_8"),
        "amount": "1.00",
    }

    with pytest.raises(PaymentVerificationError, match="does not match"):
        await payments.handle_callback(seller_ctx, "razorpay", payload)


async def test_gateway_return_pays_the_orders_seller(session, session_maker, env, seller):
    payu = PayUGateway(env)
    payments = PaymentService(session, env, gateway_factory=lambda code: payu)
    request = await make_request(session, seller)
    request_id, seller_id = request.id, seller.id
    order = PaymentOrder(
        gateway="payu",
        gateway_order_id="RF_return1",
        review_request_id=request_id,
        seller_id=seller_id,
        amount_minor=35400,
        status=PaymentOrderStatus.CREATED,
    )
    session.add(order)
    await session.commit()
    payload = {"txnid": "RF_return1", "status": "success", "amount": "354.00", "productinfo": f"REQ_{request_id}",
               "firstname": "Asha", "email": "", "mihpayid": "9001"}
    payload["hash"] = response_hash(env.PAYU_MERCHANT_KEY, env.PAYU_MERCHANT_SALT, "success", "RF_return1",
                                    "354.00", payload["productinfo"], "Asha", "")

    result = await payments.handle_gateway_return("payumoney", payload)

    assert result.request.id == request_id
    assert result.request.payment_id == "9001"
    assert result.transaction.gateway == TransactionGateway.PAYU
    async with session_maker() as fresh:
        wallet = await fresh.get(Wallet, (OwnerType.SELLER, seller_id))
        assert wallet.total_spent_minor == 35400


async def test_gateway_failure_return_needs_matching_gateway(session, session_maker, payments, seller, seller_ctx, env):
    request = await make_request(session, seller)
    request_id = request.id
    # razorpay order, PayU-signed failure notice
    order = (await payments.initiate(seller_ctx, request_id)).order
    payu = PaymentService(session, env, gateway_factory=lambda code: PayUGateway(env))
    payload = {"txnid": order.order_id, "status": "failure", "amount": "354.00", "productinfo": "REQ_1",
               "firstname": "Asha", "email": ""}
    payload["hash"] = response_hash(env.PAYU_MERCHANT_KEY, env.PAYU_MERCHANT_SALT, "failure", order.order_id,
                                    "354.00", "REQ_1", "Asha", "")

    with pytest.raises(PaymentVerificationError):
        await payu.handle_gateway_failure("payu", payload)

    async with session_maker() as fresh:
        assert (await fresh.get(ReviewRequest, request_id)).payment_status == PaymentStatus.PENDING


async def test_invoice_failure_rolls_back_wallet_payment(session, session_maker, payments, seller, seller_ctx, monkeypatch):
    await fund_wallet(session, OwnerType.SELLER, seller.id, 50000)
    request = await make_request(session, seller)
    request_id, seller_id = request.id, seller.id

    async def broken_invoice(*args, **kwargs):
        raise RuntimeError("invoice numbering unavailable")

    monkeypatch.setattr(InvoiceService, "issue_invoice", broken_invoice)

    with pytest.raises(RuntimeError):
        await payments.pay_with_wallet(seller_ctx, request_id)

    async with session_maker() as fresh:
        wallet = await fresh.get(Wallet, (OwnerType.SELLER, seller_id))
        assert wallet.balance_minor == 50000
        assert wallet.total_spent_minor == 0
        stored = await fresh.get(ReviewRequest, request_id)
        assert stored.payment_status == PaymentStatus.PENDING
        assert stored.payment_id is None
    assert await _count(session_maker, PaymentTransaction, PaymentTransaction.owner_id == seller_id) == 0
    assert await _count(session_maker, TaxInvoice, TaxInvoice.seller_id == seller_id) == 0
