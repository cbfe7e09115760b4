import asyncio
import uuid

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from api.database import get_async_session
from api.models import OwnerType, Seller, User
from api.routers.system.routes import get_cache
from api.security import ActorRole, create_access_token
from main import app
from services.gateways.payu import response_hash
from services.redis import RedisClient
from tests.conftest import create_schema, fund_wallet, sqlite_url
from tests.fakes import FakeRedis

REQUEST_BODY = {
    "product_link": "https://www.amazon.in/dp/B0TEST1234",
    "product_name": "Steel Bottle",
    "brand_name": "Hydra",
    "product_price_minor": 10000,
    "reviews_needed": 2,
}


def _auth(actor_id: uuid.UUID, role: ActorRole) -> dict:
    return {"Authorization": f"Bearer {create_access_token(actor_id, role)}"}


@pytest.fixture
def api(tmp_path, env):
    engine = create_async_engine(sqlite_url(tmp_path), poolclass=NullPool)
    session_maker = async_sessionmaker(engine, expire_on_commit=False)

    async def seed() -> tuple[uuid.UUID, uuid.UUID]:
        await create_schema(engine)
        async with session_maker() as session:
            seller = Seller(name="Asha Traders", email="asha@example.com", state_code="27")
            user = User(name="Ravi", email="ravi@example.com")
            session.add_all([seller, user])
            await session.commit()
            await fund_wallet(session, OwnerType.SELLER, seller.id, 50000)
            await fund_wallet(session, OwnerType.USER, user.id, 30000)
            return seller.id, user.id

    seller_id, user_id = asyncio.run(seed())

    async def override_session():
        async with session_maker() as session:
            yield session

    cache = RedisClient(redis=FakeRedis())
    app.dependency_overrides[get_async_session] = override_session
    app.dependency_overrides[get_cache] = lambda: cache
    with TestClient(app) as client:
        client.seller_headers = _auth(seller_id, ActorRole.SELLER)
        client.user_headers = _auth(user_id, ActorRole.USER)
        client.admin_headers = _auth(uuid.uuid4(), ActorRole.ADMIN)
        yield client
    app.dependency_overrides.clear()
    asyncio.run(engine.dispose())


def test_health(api):
    assert api.get("/check-health").json() == {"ok": True}


def test_missing_token_is_401(api):
    assert api.get("/seller/requests").status_code == 401


def test_garbage_token_is_401(api):
    response = api.get("/seller/requests", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


def test_wrong_role_is_403(api):
    assert api.get("/admin/requests", headers=api.seller_headers).status_code == 403
    assert api.get("/seller/requests", headers=api.admin_headers).status_code == 403


def test_seller_creates_and_pays_from_wallet(api):
    created = api.post("/seller/requests", json=REQUEST_BODY, headers=api.seller_headers)
    assert created.status_code == 201
    body = created.json()
    assert body["next_step"] == "pay"
    assert body["request"]["grand_total_minor"] == 35400
    request_id = body["request"]["id"]

    paid = api.post(f"/seller/requests/{request_id}/pay/wallet", headers=api.seller_headers)
    assert paid.status_code == 200
    assert paid.json()["request"]["payment_status"] == "paid"
    invoice_number = paid.json()["invoice_number"]

    again = api.post(f"/seller/requests/{request_id}/pay/wallet", headers=api.seller_headers)
    assert again.status_code == 409

    wallet = api.get("/seller/wallet", headers=api.seller_headers).json()
    assert wallet["wallet"]["balance_minor"] == 50000 - 35400
    assert len(wallet["transactions"]) == 1

    invoice = api.get(f"/seller/invoices/{invoice_number}", headers=api.seller_headers)
    assert invoice.status_code == 200
    assert invoice.json()["cgst_minor"] == 2700


def test_wallet_payment_over_balance_is_402(api):
    body = dict(REQUEST_BODY, product_price_minor=100000)
    request_id = api.post("/seller/requests", json=body, headers=api.seller_headers).json()["request"]["id"]

    response = api.post(f"/seller/requests/{request_id}/pay/wallet", headers=api.seller_headers)

    assert response.status_code == 402
    assert api.get(f"/seller/requests/{request_id}", headers=api.seller_headers).json()["payment_status"] == "pending"


def test_invalid_request_is_422(api):
    body = dict(REQUEST_BODY, product_link="amazon")
    assert api.post("/seller/requests", json=body, headers=api.seller_headers).status_code == 422


def test_unknown_request_is_404(api):
    response = api.get(f"/seller/requests/{uuid.uuid4()}", headers=api.seller_headers)
    assert response.status_code == 404


def test_admin_approves_paid_request(api):
    request_id = api.post("/seller/requests", json=REQUEST_BODY, headers=api.seller_headers).json()["request"]["id"]

    unpaid = api.patch(f"/admin/requests/{request_id}/approve", json={}, headers=api.admin_headers)
    assert unpaid.status_code == 400

    api.post(f"/seller/requests/{request_id}/pay/wallet", headers=api.seller_headers)
    approved = api.patch(f"/admin/requests/{request_id}/approve", json={}, headers=api.admin_headers)
    assert approved.status_code == 200
    assert approved.json()["admin_status"] == "approved"


def test_sitemap(api):
    response = api.get("/sitemap.xml")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/xml")
    assert "<urlset" in response.text


def test_admin_job_endpoints(api):
    created = api.post("/admin/jobs", json={"job_type": "cleanup_cache", "priority": 7}, headers=api.admin_headers)
    assert created.status_code == 201
    assert created.json()["status"] == "pending"

    unknown = api.post("/admin/jobs", json={"job_type": "send_newsletter"}, headers=api.admin_headers)
    assert unknown.status_code == 422

    stats = api.get("/admin/jobs/stats", headers=api.admin_headers).json()
    assert stats == {"pending": 1, "processing": 0, "completed": 0, "failed": 0}

    not_failed = api.post(f"/admin/jobs/{created.json()['id']}/retry", headers=api.admin_headers)
    assert not_failed.status_code == 400


def test_unknown_invoice_is_404(api):
    response = api.get("/seller/invoices/INV-20260101-deadbeef", headers=api.seller_headers)

    assert response.status_code == 404
    assert response.json()["detail"] == "Invoice not found"


def _payu_return(env, checkout: dict, status: str) -> dict:
    form = {
        "txnid": checkout["txnid"],
        "status": status,
        "amount": checkout["amount"],
        "productinfo": checkout["productinfo"],
        "firstname": checkout["firstname"],
        "email": checkout["email"],
        "mihpayid": "403993715",
    }
    form["hash"] = response_hash(
        env.PAYU_MERCHANT_KEY,
        env.PAYU_MERCHANT_SALT,
        status,
        form["txnid"],
        form["amount"],
        form["productinfo"],
        form["firstname"],
        form["email"],
    )
    return form


def _start_payu_checkout(api, env, monkeypatch) -> tuple[str, dict]:
    monkeypatch.setattr(env, "PAYMENT_GATEWAYS", "payu")
    request_id = api.post("/seller/requests", json=REQUEST_BODY, headers=api.seller_headers).json()["request"]["id"]
    started = api.post(f"/seller/requests/{request_id}/pay/initiate", headers=api.seller_headers)
    assert started.status_code == 200
    return request_id, started.json()["order"]["checkout"]


def test_payu_success_return_captures_without_bearer_token(api, env, monkeypatch):
    request_id, checkout = _start_payu_checkout(api, env, monkeypatch)
    assert checkout["surl"].endswith("/payments/payu/success")

    response = api.post("/payments/payu/success", data=_payu_return(env, checkout, "success"))

    assert response.status_code == 200
    body = response.json()
    assert body["review_request_id"] == request_id
    assert body["payment_status"] == "paid"
    assert body["payment_id"] == "403993715"
    assert body["invoice_number"].startswith("INV-")
    assert api.get(f"/seller/requests/{request_id}", headers=api.seller_headers).json()["payment_status"] == "paid"

    replay = api.post("/payments/payu/success", data=_payu_return(env, checkout, "success"))
    assert replay.status_code == 409


def test_payu_success_return_with_forged_hash_is_400(api, env, monkeypatch):
    request_id, checkout = _start_payu_checkout(api, env, monkeypatch)
    form = _payu_return(env, checkout, "success")
    form["hash"] = "0" * 128

    response = api.post("/payments/payu/success", data=form)

    assert response.status_code == 400
    assert api.get(f"/seller/requests/{request_id}", headers=api.seller_headers).json()["payment_status"] == "pending"


def test_payu_failure_return_marks_request_failed(api, env, monkeypatch):
    request_id, checkout = _start_payu_checkout(api, env, monkeypatch)

    response = api.post("/payments/payu/failure", data=_payu_return(env, checkout, "failure"))

    assert response.status_code == 200
    assert response.json()["payment_status"] == "failed"
    assert api.get(f"/seller/requests/{request_id}", headers=api.seller_headers).json()["payment_status"] == "failed"


def test_payu_return_for_unknown_txnid_is_404(api, env):
    checkout = {"txnid": "RF_missing", "amount": "354.00", "productinfo": "REQ_x", "firstname": "Asha", "email": ""}

    response = api.post("/payments/payu/success", data=_payu_return(env, checkout, "success"))

    assert response.status_code == 404


def test_reviewer_withdrawal_rules_and_cancel(api):
    upi = {"method": "upi", "upi_id": "ravi@okaxis"}

    too_small = api.post("/user/withdrawals", json={"amount_minor": 5000, "requisites_json": upi}, headers=api.user_headers)
    assert too_small.status_code == 422

    bad_ifsc = {"method": "bank", "bank_name": "SBI", "bank_account": "1234567890", "bank_ifsc": "12345"}
    refused = api.post("/user/withdrawals", json={"amount_minor": 10000, "requisites_json": bad_ifsc}, headers=api.user_headers)
    assert refused.status_code == 422

    created = api.post("/user/withdrawals", json={"amount_minor": 20000, "requisites_json": upi}, headers=api.user_headers)
    assert created.status_code == 201
    withdrawal_id = created.json()["id"]

    second = api.post("/user/withdrawals", json={"amount_minor": 10000, "requisites_json": upi}, headers=api.user_headers)
    assert second.status_code == 400
    assert api.get("/user/wallet", headers=api.user_headers).json()["wallet"]["balance_minor"] == 10000

    cancelled = api.post(f"/user/withdrawals/{withdrawal_id}/cancel", headers=api.user_headers)
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "cancelled"
    assert api.get("/user/wallet", headers=api.user_headers).json()["wallet"]["balance_minor"] == 30000

    again = api.post(f"/user/withdrawals/{withdrawal_id}/cancel", headers=api.user_headers)
    assert again.status_code == 400
    assert api.post(f"/user/withdrawals/{uuid.uuid4()}/cancel", headers=api.user_headers).status_code == 404


def test_bank_transfer_recharge_round_trip(api):
    body = {
        "amount_minor": 200000,
        "utr_number": "SBIN24101900123",
        "transfer_date": "2024-10-01",
        "screenshot_url": "https://cdn.example.com/utr.png",
    }
    too_small = api.post("/seller/wallet/recharges", json=dict(body, amount_minor=5000), headers=api.seller_headers)
    assert too_small.status_code == 422

    created = api.post("/seller/wallet/recharges", json=body, headers=api.seller_headers)
    assert created.status_code == 201
    recharge_id = created.json()["id"]
    assert created.json()["status"] == "pending"
    assert [r["id"] for r in api.get("/seller/wallet/recharges", headers=api.seller_headers).json()] == [recharge_id]

    pending = api.get("/admin/wallet-recharges", params={"status": "pending"}, headers=api.admin_headers).json()
    assert [r["id"] for r in pending] == [recharge_id]

    no_remarks = api.patch(f"/admin/wallet-recharges/{recharge_id}/reject", json={"remarks": ""}, headers=api.admin_headers)
    assert no_remarks.status_code == 422

    approved = api.patch(f"/admin/wallet-recharges/{recharge_id}/approve", json={}, headers=api.admin_headers)
    assert approved.status_code == 200
    assert approved.json()["status"] == "approved"

    wallet = api.get("/seller/wallet", headers=api.seller_headers).json()
    assert wallet["wallet"]["balance_minor"] == 50000 + 200000
    assert wallet["transactions"][0]["gateway"] == "bank_transfer"

    again = api.patch(f"/admin/wallet-recharges/{recharge_id}/approve", json={}, headers=api.admin_headers)
    assert again.status_code == 400
    assert api.get("/admin/wallet-recharges", headers=api.seller_headers).status_code == 403
