import hashlib
import hmac
from typing import Any, Dict

import aiohttp

from config import ENV, get_env
from services.errors import GatewayError, PaymentVerificationError
from .base import GatewayOrder, PaymentGateway, PayoutResult, VerifiedPayment


def razorpay_signature(secret: str, order_id: str, payment_id: str) -> str:
    return hmac.new(secret.encode(), f"{order_id}|{payment_id}".encode(), hashlib.sha256).hexdigest()


class RazorpayGateway(PaymentGateway):
    code = "razorpay"
    api_url = "https://api.razorpay.com/v1"

    def __init__(self, env: ENV | None = None):
        self.env = env or get_env()
        self.key_id = self.env.RAZORPAY_KEY_ID
        self.key_secret = self.env.RAZORPAY_KEY_SECRET

    async def _request(self, method: str, endpoint: str, **kwargs) -> dict:
        auth = aiohttp.BasicAuth(self.key_id, self.key_secret)
        async with aiohttp.ClientSession(auth=auth) as session:
            async with session.request(method, f"{self.api_url}{endpoint}", **kwargs) as r:
                data = await r.json(content_type=None)
                if r.status >= 400 or not isinstance(data, dict):
                    raise GatewayError(f"Razorpay error {r.status}: {data}")
                return data

    async def create_order(self, amount_minor: int, receipt: str, notes: Dict[str, Any]) -> GatewayOrder:
        data = await self._request(
            "POST",
            "/orders",
            json={"amount": amount_minor, "currency": "INR", "receipt": receipt, "notes": notes},
        )
        return GatewayOrder(
            gateway=self.code,
            order_id=data["id"],
            amount_minor=amount_minor,
            checkout={"key": self.key_id, "order_id": data["id"], "amount": amount_minor, "currency": "INR"},
        )

    def verify(self, payload: Dict[str, Any]) -> VerifiedPayment:
        order_id = payload.get("razorpay_order_id") or ""
        payment_id = payload.get("razorpay_payment_id") or ""
        signature = payload.get("razorpay_signature") or ""
        if not (order_id and payment_id and signature and self.key_secret):
            raise PaymentVerificationError("Incomplete Razorpay callback")

        expected = razorpay_signature(self.key_secret, order_id, payment_id)
        if not hmac.compare_digest(expected, signature):
            raise PaymentVerificationError("Razorpay signature mismatch")
        return VerifiedPayment(order_id=order_id, payment_id=payment_id, signature=signature)

    async def create_payout(self, amount_minor: int, requisites: Dict[str, Any], reference: str) -> PayoutResult:
        fund_account_id = requisites.get("fund_account_id")
        if not fund_account_id:
            raise GatewayError("fund_account_id is required for Razorpay payouts")

        data = await self._request(
            "POST",
            "/payouts",
            json={
                "account_number": self.env.RAZORPAY_ACCOUNT_NUMBER,
                "fund_account_id": fund_account_id,
                "amount": amount_minor,
                "currency": "INR",
                "mode": requisites.get("mode") or ("UPI" if requisites.get("method") == "upi" else "IMPS"),
                "purpose": "payout",
                "reference_id": reference,
                "queue_if_low_balance": True,
            },
            headers={"X-Payout-Idempotency": reference},
        )
        return PayoutResult(payout_id=data["id"], status=data.get("status", "queued"))
