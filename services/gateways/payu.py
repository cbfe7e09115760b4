import hashlib
import hmac
from typing import Any, Dict

from config import ENV, get_env
from services.errors import GatewayError, PaymentVerificationError
from services.pricing import minor_to_rupees
from utils.refs import make_txn_id
from .base import GatewayOrder, PaymentGateway, PayoutResult, VerifiedPayment


def _sha512(value: str) -> str:
    return hashlib.sha512(value.encode()).hexdigest().lower()


def request_hash(key: str, salt: str, txnid: str, amount: str, productinfo: str, firstname: str, email: str) -> str:
    return _sha512(f"{key}|{txnid}|{amount}|{productinfo}|{firstname}|{email}|||||||||||{salt}")


def response_hash(key: str, salt: str, status: str, txnid: str, amount: str, productinfo: str, firstname: str, email: str) -> str:
    return _sha512(f"{salt}|{status}|||||||||||{email}|{firstname}|{productinfo}|{amount}|{txnid}|{key}")


class PayUGateway(PaymentGateway):
    """PayU hosted checkout: the order is a locally generated txnid posted to PayU by the client."""
    code = "payu"

    def __init__(self, env: ENV | None = None):
        self.env = env or get_env()
        self.key = self.env.PAYU_MERCHANT_KEY
        self.salt = self.env.PAYU_MERCHANT_SALT

    async def create_order(self, amount_minor: int, receipt: str, notes: Dict[str, Any]) -> GatewayOrder:
        txnid = make_txn_id()
        amount = str(minor_to_rupees(amount_minor))
        productinfo = receipt
        firstname = str(notes.get("name") or "Seller")
        email = str(notes.get("email") or "")
        return GatewayOrder(
            gateway=self.code,
            order_id=txnid,
            amount_minor=amount_minor,
            checkout={
                "action": self.env.PAYU_BASE_URL,
                "key": self.key,
                "txnid": txnid,
                "amount": amount,
                "productinfo": productinfo,
                "firstname": firstname,
                "email": email,
                "surl": f"{self.env.BASE_URL}/payments/payu/success",
                "furl": f"{self.env.BASE_URL}/payments/payu/failure",
                "hash": request_hash(self.key, self.salt, txnid, amount, productinfo, firstname, email),
            },
        )

    def _check_hash(self, payload: Dict[str, Any]) -> VerifiedPayment:
        received = payload.get("hash") or ""
        txnid = payload.get("txnid") or ""
        if not (received and txnid and self.salt):
            raise PaymentVerificationError("Incomplete PayU callback")

        expected = response_hash(
            self.key,
            self.salt,
            payload.get("status") or "",
            txnid,
            payload.get("amount") or "",
            payload.get("productinfo") or "",
            payload.get("firstname") or "",
            payload.get("email") or "",
        )
        if not hmac.compare_digest(expected, received.lower()):
            raise PaymentVerificationError("PayU hash mismatch")
        return VerifiedPayment(order_id=txnid, payment_id=payload.get("mihpayid") or txnid, signature=received)

    def verify(self, payload: Dict[str, Any]) -> VerifiedPayment:
        status = payload.get("status") or ""
        if status != "success":
            raise PaymentVerificationError(f"PayU reported status {status!r}")
        return self._check_hash(payload)

    def verify_failure(self, payload: Dict[str, Any]) -> VerifiedPayment:
        # the response hash covers the status, so a signed "success" cannot be replayed here
        if (payload.get("status") or "") == "success":
            raise PaymentVerificationError("PayU reported a successful payment")
        return self._check_hash(payload)

    async def create_payout(self, amount_minor: int, requisites: Dict[str, Any], reference: str) -> PayoutResult:
        raise GatewayError("PayU payouts are not supported")
