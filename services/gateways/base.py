from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict

from services.errors import PaymentVerificationError


@dataclass
class GatewayOrder:
    gateway: str
    order_id: str
    amount_minor: int
    # fields the client needs to open the gateway checkout
    checkout: Dict[str, Any] = field(default_factory=dict)


@dataclass
class VerifiedPayment:
    order_id: str
    payment_id: str
    signature: str


@dataclass
class PayoutResult:
    payout_id: str
    status: str


class PaymentGateway(ABC):
    code: str

    @abstractmethod
    async def create_order(self, amount_minor: int, receipt: str, notes: Dict[str, Any]) -> GatewayOrder: ...

    @abstractmethod
    def verify(self, payload: Dict[str, Any]) -> VerifiedPayment:
        """Check the callback signature. Raises PaymentVerificationError."""

    def verify_failure(self, payload: Dict[str, Any]) -> VerifiedPayment:
        """Check a signed failure notice. Gateways that do not sign them refuse."""
        raise PaymentVerificationError(f"{self.code} does not sign failure notices")

    @abstractmethod
    async def create_payout(self, amount_minor: int, requisites: Dict[str, Any], reference: str) -> PayoutResult: ...
