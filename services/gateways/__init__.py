from config import ENV, Settings, get_env
from services.errors import GatewayError
from .base import GatewayOrder, PaymentGateway, PayoutResult, VerifiedPayment
from .payu import PayUGateway
from .razorpay import RazorpayGateway

GATEWAYS: dict[str, type[PaymentGateway]] = {
    RazorpayGateway.code: RazorpayGateway,
    PayUGateway.code: PayUGateway,
}


def _is_configured(code: str, env: ENV) -> bool:
    if code == RazorpayGateway.code:
        return bool(env.RAZORPAY_KEY_ID and env.RAZORPAY_KEY_SECRET)
    if code == PayUGateway.code:
        return bool(env.PAYU_MERCHANT_KEY and env.PAYU_MERCHANT_SALT)
    return False


def available_gateways(env: ENV | None = None) -> list[str]:
    """Enabled and configured gateway codes, in order of preference."""
    env = env or get_env()
    return [code for code in Settings(env).enabled_gateways() if code in GATEWAYS and _is_configured(code, env)]


def get_gateway(code: str, env: ENV | None = None) -> PaymentGateway:
    gateway_cls = GATEWAYS.get(code)
    if gateway_cls is None:
        raise GatewayError(f"Unknown payment gateway {code!r}")
    return gateway_cls(env or get_env())
