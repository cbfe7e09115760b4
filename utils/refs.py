import secrets
import uuid
from datetime import date


def make_invoice_number(day: date) -> str:
    return f"INV-{day:%Y%m%d}-{uuid.uuid4().hex[:8].upper()}"


def make_payment_id(prefix: str) -> str:
    """Internal payment reference such as WALLET_1A2B3C4D5E6F."""
    return f"{prefix}_{secrets.token_hex(6).upper()}"


def make_txn_id(prefix: str = "RF") -> str:
    # PayU txnid: alphanumeric, at most 25 chars
    return f"{prefix}{uuid.uuid4().hex[:20]}"
