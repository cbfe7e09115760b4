"""Review request pricing and GST arithmetic.

All amounts are integer paise. Percentages are Decimals (18 means 18%).
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

PAISE = Decimal(100)


@dataclass(frozen=True)
class Quote:
    subtotal_minor: int
    gst_minor: int
    grand_total_minor: int


def rupees_to_minor(amount) -> int:
    return int((Decimal(str(amount)) * PAISE).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def minor_to_rupees(amount_minor: int) -> Decimal:
    return (Decimal(amount_minor) / PAISE).quantize(Decimal("0.01"))


def gst_on(amount_minor: int, gst_rate: Decimal) -> int:
    return int((Decimal(amount_minor) * Decimal(gst_rate) / 100).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def quote(price_minor: int, commission_minor: int, reviews_needed: int, gst_rate: Decimal) -> Quote:
    """
    subtotal = (price + commission) * reviews_needed
    gst = subtotal * rate / 100, rounded half-up to a whole paisa
    """
    if price_minor < 0 or commission_minor < 0:
        raise ValueError("Amounts must be non-negative")
    if reviews_needed < 1:
        raise ValueError("reviews_needed must be at least 1")

    subtotal = (price_minor + commission_minor) * reviews_needed
    gst = gst_on(subtotal, gst_rate)
    return Quote(subtotal_minor=subtotal, gst_minor=gst, grand_total_minor=subtotal + gst)


def split_gst(total_gst_minor: int, seller_state: str | None, platform_state: str | None) -> tuple[int, int, int]:
    """Return (cgst, sgst, igst). Inter-state supply is all IGST."""
    if seller_state and platform_state and seller_state.strip() != platform_state.strip():
        return 0, 0, total_gst_minor
    sgst = total_gst_minor // 2
    return total_gst_minor - sgst, sgst, 0
