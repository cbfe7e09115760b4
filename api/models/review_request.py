import enum
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Integer, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from utils.clock import utcnow
from .base import Base, enum_type


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class AdminStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    COMPLETED = "completed"
    REJECTED = "rejected"


class ReviewRequest(Base):
    __tablename__ = "review_requests"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    seller_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("sellers.id"), nullable=False, index=True)

    product_link: Mapped[str] = mapped_column(String, nullable=False)
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    brand_name: Mapped[str] = mapped_column(String(255), nullable=False)
    platform: Mapped[str] = mapped_column(String(50), nullable=False, default="amazon")

    # commercial terms, fixed once paid
    product_price_minor: Mapped[int] = mapped_column(Integer, nullable=False)
    admin_commission_minor: Mapped[int] = mapped_column(Integer, nullable=False)
    reviews_needed: Mapped[int] = mapped_column(Integer, nullable=False)
    gst_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    total_amount_minor: Mapped[int] = mapped_column(Integer, nullable=False)
    gst_amount_minor: Mapped[int] = mapped_column(Integer, nullable=False)
    grand_total_minor: Mapped[int] = mapped_column(Integer, nullable=False)

    reviews_completed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    payment_status: Mapped[PaymentStatus] = mapped_column(
        enum_type(PaymentStatus, "paymentstatus"), default=PaymentStatus.PENDING, nullable=False
    )
    payment_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    payment_method: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    admin_status: Mapped[AdminStatus] = mapped_column(
        enum_type(AdminStatus, "adminstatus"), default=AdminStatus.PENDING, nullable=False
    )
    admin_note: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    approved_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    rejected_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
