import enum
import uuid
from datetime import date, datetime
from typing import Optional

from sqlalchemy import CheckConstraint, Date, DateTime, ForeignKey, Integer, JSON, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from utils.clock import utcnow
from .base import Base, enum_type


class OwnerType(str, enum.Enum):
    SELLER = "seller"
    USER = "user"


class TransactionDirection(str, enum.Enum):
    DEBIT = "debit"
    CREDIT = "credit"


class TransactionGateway(str, enum.Enum):
    WALLET = "wallet"
    RAZORPAY = "razorpay"
    PAYU = "payu"
    DEMO = "demo"
    ADMIN = "admin"
    REFUND = "refund"
    COMMISSION = "commission"
    WITHDRAWAL = "withdrawal"
    BANK_TRANSFER = "bank_transfer"


class TransactionStatus(str, enum.Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class PaymentOrderStatus(str, enum.Enum):
    CREATED = "created"
    PAID = "paid"
    FAILED = "failed"


class RechargeStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class WithdrawalStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    COMPLETED = "completed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class Wallet(Base):
    __tablename__ = "wallets"
    __table_args__ = (CheckConstraint("balance_minor >= 0", name="ck_wallets_balance_non_negative"),)

    owner_type: Mapped[OwnerType] = mapped_column(enum_type(OwnerType, "ownertype"), primary_key=True)
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    balance_minor: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_spent_minor: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_earned_minor: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_withdrawn_minor: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class PaymentTransaction(Base):
    """Append-only money movement log. Rows are never updated except for `status`."""
    __tablename__ = "payment_transactions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_type: Mapped[OwnerType] = mapped_column(enum_type(OwnerType, "ownertype"), nullable=False)
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    review_request_id: Mapped[Optional[uuid.UUID]] = mapped_column(ForeignKey("review_requests.id"), nullable=True, index=True)
    direction: Mapped[TransactionDirection] = mapped_column(enum_type(TransactionDirection, "txdirection"), nullable=False)
    # money moved by this row; base + gst breakdown is informational
    amount_minor: Mapped[int] = mapped_column(Integer, nullable=False)
    base_amount_minor: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    gst_amount_minor: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    # NULL when the money did not pass through the wallet balance (gateway payments)
    balance_after_minor: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    gateway: Mapped[TransactionGateway] = mapped_column(enum_type(TransactionGateway, "txgateway"), nullable=False)
    gateway_order_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    gateway_payment_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    gateway_signature: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    reference_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    reference_type: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    status: Mapped[TransactionStatus] = mapped_column(
        enum_type(TransactionStatus, "txstatus"), default=TransactionStatus.SUCCESS, nullable=False
    )
    description: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class TaxInvoice(Base):
    __tablename__ = "tax_invoices"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    invoice_number: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)
    seller_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("sellers.id"), nullable=False, index=True)
    review_request_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("review_requests.id"), nullable=False, unique=True)
    payment_transaction_id: Mapped[Optional[uuid.UUID]] = mapped_column(ForeignKey("payment_transactions.id"), nullable=True)

    seller_gst: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    seller_legal_name: Mapped[str] = mapped_column(String(255), nullable=False)
    seller_address: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    platform_gst: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    platform_legal_name: Mapped[str] = mapped_column(String(255), nullable=False)
    platform_address: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    base_amount_minor: Mapped[int] = mapped_column(Integer, nullable=False)
    cgst_minor: Mapped[int] = mapped_column(Integer, nullable=False)
    sgst_minor: Mapped[int] = mapped_column(Integer, nullable=False)
    igst_minor: Mapped[int] = mapped_column(Integer, nullable=False)
    total_gst_minor: Mapped[int] = mapped_column(Integer, nullable=False)
    grand_total_minor: Mapped[int] = mapped_column(Integer, nullable=False)
    sac_code: Mapped[str] = mapped_column(String(10), nullable=False)
    invoice_date: Mapped[date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class PaymentOrder(Base):
    """Gateway order created for a review request; the callback must match one of these."""
    __tablename__ = "payment_orders"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    gateway: Mapped[str] = mapped_column(String(20), nullable=False)
    gateway_order_id: Mapped[str] = mapped_column(String(100), nullable=False, unique=True, index=True)
    review_request_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("review_requests.id"), nullable=False)
    seller_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("sellers.id"), nullable=False)
    amount_minor: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[PaymentOrderStatus] = mapped_column(
        enum_type(PaymentOrderStatus, "paymentorderstatus"), default=PaymentOrderStatus.CREATED, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class WithdrawalRequest(Base):
    __tablename__ = "withdrawal_requests"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    amount_minor: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[WithdrawalStatus] = mapped_column(
        enum_type(WithdrawalStatus, "withdrawalstatus"), default=WithdrawalStatus.PENDING, nullable=False
    )
    requisites_json: Mapped[dict] = mapped_column(JSON, nullable=False)
    admin_note: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    gateway_ref: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    processed_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)


class WalletRechargeRequest(Base):
    """Seller top-up by bank transfer, credited to the wallet once an admin checks the UTR."""
    __tablename__ = "wallet_recharge_requests"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    seller_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("sellers.id"), nullable=False, index=True)
    amount_minor: Mapped[int] = mapped_column(Integer, nullable=False)
    utr_number: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    transfer_date: Mapped[date] = mapped_column(Date, nullable=False)
    screenshot_url: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[RechargeStatus] = mapped_column(
        enum_type(RechargeStatus, "rechargestatus"), default=RechargeStatus.PENDING, nullable=False
    )
    admin_remarks: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    processed_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
