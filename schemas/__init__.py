import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, computed_field

from api.models import (
    AdminStatus,
    PaymentStatus,
    StepStatus,
    TaskStatus,
    TransactionDirection,
    TransactionGateway,
    TransactionStatus,
)
from services.tasks import derive_status


class WalletRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    balance_minor: int = 0
    total_spent_minor: int = 0
    total_earned_minor: int = 0
    total_withdrawn_minor: int = 0


class TransactionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    review_request_id: Optional[uuid.UUID] = None
    direction: TransactionDirection
    amount_minor: int
    gst_amount_minor: int
    balance_after_minor: Optional[int] = None
    gateway: TransactionGateway
    gateway_payment_id: Optional[str] = None
    status: TransactionStatus
    description: Optional[str] = None
    created_at: datetime


class WalletOverview(BaseModel):
    wallet: WalletRead
    transactions: List[TransactionRead]


class ReviewRequestRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    seller_id: uuid.UUID
    product_link: str
    product_name: str
    brand_name: str
    platform: Optional[str] = None
    product_price_minor: int
    admin_commission_minor: int
    reviews_needed: int
    reviews_completed: int
    gst_rate: Decimal
    total_amount_minor: int
    gst_amount_minor: int
    grand_total_minor: int
    payment_status: PaymentStatus
    payment_id: Optional[str] = None
    payment_method: Optional[str] = None
    admin_status: AdminStatus
    admin_note: Optional[str] = None
    rejection_reason: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_listing(cls, listing) -> "ReviewRequestRead":
        return cls.model_validate(listing.request).model_copy(update={"reviews_completed": listing.reviews_completed})


class StepRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    step_number: int
    step_name: str
    step_status: StepStatus
    order_number: Optional[str] = None
    order_date: Optional[date] = None
    order_amount_minor: Optional[int] = None
    screenshot_url: Optional[str] = None
    payment_qr_url: Optional[str] = None
    refund_amount_minor: Optional[int] = None
    rejection_reason: Optional[str] = None
    submitted_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class TaskRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    review_request_id: Optional[uuid.UUID] = None
    user_id: uuid.UUID
    product_link: str
    brand_name: Optional[str] = None
    commission_minor: int
    task_status: TaskStatus
    refund_requested: bool
    deadline: Optional[date] = None
    created_at: datetime
    steps: List[StepRead] = []

    @computed_field
    @property
    def status_label(self) -> str:
        return derive_status(s.step_number for s in self.steps if s.step_status == StepStatus.COMPLETED)
