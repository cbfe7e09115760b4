import uuid
from datetime import date, datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from api.models import RechargeStatus, TaskStatus
from schemas import ReviewRequestRead


class ReviewRequestCreate(BaseModel):
    product_link: str
    product_name: str
    brand_name: str
    product_price_minor: int
    reviews_needed: int
    platform: Optional[str] = None


class ReviewRequestCreated(BaseModel):
    request: ReviewRequestRead
    next_step: str


class RequestEntryRead(BaseModel):
    task_id: uuid.UUID
    user_id: uuid.UUID
    task_status: TaskStatus
    status_label: str
    created_at: datetime


class InvoiceRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    invoice_number: str
    review_request_id: uuid.UUID
    seller_gst: Optional[str] = None
    seller_legal_name: str
    seller_address: Optional[str] = None
    platform_gst: Optional[str] = None
    platform_legal_name: str
    platform_address: Optional[str] = None
    base_amount_minor: int
    cgst_minor: int
    sgst_minor: int
    igst_minor: int
    total_gst_minor: int
    grand_total_minor: int
    sac_code: str
    invoice_date: date


class PaymentRead(BaseModel):
    request: ReviewRequestRead
    transaction_id: uuid.UUID
    payment_id: Optional[str] = None
    invoice_number: str


class GatewayOrderRead(BaseModel):
    gateway: str
    order_id: str
    amount_minor: int
    checkout: Dict[str, Any] = {}


class PaymentInitiateRead(BaseModel):
    mode: str
    request: ReviewRequestRead
    order: Optional[GatewayOrderRead] = None
    payment: Optional[PaymentRead] = None


class PaymentCallback(BaseModel):
    gateway: str = Field(..., description="razorpay or payu")
    payload: Dict[str, Any]


class PaymentFailure(BaseModel):
    gateway_order_id: str


class RechargeCreate(BaseModel):
    amount_minor: int
    utr_number: str
    transfer_date: date
    screenshot_url: str = Field(..., description="Link to the bank transfer screenshot")


class RechargeRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    seller_id: uuid.UUID
    amount_minor: int
    utr_number: str
    transfer_date: date
    screenshot_url: str
    status: RechargeStatus
    admin_remarks: Optional[str] = None
    created_at: datetime
    processed_at: Optional[datetime] = None
