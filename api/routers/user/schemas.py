import uuid
from datetime import date, datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict

from api.models import WithdrawalStatus


class StepSubmit(BaseModel):
    order_number: Optional[str] = None
    order_date: Optional[date] = None
    order_name: Optional[str] = None
    product_name: Optional[str] = None
    order_amount_minor: Optional[int] = None
    screenshot_url: Optional[str] = None
    payment_qr_url: Optional[str] = None


class WithdrawalCreate(BaseModel):
    amount_minor: int
    requisites_json: Dict[str, Any]


class WithdrawalRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    amount_minor: int
    status: WithdrawalStatus
    requisites_json: Dict[str, Any]
    admin_note: Optional[str] = None
    gateway_ref: Optional[str] = None
    created_at: datetime
    processed_at: Optional[datetime] = None
