import uuid
from datetime import date, datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from api.models import JobStatus, TransactionDirection


class RequestApprove(BaseModel):
    note: Optional[str] = None


class Rejection(BaseModel):
    reason: str = Field(..., min_length=1)


class TaskAssignCreate(BaseModel):
    review_request_id: uuid.UUID
    user_id: uuid.UUID
    commission_minor: Optional[int] = Field(None, ge=0)
    deadline: Optional[date] = None
    admin_notes: Optional[str] = None


class RefundRelease(BaseModel):
    refund_amount_minor: int = Field(..., gt=0)


class WalletAdjust(BaseModel):
    amount_minor: int = Field(..., gt=0)
    direction: TransactionDirection
    note: Optional[str] = None


class WithdrawalReject(BaseModel):
    note: Optional[str] = None


class WithdrawalComplete(BaseModel):
    gateway_ref: Optional[str] = None


class RechargeApprove(BaseModel):
    remarks: Optional[str] = None


class RechargeReject(BaseModel):
    remarks: str = Field(..., min_length=1)


class JobCreate(BaseModel):
    job_type: str
    payload: Dict[str, Any] = {}
    priority: int = 5
    scheduled_at: Optional[datetime] = None
    max_attempts: int = Field(3, ge=1)


class JobRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    job_type: str
    payload: Dict[str, Any]
    priority: int
    status: JobStatus
    attempts: int
    max_attempts: int
    error_message: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    created_at: datetime
