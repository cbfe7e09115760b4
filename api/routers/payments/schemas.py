import uuid
from typing import Optional

from pydantic import BaseModel

from api.models import PaymentStatus


class GatewayReturnRead(BaseModel):
    review_request_id: uuid.UUID
    payment_status: PaymentStatus
    payment_id: Optional[str] = None
    invoice_number: Optional[str] = None
