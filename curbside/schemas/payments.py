"""Pydantic schemas for payment API"""

from datetime import datetime
from uuid import UUID

from pydantic import Field

from curbside.db.models import PaymentRecordStatus
from curbside.schemas.common import CamelModel
from curbside.schemas.requests import ServiceRequestResponse


class PaymentIntentCreate(CamelModel):
    amount: int = Field(..., gt=0, description="Amount in cents")
    service_id: str = Field(..., min_length=1, max_length=100)
    service_type: str = Field(..., min_length=1, max_length=255)


class PaymentIntentResponse(CamelModel):
    client_secret: str
    payment_intent_id: str


class ConfirmPaymentRequest(CamelModel):
    payment_intent_id: str = Field(..., min_length=1, max_length=255)


class ConfirmPaymentResponse(CamelModel):
    payment_intent_id: str
    payment_status: PaymentRecordStatus
    request: ServiceRequestResponse | None = None


class CancelPaymentRequest(CamelModel):
    payment_intent_id: str = Field(..., min_length=1, max_length=255)
    reason: str | None = Field(None, max_length=500)


class PaymentRecordResponse(CamelModel):
    id: UUID
    payment_intent_id: str
    amount: int
    currency: str
    service_id: str
    service_type: str
    status: PaymentRecordStatus
    service_request_id: UUID | None
    failure_reason: str | None
    created_at: datetime
    updated_at: datetime


class OrphanedPaymentListResponse(CamelModel):
    payments: list[PaymentRecordResponse]
    total_amount: int
