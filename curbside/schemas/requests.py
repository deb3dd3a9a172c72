"""Pydantic schemas for service request API"""

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import Field, field_validator, model_validator

from curbside.db.models import RequestStatus
from curbside.schemas.common import CamelModel


class ServiceRequestCreate(CamelModel):
    service_type: str = Field(..., max_length=255)
    service_id: str = Field(..., max_length=100)
    form_data: dict[str, Any] = Field(default_factory=dict)
    amount: int | None = Field(None, ge=0)
    payment_intent_id: str | None = Field(None, max_length=255)

    @field_validator("form_data", mode="before")
    @classmethod
    def default_form_data(cls, v: Any) -> Any:
        return {} if v is None else v


QuickServiceType = Literal[
    "missed-collection",
    "service-day-inquiry",
    "account-number-request",
    "supervisor-callback",
]

MissedCollectionType = Literal["garbage", "recycling", "yard-waste"]


class QuickServiceRequestCreate(CamelModel):
    type: QuickServiceType
    sub_type: MissedCollectionType | None = None
    address: str | None = None
    problem_description: str | None = None
    callback_number: str | None = None

    @model_validator(mode="after")
    def check_required_fields(self) -> "QuickServiceRequestCreate":
        if self.type == "missed-collection":
            if not self.sub_type:
                raise ValueError("subType is required for missed collections")
            if not (self.address and self.address.strip()):
                raise ValueError("address is required")
        elif self.type in ("service-day-inquiry", "account-number-request"):
            if not (self.address and self.address.strip()):
                raise ValueError("address is required")
        elif self.type == "supervisor-callback":
            if not (self.problem_description and self.problem_description.strip()):
                raise ValueError("problemDescription is required")
            if not (self.callback_number and self.callback_number.strip()):
                raise ValueError("callbackNumber is required")
        return self


class ServiceRequestResponse(CamelModel):
    id: UUID
    user_id: str | None
    service_type: str
    service_id: str
    form_data: dict[str, Any] | None
    amount: int | None
    status: RequestStatus
    admin_response: str | None
    admin_responded_at: datetime | None
    payment_intent_id: str | None
    created_at: datetime
    updated_at: datetime


class RequesterProfile(CamelModel):
    first_name: str | None
    last_name: str | None
    email: str | None
    phone: str | None


class AdminServiceRequestResponse(ServiceRequestResponse):
    user: RequesterProfile | None = None


class AdminRequestListResponse(CamelModel):
    requests: list[AdminServiceRequestResponse]
    total: int
    skip: int
    limit: int


class StatusUpdateRequest(CamelModel):
    status: RequestStatus


class RespondRequest(CamelModel):
    response: str = Field(..., max_length=5000)
    new_status: RequestStatus | None = None
