"""Pydantic schemas for the address book API"""

from datetime import datetime
from uuid import UUID

from pydantic import Field, field_validator

from curbside.schemas.common import CamelModel


class AddressCreate(CamelModel):
    street: str = Field(..., max_length=255)
    apt: str | None = Field(None, max_length=64)
    city: str = Field(..., max_length=100)
    state: str = Field(default="GA", max_length=32)
    zip: str = Field(..., max_length=10)
    is_default: bool = False

    @field_validator("street", "city", "zip")
    @classmethod
    def require_non_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v.strip()

    @field_validator("zip")
    @classmethod
    def validate_zip(cls, v: str) -> str:
        digits = v.replace("-", "")
        if not digits.isdigit() or len(digits) not in (5, 9):
            raise ValueError("ZIP code must be 5 or 9 digits")
        return v


class AddressResponse(CamelModel):
    id: UUID
    user_id: str
    street: str
    apt: str | None
    city: str
    state: str
    zip: str
    is_default: bool
    created_at: datetime
