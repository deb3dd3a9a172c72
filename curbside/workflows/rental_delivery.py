"""Rental/delivery request flow (roll-off container)"""

import enum
import logging
from collections.abc import Mapping
from datetime import date
from typing import Any

from curbside.config import settings
from curbside.services.catalog import CatalogOption, CatalogService
from curbside.workflows.base import (
    StepFlow,
    SubmissionGateway,
    add_business_days,
    check_exhaustive,
    require,
)
from curbside.workflows.errors import StepValidationError
from curbside.workflows.payment_saga import PaymentCollector, PaymentSaga

logger = logging.getLogger(__name__)

ADDRESS_FIELDS = ("street", "apt", "city", "state", "zip")


class RentalStep(str, enum.Enum):
    ADDRESS_ENTRY = "address-entry"
    DATE_ENTRY = "date-entry"
    PAYMENT_REVIEW = "payment-review"
    CONFIRMATION = "confirmation"


ALLOWED_NEXT = {
    RentalStep.ADDRESS_ENTRY: (RentalStep.DATE_ENTRY,),
    RentalStep.DATE_ENTRY: (RentalStep.PAYMENT_REVIEW,),
    RentalStep.PAYMENT_REVIEW: (RentalStep.CONFIRMATION,),
    RentalStep.CONFIRMATION: (),
}
TERMINAL = frozenset({RentalStep.CONFIRMATION})

check_exhaustive(RentalStep, ALLOWED_NEXT, TERMINAL)


def validate_address(values: Mapping[str, Any]) -> None:
    require(values, RentalStep.ADDRESS_ENTRY.value, "street", "city", "zip")


def make_date_validator(today: date, min_business_days: int):
    earliest = add_business_days(today, min_business_days)

    def validate_date(values: Mapping[str, Any]) -> None:
        delivery = values.get("delivery_date")
        if not isinstance(delivery, date):
            raise StepValidationError(
                RentalStep.DATE_ENTRY.value, "delivery_date is required", field="delivery_date"
            )
        if delivery < earliest:
            raise StepValidationError(
                RentalStep.DATE_ENTRY.value,
                f"Delivery must be on or after {earliest.isoformat()} "
                f"({min_business_days} business days from today)",
                field="delivery_date",
            )

    return validate_date


class RentalDeliveryFlow(StepFlow):
    """address-entry -> date-entry -> payment-review -> confirmation"""

    steps = RentalStep
    allowed_next = ALLOWED_NEXT
    terminal = TERMINAL

    def __init__(
        self,
        service: CatalogService,
        option: CatalogOption,
        gateway: SubmissionGateway,
        today: date | None = None,
        min_business_days: int | None = None,
        collect_payment: PaymentCollector | None = None,
    ):
        if not option.requires_payment:
            raise ValueError(f"{option.name} has no price")
        self.today = today or date.today()
        self.min_business_days = (
            settings.roll_off_min_business_days if min_business_days is None else min_business_days
        )
        self.validators = {
            RentalStep.ADDRESS_ENTRY: validate_address,
            RentalStep.DATE_ENTRY: make_date_validator(self.today, self.min_business_days),
        }
        super().__init__()
        self.service = service
        self.option = option
        self.gateway = gateway
        self.saga = PaymentSaga(
            gateway,
            service.service_id,
            service.service_type,
            option.price_cents,
            collect_payment=collect_payment,
        )
        self.result: dict[str, Any] | None = None

    @property
    def submission_started(self) -> bool:
        return self.saga.in_flight

    @property
    def earliest_delivery_date(self) -> date:
        return add_business_days(self.today, self.min_business_days)

    def use_saved_address(self, address: Mapping[str, Any] | Any) -> None:
        """Pre-fill from a saved address (API dict or model)"""
        self._require_step(RentalStep.ADDRESS_ENTRY)
        for field in ADDRESS_FIELDS:
            if isinstance(address, Mapping):
                value = address.get(field)
            else:
                value = getattr(address, field, None)
            self.values[field] = value
        if not self.values.get("state"):
            self.values["state"] = "GA"

    def enter_address(
        self,
        street: str,
        city: str,
        zip: str,
        apt: str | None = None,
        state: str = "GA",
    ) -> None:
        self._require_step(RentalStep.ADDRESS_ENTRY)
        self.values.update(street=street, apt=apt, city=city, state=state, zip=zip)

    def set_delivery(self, delivery_date: date, instructions: str | None = None) -> None:
        self._require_step(RentalStep.DATE_ENTRY)
        self.values["delivery_date"] = delivery_date
        self.values["instructions"] = instructions

    def continue_(self) -> None:
        """Advance from address-entry or date-entry"""
        self._require_open()
        if self.step not in (RentalStep.ADDRESS_ENTRY, RentalStep.DATE_ENTRY):
            raise StepValidationError(self.step.value, "Use pay() to submit from payment review")
        self._advance()

    def summary(self) -> dict[str, Any]:
        """Read-only review shown before paying"""
        return {
            "service": self.service.name,
            "option": self.option.name,
            "address": {field: self.values.get(field) for field in ADDRESS_FIELDS},
            "deliveryDate": self.values["delivery_date"].isoformat()
            if self.values.get("delivery_date") else None,
            "instructions": self.values.get("instructions"),
            "rentalDays": self.service.rental_days,
            "total": self.option.price_cents,
        }

    def form_data(self) -> dict[str, Any]:
        review = self.summary()
        return {
            "selectedOption": {"name": self.option.name, "price": self.option.price_cents},
            "address": review["address"],
            "deliveryDate": review["deliveryDate"],
            "instructions": review["instructions"],
            "rentalDays": review["rentalDays"],
        }

    async def pay(self) -> dict[str, Any]:
        """Run the payment saga; on failure stay on review with values intact"""
        self._require_step(RentalStep.PAYMENT_REVIEW)
        try:
            self.result = await self.saga.run(self.form_data())
        except Exception as e:
            self.last_error = e
            logger.warning(f"Payment for {self.service.service_id} failed: {e}")
            raise

        self._advance()
        return self.result
