"""Additional resource request flow (extra or replacement roll cart)"""

import enum
import logging
from collections.abc import Mapping
from typing import Any

from curbside.services.catalog import CatalogOption, CatalogService
from curbside.workflows.base import (
    StepFlow,
    SubmissionGateway,
    check_exhaustive,
    require,
)
from curbside.workflows.errors import StepValidationError
from curbside.workflows.payment_saga import PaymentCollector, PaymentSaga

logger = logging.getLogger(__name__)


class ResourceStep(str, enum.Enum):
    REASON_SELECT = "reason-select"
    DETAIL_ENTRY = "detail-entry"
    EVIDENCE_UPLOAD = "evidence-upload"
    SUBMITTED = "submitted"


ALLOWED_NEXT = {
    ResourceStep.REASON_SELECT: (ResourceStep.DETAIL_ENTRY,),
    ResourceStep.DETAIL_ENTRY: (ResourceStep.EVIDENCE_UPLOAD,),
    ResourceStep.EVIDENCE_UPLOAD: (ResourceStep.SUBMITTED,),
    ResourceStep.SUBMITTED: (),
}
TERMINAL = frozenset({ResourceStep.SUBMITTED})

check_exhaustive(ResourceStep, ALLOWED_NEXT, TERMINAL)


def validate_reason(values: Mapping[str, Any]) -> None:
    require(values, ResourceStep.REASON_SELECT.value, "reason")


def validate_details(values: Mapping[str, Any]) -> None:
    require(values, ResourceStep.DETAIL_ENTRY.value, "description")


def validate_evidence(values: Mapping[str, Any]) -> None:
    require(values, ResourceStep.EVIDENCE_UPLOAD.value, "photo")


class AdditionalResourceFlow(StepFlow):
    """reason-select -> detail-entry -> evidence-upload -> submitted"""

    steps = ResourceStep
    allowed_next = ALLOWED_NEXT
    terminal = TERMINAL
    validators = {
        ResourceStep.REASON_SELECT: validate_reason,
        ResourceStep.DETAIL_ENTRY: validate_details,
        ResourceStep.EVIDENCE_UPLOAD: validate_evidence,
    }

    def __init__(
        self,
        service: CatalogService,
        gateway: SubmissionGateway,
        collect_payment: PaymentCollector | None = None,
    ):
        super().__init__()
        self.service = service
        self.gateway = gateway
        self.collect_payment = collect_payment
        self.saga: PaymentSaga | None = None
        self.result: dict[str, Any] | None = None
        self._request_sent = False

    @property
    def submission_started(self) -> bool:
        return self._request_sent or bool(self.saga and self.saga.in_flight)

    @property
    def selected_option(self) -> CatalogOption | None:
        reason = self.values.get("reason")
        return self.service.get_option(reason) if reason else None

    def select_reason(self, reason_id: str) -> None:
        """Picking a reason moves straight on to the details step"""
        self._require_step(ResourceStep.REASON_SELECT)
        if self.service.get_option(reason_id) is None:
            raise StepValidationError(
                ResourceStep.REASON_SELECT.value, f"Unknown reason: {reason_id}", field="reason"
            )
        if self.saga is not None and self.values.get("reason") != reason_id:
            # a different price needs a different intent
            self.saga = None
        self.values["reason"] = reason_id
        self._advance()

    def enter_details(self, description: str, location: str | None = None) -> None:
        self._require_step(ResourceStep.DETAIL_ENTRY)
        self.values["description"] = description
        self.values["location"] = location

    def continue_(self) -> None:
        self._require_step(ResourceStep.DETAIL_ENTRY)
        self._advance()

    def attach_photo(self, photo_ref: str | None) -> None:
        self._require_step(ResourceStep.EVIDENCE_UPLOAD)
        self.values["photo"] = photo_ref

    def form_data(self) -> dict[str, Any]:
        option = self.selected_option
        return {
            "reason": self.values.get("reason"),
            "selectedOption": {
                "name": option.name if option else None,
                "price": option.price_cents if option else None,
            },
            "description": self.values.get("description"),
            "location": self.values.get("location"),
            "photo": self.values.get("photo"),
        }

    async def submit(self) -> dict[str, Any]:
        """Submit the request; priced reasons go through the payment saga"""
        self._require_step(ResourceStep.EVIDENCE_UPLOAD)
        self.validate()

        option = self.selected_option
        try:
            if option is not None and option.requires_payment:
                if self.saga is None:
                    self.saga = PaymentSaga(
                        self.gateway,
                        self.service.service_id,
                        self.service.service_type,
                        option.price_cents,
                        collect_payment=self.collect_payment,
                    )
                self.result = await self.saga.run(self.form_data())
            else:
                self.result = await self.gateway.create_service_request(
                    service_type=self.service.service_type,
                    service_id=self.service.service_id,
                    form_data=self.form_data(),
                )
                self._request_sent = True
        except Exception as e:
            self.last_error = e
            raise

        self._advance()
        logger.info(f"Submitted {self.service.service_id} request ({self.values['reason']})")
        return self.result
