"""Selects a catalog service and hosts the flow that submits it"""

import logging
from datetime import date

from curbside.services.catalog import CatalogService, FlowVariant, get_service
from curbside.workflows.additional_resource import AdditionalResourceFlow
from curbside.workflows.base import FlowStatus, StepFlow, SubmissionGateway
from curbside.workflows.errors import InvalidTransitionError
from curbside.workflows.payment_saga import PaymentCollector
from curbside.workflows.rental_delivery import RentalDeliveryFlow

logger = logging.getLogger(__name__)


class SubmissionOrchestrator:
    """Holds at most one flow per session; nothing selected after done or cancel"""

    def __init__(
        self,
        gateway: SubmissionGateway,
        collect_payment: PaymentCollector | None = None,
        today: date | None = None,
    ):
        self.gateway = gateway
        self.collect_payment = collect_payment
        self.today = today
        self.flow: StepFlow | None = None

    @property
    def selected(self) -> bool:
        return self.flow is not None

    def select(self, service_id: str, option_id: str | None = None) -> StepFlow:
        """Start a new flow for a service, replacing an unfinished one"""
        service = get_service(service_id)
        if service is None or service.flow is None:
            raise InvalidTransitionError(f"{service_id} has no multi-step flow")
        if self.flow is not None and self.flow.submission_started and self.flow.is_open:
            raise InvalidTransitionError("A submission is in progress")

        self.flow = self._build_flow(service, option_id)
        logger.debug(f"Selected {service_id} ({service.flow.value})")
        return self.flow

    def cancel(self) -> None:
        if self.flow is not None and self.flow.is_open:
            self.flow.cancel()
        self.flow = None

    def done(self) -> None:
        """Leave the confirmation screen"""
        if self.flow is None or self.flow.status != FlowStatus.COMPLETED:
            raise InvalidTransitionError("No completed submission to dismiss")
        self.flow = None

    def _build_flow(self, service: CatalogService, option_id: str | None) -> StepFlow:
        if service.flow == FlowVariant.ADDITIONAL_RESOURCE:
            return AdditionalResourceFlow(service, self.gateway, collect_payment=self.collect_payment)

        option = service.get_option(option_id) if option_id else None
        if option is None:
            raise InvalidTransitionError(f"Choose one of the {service.name} options")
        return RentalDeliveryFlow(
            service,
            option,
            self.gateway,
            today=self.today,
            collect_payment=self.collect_payment,
        )
