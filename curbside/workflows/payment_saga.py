"""Create intent, collect, create request, confirm payment; resumable on failure"""

import enum
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from curbside.workflows.base import SubmissionGateway
from curbside.workflows.errors import SubmissionError

logger = logging.getLogger(__name__)

# Completes the charge on the client (card entry) given the intent's client secret
PaymentCollector = Callable[[str], Awaitable[None]]

# Confirmation outcomes where the server kept the charge off the request
UNAPPLIED_PAYMENT_STATUSES = frozenset({"orphaned", "refunded"})


class SagaStage(str, enum.Enum):
    CREATE_INTENT = "create_intent"
    COLLECT_PAYMENT = "collect_payment"
    CREATE_REQUEST = "create_request"
    CONFIRM_PAYMENT = "confirm_payment"
    DONE = "done"
    ABANDONED = "abandoned"


class PaymentSaga:
    """One paid submission.

    Each completed stage is remembered, so `run` after a failure resumes at
    the stage that failed. The service request is created at most once.

    If creating the request fails before the card was charged, the intent is
    cancelled and a retry starts over with a fresh intent. Once the card has
    been charged the intent is never cancelled or replaced: a retryable
    failure retries only the create-request call with the same intent, and
    a final one hands the charge to confirm-payment so the server flags it
    for the orphaned-payment report (or refunds it). The saga is then
    abandoned.
    """

    def __init__(
        self,
        gateway: SubmissionGateway,
        service_id: str,
        service_type: str,
        amount: int,
        collect_payment: PaymentCollector | None = None,
    ):
        if amount <= 0:
            raise ValueError("A payment saga needs a positive amount")
        self.gateway = gateway
        self.service_id = service_id
        self.service_type = service_type
        self.amount = amount
        self.collect_payment = collect_payment

        self.stage = SagaStage.CREATE_INTENT
        self.payment_intent_id: str | None = None
        self.client_secret: str | None = None
        self.charged = False
        self.request: dict[str, Any] | None = None
        self.confirmation: dict[str, Any] | None = None

    @property
    def request_created(self) -> bool:
        return self.request is not None

    @property
    def in_flight(self) -> bool:
        """Money or a request exists, so the submission cannot be unwound"""
        if self.stage == SagaStage.ABANDONED:
            return False
        return self.charged or self.request_created

    @property
    def done(self) -> bool:
        return self.stage == SagaStage.DONE

    async def run(self, form_data: dict[str, Any]) -> dict[str, Any]:
        """Drive the saga to completion and return the confirmed request"""
        if self.stage == SagaStage.ABANDONED:
            raise SubmissionError(
                "This payment could not be applied; contact support",
                retryable=False,
                stage=SagaStage.ABANDONED.value,
            )

        if self.stage == SagaStage.CREATE_INTENT:
            intent = await self._call(
                SagaStage.CREATE_INTENT,
                self.gateway.create_payment_intent(self.amount, self.service_id, self.service_type),
            )
            self.payment_intent_id = intent["paymentIntentId"]
            self.client_secret = intent.get("clientSecret")
            self.stage = SagaStage.COLLECT_PAYMENT

        if self.stage == SagaStage.COLLECT_PAYMENT:
            if self.collect_payment is not None and self.client_secret:
                await self._call(SagaStage.COLLECT_PAYMENT, self.collect_payment(self.client_secret))
                self.charged = True
            self.stage = SagaStage.CREATE_REQUEST

        if self.stage == SagaStage.CREATE_REQUEST:
            await self._create_request(form_data)
            self.stage = SagaStage.CONFIRM_PAYMENT

        if self.stage == SagaStage.CONFIRM_PAYMENT:
            self.confirmation = await self._call(
                SagaStage.CONFIRM_PAYMENT,
                self.gateway.confirm_payment(self.payment_intent_id),
            )
            if self.confirmation.get("request"):
                self.request = self.confirmation["request"]
            if self.confirmation.get("paymentStatus") in UNAPPLIED_PAYMENT_STATUSES:
                self.stage = SagaStage.ABANDONED
                raise SubmissionError(
                    "Your payment could not be applied to this request; "
                    "it has been flagged for review",
                    retryable=False,
                    stage=SagaStage.CONFIRM_PAYMENT.value,
                )
            self.stage = SagaStage.DONE
            logger.info(f"Payment {self.payment_intent_id} confirmed for {self.service_id}")

        return self.request

    async def _create_request(self, form_data: dict[str, Any]) -> None:
        try:
            self.request = await self.gateway.create_service_request(
                service_type=self.service_type,
                service_id=self.service_id,
                form_data=form_data,
                amount=self.amount,
                payment_intent_id=self.payment_intent_id,
            )
        except SubmissionError as e:
            if not self.charged:
                await self._release_intent(e)
            elif not e.retryable:
                await self._report_charge(e)
            raise SubmissionError(
                e.message,
                retryable=e.retryable,
                stage=SagaStage.CREATE_REQUEST.value,
                status_code=e.status_code,
            ) from e

    async def _release_intent(self, cause: SubmissionError) -> None:
        """Cancel the uncharged intent so nothing dangles"""
        intent_id = self.payment_intent_id
        self.payment_intent_id = None
        self.client_secret = None
        self.stage = SagaStage.CREATE_INTENT
        try:
            await self.gateway.cancel_payment_intent(intent_id, reason=cause.message)
        except SubmissionError as e:
            logger.warning(f"Could not cancel payment intent {intent_id}: {e.message}")

    async def _report_charge(self, cause: SubmissionError) -> None:
        """Confirm a charge that will never get a request so the server records it"""
        self.stage = SagaStage.ABANDONED
        logger.error(
            f"Charged intent {self.payment_intent_id} has no request ({cause.message}); "
            f"reporting it"
        )
        try:
            self.confirmation = await self.gateway.confirm_payment(self.payment_intent_id)
        except SubmissionError as e:
            logger.error(f"Could not report charged intent {self.payment_intent_id}: {e.message}")

    async def _call(self, stage: SagaStage, call: Awaitable[Any]) -> Any:
        try:
            return await call
        except SubmissionError as e:
            if e.stage is None:
                e.stage = stage.value
            raise
