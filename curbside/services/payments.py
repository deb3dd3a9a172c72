"""Payment Processor adapter and the server side of the payment saga"""

import logging
import uuid
from typing import Any

import stripe
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from curbside.config import settings
from curbside.db.models import PaymentRecord, PaymentRecordStatus, RequestStatus, ServiceRequest
from curbside.schemas.payments import PaymentIntentCreate
from curbside.services.errors import (
    NotFoundError,
    PaymentError,
    PersistenceError,
    ValidationError,
)
from curbside.services.requests import ServiceRequestService

logger = logging.getLogger(__name__)


class PaymentProcessor:
    """Thin wrapper over Stripe PaymentIntents, simulated when Stripe is not configured"""

    def __init__(self, simulated: bool | None = None):
        stripe.api_key = settings.stripe_secret_key
        self.stripe_client = stripe
        self.simulated = (
            not settings.is_payments_configured() if simulated is None else simulated
        )

    async def create_intent(
        self, amount: int, currency: str, metadata: dict[str, str]
    ) -> dict[str, Any]:
        """Create a payment intent and return its id, client secret and status"""
        if self.simulated:
            intent_id = f"pi_sim_{uuid.uuid4().hex[:24]}"
            return {
                "id": intent_id,
                "client_secret": f"{intent_id}_secret_{uuid.uuid4().hex[:16]}",
                "status": "requires_confirmation",
            }

        try:
            intent = self.stripe_client.PaymentIntent.create(
                amount=amount,
                currency=currency,
                metadata=metadata,
                automatic_payment_methods={"enabled": True},
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe failed to create payment intent: {e}")
            raise PaymentError(f"Failed to create payment intent: {e.user_message or e}") from e

        return {
            "id": intent["id"],
            "client_secret": intent["client_secret"],
            "status": intent["status"],
        }

    async def get_intent_status(self, intent_id: str) -> str:
        """Current processor status of an intent"""
        if self.simulated:
            # the card step happens on the client; a simulated intent always clears
            return "succeeded"

        try:
            intent = self.stripe_client.PaymentIntent.retrieve(intent_id)
        except stripe.StripeError as e:
            logger.error(f"Stripe failed to retrieve payment intent {intent_id}: {e}")
            raise PaymentError(f"Failed to verify payment: {e.user_message or e}") from e
        return intent["status"]

    async def cancel_intent(self, intent_id: str) -> None:
        if self.simulated:
            return

        try:
            self.stripe_client.PaymentIntent.cancel(intent_id, cancellation_reason="abandoned")
        except stripe.StripeError as e:
            logger.error(f"Stripe failed to cancel payment intent {intent_id}: {e}")
            raise PaymentError(f"Failed to cancel payment: {e.user_message or e}") from e

    async def refund(self, intent_id: str) -> str | None:
        """Refund a captured intent, returning the refund id"""
        if self.simulated:
            return f"re_sim_{uuid.uuid4().hex[:24]}"

        try:
            refund = self.stripe_client.Refund.create(payment_intent=intent_id)
        except stripe.StripeError as e:
            logger.error(f"Stripe failed to refund payment intent {intent_id}: {e}")
            raise PaymentError(f"Failed to refund payment: {e.user_message or e}") from e
        return refund["id"]


class PaymentService:
    """Create intents, link them to requests, confirm or compensate"""

    def __init__(self, db: AsyncSession, processor: PaymentProcessor | None = None):
        self.db = db
        self.processor = processor or PaymentProcessor()
        self.request_service = ServiceRequestService(db)

    async def create_payment_intent(
        self, intent_data: PaymentIntentCreate
    ) -> tuple[PaymentRecord, str]:
        """Create a processor intent and record it locally"""
        intent = await self.processor.create_intent(
            amount=intent_data.amount,
            currency=settings.payment_currency,
            metadata={
                "service_id": intent_data.service_id,
                "service_type": intent_data.service_type,
            },
        )

        record = PaymentRecord(
            payment_intent_id=intent["id"],
            amount=intent_data.amount,
            currency=settings.payment_currency,
            service_id=intent_data.service_id,
            service_type=intent_data.service_type,
            status=PaymentRecordStatus.CREATED,
            extra_metadata={"simulated": self.processor.simulated},
        )
        self.db.add(record)
        await self._flush("record payment intent")

        logger.info(
            f"Created payment intent {record.payment_intent_id} for "
            f"${intent_data.amount / 100:.2f} ({intent_data.service_id})"
        )
        return record, intent["client_secret"]

    async def get_record(self, payment_intent_id: str) -> PaymentRecord:
        result = await self.db.execute(
            select(PaymentRecord).where(PaymentRecord.payment_intent_id == payment_intent_id)
        )
        record = result.scalar_one_or_none()
        if record is None:
            raise NotFoundError(f"Payment {payment_intent_id} not found")
        return record

    async def link_request(
        self, payment_intent_id: str, service_request: ServiceRequest
    ) -> PaymentRecord:
        """Attach a freshly created request to the intent that will pay for it"""
        try:
            record = await self.get_record(payment_intent_id)
        except NotFoundError:
            raise ValidationError(f"Unknown payment intent {payment_intent_id}")

        if record.status != PaymentRecordStatus.CREATED:
            raise ValidationError(
                f"Payment {payment_intent_id} cannot be used (status: {record.status.value})"
            )
        if record.service_request_id is not None and record.service_request_id != service_request.id:
            raise ValidationError(f"Payment {payment_intent_id} is already linked to a request")
        if service_request.amount != record.amount:
            raise ValidationError("Request amount does not match the payment amount")

        record.service_request_id = service_request.id
        await self._flush("link payment to request")
        return record

    async def confirm_payment(
        self, payment_intent_id: str
    ) -> tuple[PaymentRecord, ServiceRequest | None]:
        """Confirm a charge and mark the linked request paid.

        A charge that cannot be applied is compensated: flagged as orphaned
        for the admin report, or refunded when configured to. That covers a
        charge with no request behind it and one whose request stopped
        waiting for payment (cancelled by an operator) before it arrived.
        """
        record = await self.get_record(payment_intent_id)

        if record.status in (PaymentRecordStatus.ORPHANED, PaymentRecordStatus.REFUNDED):
            return record, await self._find_request(record)
        if record.status == PaymentRecordStatus.CANCELLED:
            raise ValidationError(f"Payment {payment_intent_id} was cancelled")
        if record.status == PaymentRecordStatus.SUCCEEDED:
            # already applied; confirming again changes nothing
            return record, await self._find_request(record)

        processor_status = await self.processor.get_intent_status(payment_intent_id)
        if processor_status != "succeeded":
            record.failure_reason = f"Processor status: {processor_status}"
            await self._flush("record payment failure")
            raise PaymentError(f"Payment has not completed (status: {processor_status})")

        service_request = await self._find_request(record)
        if service_request is None:
            await self._compensate_orphan(record, "Charged without a service request")
            return record, None
        if service_request.status != RequestStatus.PENDING_PAYMENT:
            await self._compensate_orphan(
                record,
                f"Charged after request left pending_payment "
                f"(status: {service_request.status.value})",
            )
            return record, service_request

        service_request = await self.request_service.mark_paid(
            service_request.id, payment_intent_id
        )
        record.status = PaymentRecordStatus.SUCCEEDED
        record.service_request_id = service_request.id
        record.failure_reason = None
        await self._flush("confirm payment")
        return record, service_request

    async def cancel_payment_intent(
        self, payment_intent_id: str, reason: str | None = None
    ) -> PaymentRecord:
        """Compensating action when the request for an intent could not be created.

        An intent the customer has already paid cannot be cancelled; with no
        request behind it the charge is compensated like any other orphan.
        """
        record = await self.get_record(payment_intent_id)

        if record.status == PaymentRecordStatus.CANCELLED:
            return record
        if record.status != PaymentRecordStatus.CREATED:
            raise ValidationError(
                f"Payment {payment_intent_id} cannot be cancelled (status: {record.status.value})"
            )

        if not self.processor.simulated:
            processor_status = await self.processor.get_intent_status(payment_intent_id)
            if processor_status == "succeeded":
                if await self._find_request(record) is not None:
                    raise ValidationError(
                        f"Payment {payment_intent_id} is already charged; confirm it instead"
                    )
                await self._compensate_orphan(record, f"Charged, then cancel requested: {reason}")
                return record

        await self.processor.cancel_intent(payment_intent_id)
        record.status = PaymentRecordStatus.CANCELLED
        record.failure_reason = reason
        await self._flush("cancel payment intent")

        logger.info(f"Cancelled payment intent {payment_intent_id}: {reason}")
        return record

    async def list_orphaned(self) -> list[PaymentRecord]:
        """Charges that never produced a service request"""
        result = await self.db.execute(
            select(PaymentRecord)
            .where(PaymentRecord.status.in_([
                PaymentRecordStatus.ORPHANED,
                PaymentRecordStatus.REFUNDED,
            ]))
            .order_by(PaymentRecord.created_at.desc())
        )
        return list(result.scalars().all())

    async def _find_request(self, record: PaymentRecord) -> ServiceRequest | None:
        if record.service_request_id is not None:
            try:
                return await self.request_service.get_request(record.service_request_id)
            except NotFoundError:
                return None
        return await self.request_service.find_by_payment_intent(record.payment_intent_id)

    async def _compensate_orphan(self, record: PaymentRecord, reason: str) -> None:
        logger.warning(
            f"Payment {record.payment_intent_id} captured ${record.amount / 100:.2f}: {reason}"
        )
        if settings.refund_orphaned_payments:
            refund_id = await self.processor.refund(record.payment_intent_id)
            record.status = PaymentRecordStatus.REFUNDED
            record.extra_metadata = {**(record.extra_metadata or {}), "refund_id": refund_id}
        else:
            record.status = PaymentRecordStatus.ORPHANED
        record.failure_reason = reason
        await self._flush("flag orphaned payment")

    async def _flush(self, action: str) -> None:
        try:
            await self.db.flush()
        except SQLAlchemyError as e:
            logger.error(f"Failed to {action}: {e}")
            raise PersistenceError(f"Failed to {action}") from e
