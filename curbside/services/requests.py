"""Service request lifecycle: creation, payment gating and operator transitions"""

import logging
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from curbside.db.models import RequestStatus, ServiceRequest, UserProfile
from curbside.schemas.requests import QuickServiceRequestCreate, ServiceRequestCreate
from curbside.services.catalog import RoutingClass, routing_for
from curbside.services.errors import NotFoundError, PersistenceError, ValidationError

logger = logging.getLogger(__name__)


TERMINAL_STATUSES = frozenset({RequestStatus.COMPLETED, RequestStatus.CANCELLED})

# Only the lifecycle manager itself may enter these
SYSTEM_STATUSES = frozenset({
    RequestStatus.PENDING,
    RequestStatus.PENDING_PAYMENT,
    RequestStatus.PAID,
})

OPERATOR_TARGETS = frozenset({
    RequestStatus.INVESTIGATING,
    RequestStatus.IN_PROGRESS,
    RequestStatus.SCHEDULED,
    RequestStatus.RESPONDED,
    RequestStatus.COMPLETED,
    RequestStatus.CANCELLED,
})

# type -> (service type label, initial status)
QUICK_SERVICE_TYPES: dict[str, tuple[str, RequestStatus]] = {
    "missed-collection": ("Quick Service - Missed Collection", RequestStatus.SUBMITTED),
    "service-day-inquiry": ("Quick Service - Service Day Inquiry", RequestStatus.PENDING),
    "account-number-request": ("Quick Service - Account Number Request", RequestStatus.PENDING),
    "supervisor-callback": ("Quick Service - Supervisor Callback", RequestStatus.SUBMITTED),
}


def initial_status(amount: int | None) -> RequestStatus:
    """Priced requests wait for payment; free ones are submitted straight away"""
    if amount is not None and amount > 0:
        return RequestStatus.PENDING_PAYMENT
    return RequestStatus.SUBMITTED


def post_payment_status(service_id: str) -> RequestStatus:
    """Status a request lands in once its payment is confirmed"""
    routing = routing_for(service_id)
    if routing == RoutingClass.MANUAL_REVIEW:
        return RequestStatus.INVESTIGATING
    if routing == RoutingClass.AUTO_SUBMIT:
        return RequestStatus.SUBMITTED
    return RequestStatus.PAID


def can_operator_transition(current: RequestStatus, target: RequestStatus) -> bool:
    """Operator allow-list for status changes"""
    if current == target:
        return True
    if current in TERMINAL_STATUSES:
        return False
    if target in SYSTEM_STATUSES:
        return False
    if current == RequestStatus.PENDING_PAYMENT:
        # unpaid work can only be called off
        return target == RequestStatus.CANCELLED
    return target in OPERATOR_TARGETS


class ServiceRequestService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_request(
        self, request_data: ServiceRequestCreate, user_id: str | None = None
    ) -> ServiceRequest:
        """Create a service request with its initial status"""
        service_id = (request_data.service_id or "").strip()
        service_type = (request_data.service_type or "").strip()
        if not service_id or not service_type:
            raise ValidationError("serviceId and serviceType are required")

        if request_data.amount is not None and request_data.amount < 0:
            raise ValidationError("amount cannot be negative")

        status = initial_status(request_data.amount)

        service_request = ServiceRequest(
            user_id=user_id,
            service_type=service_type,
            service_id=service_id,
            form_data=dict(request_data.form_data or {}),
            amount=request_data.amount,
            status=status,
            payment_intent_id=(
                request_data.payment_intent_id
                if status == RequestStatus.PENDING_PAYMENT
                else None
            ),
        )

        self.db.add(service_request)
        await self._flush("create service request")

        logger.info(
            f"Created service request {service_request.id} for {service_id} "
            f"with status {status.value}"
        )
        return service_request

    async def create_quick_request(
        self, request_data: QuickServiceRequestCreate
    ) -> ServiceRequest:
        """Create an anonymous quick-service request"""
        mapping = QUICK_SERVICE_TYPES.get(request_data.type)
        if mapping is None:
            raise ValidationError(f"Unknown quick service type: {request_data.type}")

        service_type, status = mapping
        form_data = request_data.model_dump(
            by_alias=True, exclude={"type"}, exclude_none=True
        )

        service_request = ServiceRequest(
            user_id=None,
            service_type=service_type,
            service_id=f"quick-{request_data.type}",
            form_data=form_data,
            amount=0,
            status=status,
        )

        self.db.add(service_request)
        await self._flush("create quick service request")

        logger.info(f"Created quick service request {service_request.id} ({request_data.type})")
        return service_request

    async def get_request(self, request_id: UUID) -> ServiceRequest:
        """Get a request by ID or raise NotFoundError"""
        result = await self.db.execute(
            select(ServiceRequest).where(ServiceRequest.id == request_id)
        )
        service_request = result.scalar_one_or_none()
        if service_request is None:
            raise NotFoundError(f"Service request {request_id} not found")
        return service_request

    async def get_request_for_user(self, request_id: UUID, user_id: str) -> ServiceRequest:
        """Get a request owned by the given user"""
        service_request = await self.get_request(request_id)
        if service_request.user_id != user_id:
            # other users' requests are indistinguishable from missing ones
            raise NotFoundError(f"Service request {request_id} not found")
        return service_request

    async def find_by_payment_intent(self, payment_intent_id: str) -> ServiceRequest | None:
        result = await self.db.execute(
            select(ServiceRequest)
            .where(ServiceRequest.payment_intent_id == payment_intent_id)
            .order_by(ServiceRequest.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def mark_paid(self, request_id: UUID, payment_intent_id: str) -> ServiceRequest:
        """Record a confirmed payment and route the request onwards.

        Calling this again with the same payment intent is a no-op.
        """
        if not payment_intent_id:
            raise ValidationError("paymentIntentId is required")

        service_request = await self.get_request(request_id)

        if service_request.status != RequestStatus.PENDING_PAYMENT:
            # operators may only cancel from pending_payment, so any other
            # status carrying this intent means the payment was applied
            if (
                service_request.payment_intent_id == payment_intent_id
                and service_request.status != RequestStatus.CANCELLED
            ):
                logger.info(
                    f"Payment {payment_intent_id} already applied to request {request_id}"
                )
                return service_request
            raise ValidationError(
                f"Service request {request_id} is not awaiting payment "
                f"(status: {service_request.status.value})"
            )

        if (
            service_request.payment_intent_id
            and service_request.payment_intent_id != payment_intent_id
        ):
            raise ValidationError(
                f"Service request {request_id} is linked to a different payment"
            )

        service_request.payment_intent_id = payment_intent_id
        service_request.status = post_payment_status(service_request.service_id)
        await self._flush("mark service request paid")

        logger.info(
            f"Request {request_id} paid via {payment_intent_id}, "
            f"now {service_request.status.value}"
        )
        return service_request

    async def set_status(self, request_id: UUID, status: RequestStatus) -> ServiceRequest:
        """Operator status change, checked against the allow-list"""
        service_request = await self.get_request(request_id)
        self._check_operator_transition(service_request, status)

        old_status = service_request.status
        service_request.status = status
        await self._flush("update service request status")

        logger.info(f"Request {request_id} status changed: {old_status.value} -> {status.value}")
        return service_request

    async def attach_response(
        self,
        request_id: UUID,
        text: str,
        new_status: RequestStatus | None = None,
    ) -> ServiceRequest:
        """Set the operator response, its timestamp and the new status together"""
        if not text or not text.strip():
            raise ValidationError("Response text is required")

        target = new_status or RequestStatus.RESPONDED
        service_request = await self.get_request(request_id)
        self._check_operator_transition(service_request, target)

        service_request.admin_response = text.strip()
        service_request.admin_responded_at = datetime.now(timezone.utc)
        service_request.status = target
        await self._flush("attach operator response")

        logger.info(f"Operator responded to request {request_id} ({target.value})")
        return service_request

    async def list_for_user(
        self, user_id: str, skip: int = 0, limit: int = 100
    ) -> list[ServiceRequest]:
        """List a user's requests, newest first"""
        result = await self.db.execute(
            select(ServiceRequest)
            .where(ServiceRequest.user_id == user_id)
            .order_by(ServiceRequest.created_at.desc())
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_for_admin(
        self,
        status_filter: RequestStatus | None = None,
        skip: int = 0,
        limit: int = 100,
    ) -> tuple[list[tuple[ServiceRequest, UserProfile | None]], int]:
        """List all requests joined with the requester's profile"""
        base_query = select(ServiceRequest, UserProfile).outerjoin(
            UserProfile, UserProfile.id == ServiceRequest.user_id
        )
        count_query = select(func.count(ServiceRequest.id))

        if status_filter is not None:
            base_query = base_query.where(ServiceRequest.status == status_filter)
            count_query = count_query.where(ServiceRequest.status == status_filter)

        count_result = await self.db.execute(count_query)
        total = count_result.scalar() or 0

        rows_result = await self.db.execute(
            base_query.order_by(ServiceRequest.created_at.desc()).offset(skip).limit(limit)
        )
        rows = [(row[0], row[1]) for row in rows_result.all()]
        return rows, total

    async def count_by_status(self) -> dict[str, int]:
        result = await self.db.execute(
            select(ServiceRequest.status, func.count(ServiceRequest.id))
            .group_by(ServiceRequest.status)
        )
        counts = {status.value: 0 for status in RequestStatus}
        for status, count in result.all():
            counts[RequestStatus(status).value] = count
        return counts

    def _check_operator_transition(
        self, service_request: ServiceRequest, target: RequestStatus
    ) -> None:
        if not can_operator_transition(service_request.status, target):
            raise ValidationError(
                f"Cannot change status from {service_request.status.value} to {target.value}"
            )

    async def _flush(self, action: str) -> None:
        try:
            await self.db.flush()
        except SQLAlchemyError as e:
            logger.error(f"Failed to {action}: {e}")
            raise PersistenceError(f"Failed to {action}") from e
