"""Payment API endpoints: intent creation, confirmation and compensation"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from curbside.api.websockets import notify_request_updated
from curbside.db.database import get_db
from curbside.schemas.payments import (
    CancelPaymentRequest,
    ConfirmPaymentRequest,
    ConfirmPaymentResponse,
    PaymentIntentCreate,
    PaymentIntentResponse,
    PaymentRecordResponse,
)
from curbside.schemas.requests import ServiceRequestResponse
from curbside.services.errors import PaymentError, PortalError
from curbside.services.payments import PaymentService

logger = logging.getLogger(__name__)
router = APIRouter()


def get_payment_service(db: AsyncSession = Depends(get_db)) -> PaymentService:
    return PaymentService(db)


@router.post(
    "/create-payment-intent",
    response_model=PaymentIntentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_payment_intent(
    intent_data: PaymentIntentCreate,
    payment_service: PaymentService = Depends(get_payment_service),
) -> PaymentIntentResponse:
    """Start a payment; the client completes it with the returned secret"""
    db = payment_service.db
    try:
        record, client_secret = await payment_service.create_payment_intent(intent_data)
        await db.commit()
    except PortalError:
        await db.rollback()
        raise
    except Exception as e:
        await db.rollback()
        logger.error(f"Error creating payment intent: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create payment intent",
        )

    return PaymentIntentResponse(
        client_secret=client_secret,
        payment_intent_id=record.payment_intent_id,
    )


@router.post("/confirm-payment", response_model=ConfirmPaymentResponse)
async def confirm_payment(
    confirm_data: ConfirmPaymentRequest,
    payment_service: PaymentService = Depends(get_payment_service),
) -> ConfirmPaymentResponse:
    """Confirm a completed charge and advance the linked request"""
    db = payment_service.db
    try:
        record, service_request = await payment_service.confirm_payment(
            confirm_data.payment_intent_id
        )
        await db.commit()
    except PaymentError:
        # keep the recorded failure reason
        await db.commit()
        raise
    except PortalError:
        await db.rollback()
        raise
    except Exception as e:
        await db.rollback()
        logger.error(f"Error confirming payment {confirm_data.payment_intent_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to confirm payment",
        )

    if service_request is not None:
        await notify_request_updated(str(service_request.id), service_request.status.value)

    return ConfirmPaymentResponse(
        payment_intent_id=record.payment_intent_id,
        payment_status=record.status,
        request=(
            ServiceRequestResponse.model_validate(service_request)
            if service_request is not None
            else None
        ),
    )


@router.post("/cancel-payment-intent", response_model=PaymentRecordResponse)
async def cancel_payment_intent(
    cancel_data: CancelPaymentRequest,
    payment_service: PaymentService = Depends(get_payment_service),
) -> PaymentRecordResponse:
    """Release an intent whose service request could not be created"""
    db = payment_service.db
    try:
        record = await payment_service.cancel_payment_intent(
            cancel_data.payment_intent_id, cancel_data.reason
        )
        await db.commit()
    except PortalError:
        await db.rollback()
        raise
    except Exception as e:
        await db.rollback()
        logger.error(f"Error cancelling payment {cancel_data.payment_intent_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to cancel payment intent",
        )

    return PaymentRecordResponse.model_validate(record)
