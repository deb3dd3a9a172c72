"""Service request API endpoints"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from curbside.api.dependencies import get_requester_id, optional_requester_id
from curbside.api.websockets import notify_request_created
from curbside.db.database import get_db
from curbside.schemas.requests import (
    QuickServiceRequestCreate,
    ServiceRequestCreate,
    ServiceRequestResponse,
)
from curbside.services.errors import PortalError
from curbside.services.payments import PaymentService
from curbside.services.requests import ServiceRequestService

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post(
    "/service-requests",
    response_model=ServiceRequestResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_service_request(
    request_data: ServiceRequestCreate,
    user_id: str | None = Depends(optional_requester_id),
    db: AsyncSession = Depends(get_db),
) -> ServiceRequestResponse:
    """Create a service request; priced requests start out awaiting payment"""
    try:
        request_service = ServiceRequestService(db)
        service_request = await request_service.create_request(request_data, user_id)

        if service_request.payment_intent_id:
            payment_service = PaymentService(db)
            await payment_service.link_request(service_request.payment_intent_id, service_request)

        await db.commit()
    except PortalError:
        await db.rollback()
        raise
    except Exception as e:
        await db.rollback()
        logger.error(f"Error creating service request: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create service request",
        )

    await notify_request_created(str(service_request.id), service_request.service_type)
    return ServiceRequestResponse.model_validate(service_request)


@router.get("/service-requests", response_model=list[ServiceRequestResponse])
async def list_my_service_requests(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    user_id: str = Depends(get_requester_id),
    db: AsyncSession = Depends(get_db),
) -> list[ServiceRequestResponse]:
    """List the caller's requests, newest first"""
    request_service = ServiceRequestService(db)
    service_requests = await request_service.list_for_user(user_id, skip, limit)
    return [ServiceRequestResponse.model_validate(item) for item in service_requests]


@router.get("/service-requests/{request_id}", response_model=ServiceRequestResponse)
async def get_my_service_request(
    request_id: UUID,
    user_id: str = Depends(get_requester_id),
    db: AsyncSession = Depends(get_db),
) -> ServiceRequestResponse:
    """Get one of the caller's requests"""
    request_service = ServiceRequestService(db)
    service_request = await request_service.get_request_for_user(request_id, user_id)
    return ServiceRequestResponse.model_validate(service_request)


@router.post(
    "/quick-service-requests",
    response_model=ServiceRequestResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_quick_service_request(
    request_data: QuickServiceRequestCreate,
    db: AsyncSession = Depends(get_db),
) -> ServiceRequestResponse:
    """Anonymous quick-service request (missed collection, callbacks, lookups)"""
    try:
        request_service = ServiceRequestService(db)
        service_request = await request_service.create_quick_request(request_data)
        await db.commit()
    except PortalError:
        await db.rollback()
        raise
    except Exception as e:
        await db.rollback()
        logger.error(f"Error creating quick service request: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create quick service request",
        )

    await notify_request_created(str(service_request.id), service_request.service_type)
    return ServiceRequestResponse.model_validate(service_request)
