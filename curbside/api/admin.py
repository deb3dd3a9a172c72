"""Operator API endpoints for requests, chat and payment reports"""

import logging
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from curbside.api.dependencies import require_admin
from curbside.api.websockets import notify_conversation_changed, notify_request_updated
from curbside.db.database import get_db
from curbside.db.models import ConversationStatus
from curbside.schemas.chat import (
    AdminConversationListResponse,
    AdminConversationResponse,
    ConversationResponse,
    LastMessagePreview,
    MarkReadResponse,
)
from curbside.schemas.payments import OrphanedPaymentListResponse, PaymentRecordResponse
from curbside.schemas.requests import (
    AdminRequestListResponse,
    AdminServiceRequestResponse,
    RequesterProfile,
    RespondRequest,
    ServiceRequestResponse,
    StatusUpdateRequest,
)
from curbside.services.admin import AdminService
from curbside.services.errors import PortalError

logger = logging.getLogger(__name__)
router = APIRouter(dependencies=[Depends(require_admin)])


def get_admin_service(db: AsyncSession = Depends(get_db)) -> AdminService:
    return AdminService(db)


async def _commit_or_rollback(db: AsyncSession, action: str) -> None:
    try:
        await db.commit()
    except Exception as e:
        await db.rollback()
        logger.error(f"Error committing {action}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to {action}",
        )


@router.get("/requests", response_model=AdminRequestListResponse)
async def list_requests(
    status_filter: str | None = Query(None, alias="status", description="Status or 'all'"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    admin_service: AdminService = Depends(get_admin_service),
) -> AdminRequestListResponse:
    """All requests, newest first, with the requester's profile when known"""
    rows, total = await admin_service.list_requests(status_filter, skip, limit)

    requests = []
    for service_request, profile in rows:
        item = AdminServiceRequestResponse.model_validate(service_request)
        if profile is not None:
            item.user = RequesterProfile.model_validate(profile)
        requests.append(item)

    return AdminRequestListResponse(requests=requests, total=total, skip=skip, limit=limit)


@router.patch("/requests/{request_id}/status", response_model=ServiceRequestResponse)
async def update_request_status(
    request_id: UUID,
    update_data: StatusUpdateRequest,
    admin_service: AdminService = Depends(get_admin_service),
) -> ServiceRequestResponse:
    db = admin_service.db
    try:
        service_request = await admin_service.set_status(request_id, update_data.status)
    except PortalError:
        await db.rollback()
        raise
    await _commit_or_rollback(db, "update request status")

    await notify_request_updated(str(service_request.id), service_request.status.value)
    return ServiceRequestResponse.model_validate(service_request)


@router.post("/requests/{request_id}/respond", response_model=ServiceRequestResponse)
async def respond_to_request(
    request_id: UUID,
    respond_data: RespondRequest,
    admin_service: AdminService = Depends(get_admin_service),
) -> ServiceRequestResponse:
    """Attach an operator response; status defaults to responded"""
    db = admin_service.db
    try:
        service_request = await admin_service.respond(
            request_id, respond_data.response, respond_data.new_status
        )
    except PortalError:
        await db.rollback()
        raise
    await _commit_or_rollback(db, "respond to request")

    await notify_request_updated(str(service_request.id), service_request.status.value)
    return ServiceRequestResponse.model_validate(service_request)


@router.get("/conversations", response_model=AdminConversationListResponse)
async def list_conversations(
    conversation_status: ConversationStatus | None = Query(None, alias="status"),
    admin_service: AdminService = Depends(get_admin_service),
) -> AdminConversationListResponse:
    """Conversations with last message and unread count, most recently updated first"""
    entries = await admin_service.list_conversations(conversation_status)

    conversations = []
    for entry in entries:
        item = AdminConversationResponse.model_validate(entry["conversation"])
        if entry["last_message"] is not None:
            item.last_message = LastMessagePreview(**entry["last_message"])
        item.unread_count = entry["unread_count"]
        conversations.append(item)

    return AdminConversationListResponse(conversations=conversations)


@router.post("/conversations/{conversation_id}/read", response_model=MarkReadResponse)
async def mark_conversation_read(
    conversation_id: UUID,
    admin_service: AdminService = Depends(get_admin_service),
) -> MarkReadResponse:
    db = admin_service.db
    try:
        marked = await admin_service.mark_conversation_read(conversation_id)
    except PortalError:
        await db.rollback()
        raise
    await _commit_or_rollback(db, "mark conversation read")

    return MarkReadResponse(conversation_id=conversation_id, marked=marked)


@router.patch("/conversations/{conversation_id}/close", response_model=ConversationResponse)
async def close_conversation(
    conversation_id: UUID,
    admin_service: AdminService = Depends(get_admin_service),
) -> ConversationResponse:
    db = admin_service.db
    try:
        conversation = await admin_service.close_conversation(conversation_id)
    except PortalError:
        await db.rollback()
        raise
    await _commit_or_rollback(db, "close conversation")

    await notify_conversation_changed(str(conversation.id), conversation.status.value)
    return ConversationResponse.model_validate(conversation)


@router.get("/orphaned-payments", response_model=OrphanedPaymentListResponse)
async def list_orphaned_payments(
    admin_service: AdminService = Depends(get_admin_service),
) -> OrphanedPaymentListResponse:
    """Charges that never produced a service request"""
    records = await admin_service.orphaned_payments()
    return OrphanedPaymentListResponse(
        payments=[PaymentRecordResponse.model_validate(record) for record in records],
        total_amount=sum(record.amount for record in records),
    )


@router.get("/stats")
async def get_dashboard_stats(
    admin_service: AdminService = Depends(get_admin_service),
) -> dict[str, Any]:
    return await admin_service.dashboard_stats()
