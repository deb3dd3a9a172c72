"""Operator-side coordination over requests, chat and payments"""

import logging
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from curbside.db.models import (
    ChatConversation,
    ConversationStatus,
    PaymentRecord,
    RequestStatus,
    SenderType,
    ServiceRequest,
    UserProfile,
    utcnow,
)
from curbside.services.chat import ChatService
from curbside.services.errors import ValidationError
from curbside.services.payments import PaymentService
from curbside.services.requests import ServiceRequestService

logger = logging.getLogger(__name__)


def parse_status_filter(raw: str | None) -> RequestStatus | None:
    """`None`, empty and `all` mean no filter"""
    if raw is None or raw.strip() in ("", "all"):
        return None
    try:
        return RequestStatus(raw.strip())
    except ValueError:
        raise ValidationError(f"Unknown status filter: {raw}")


class AdminService:
    """No state of its own; delegates to the request, chat and payment services"""

    def __init__(self, db: AsyncSession, payment_service: PaymentService | None = None):
        self.db = db
        self.requests = ServiceRequestService(db)
        self.chat = ChatService(db)
        self._payment_service = payment_service

    @property
    def payments(self) -> PaymentService:
        if self._payment_service is None:
            self._payment_service = PaymentService(self.db)
        return self._payment_service

    async def list_requests(
        self, status_filter: str | None = None, skip: int = 0, limit: int = 100
    ) -> tuple[list[tuple[ServiceRequest, UserProfile | None]], int]:
        return await self.requests.list_for_admin(parse_status_filter(status_filter), skip, limit)

    async def respond(
        self, request_id: UUID, text: str, new_status: RequestStatus | None = None
    ) -> ServiceRequest:
        return await self.requests.attach_response(request_id, text, new_status)

    async def set_status(self, request_id: UUID, status: RequestStatus) -> ServiceRequest:
        return await self.requests.set_status(request_id, status)

    async def list_conversations(self, status: ConversationStatus | None = None) -> list[dict[str, Any]]:
        return await self.chat.list_conversations(status)

    async def mark_conversation_read(self, conversation_id: UUID) -> int:
        return await self.chat.mark_read(conversation_id, SenderType.ADMIN)

    async def close_conversation(self, conversation_id: UUID) -> ChatConversation:
        return await self.chat.close_conversation(conversation_id)

    async def orphaned_payments(self) -> list[PaymentRecord]:
        return await self.payments.list_orphaned()

    async def dashboard_stats(self) -> dict[str, Any]:
        """Counters for the operator dashboard"""
        by_status = await self.requests.count_by_status()
        active_conversations, unread_messages = await self.chat.count_active_and_unread()
        orphaned = await self.payments.list_orphaned()

        return {
            "timestamp": utcnow().isoformat(),
            "requests": {
                "total": sum(by_status.values()),
                "by_status": by_status,
            },
            "chat": {
                "active_conversations": active_conversations,
                "unread_messages": unread_messages,
            },
            "payments": {
                "orphaned_count": len(orphaned),
                "orphaned_amount": sum(record.amount for record in orphaned),
            },
        }
