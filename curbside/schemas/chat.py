"""Pydantic schemas for chat API"""

from datetime import datetime
from uuid import UUID

from pydantic import EmailStr, Field

from curbside.db.models import ConversationStatus, SenderType
from curbside.schemas.common import CamelModel


class ConversationOpen(CamelModel):
    visitor_id: str = Field(..., min_length=1, max_length=128)
    user_id: str | None = Field(None, max_length=64)
    visitor_name: str | None = Field(None, max_length=255)
    visitor_email: EmailStr | None = None


class MessageCreate(CamelModel):
    conversation_id: UUID
    sender_id: str = Field(..., min_length=1, max_length=128)
    sender_type: SenderType
    message: str = Field(..., max_length=5000)


class ConversationResponse(CamelModel):
    id: UUID
    visitor_id: str
    user_id: str | None
    visitor_name: str | None
    visitor_email: str | None
    status: ConversationStatus
    created_at: datetime
    updated_at: datetime


class MessageResponse(CamelModel):
    id: UUID
    conversation_id: UUID
    sender_id: str
    sender_type: SenderType
    message: str
    is_read: bool
    created_at: datetime


class ConversationEnvelope(CamelModel):
    conversation: ConversationResponse


class MessageEnvelope(CamelModel):
    message: MessageResponse


class MessageListResponse(CamelModel):
    messages: list[MessageResponse]
    has_more: bool = False


class LastMessagePreview(CamelModel):
    message: str
    sender_type: SenderType
    created_at: datetime


class AdminConversationResponse(ConversationResponse):
    last_message: LastMessagePreview | None = None
    unread_count: int = 0


class AdminConversationListResponse(CamelModel):
    conversations: list[AdminConversationResponse]


class MarkReadResponse(CamelModel):
    conversation_id: UUID
    marked: int
