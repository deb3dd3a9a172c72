"""Visitor-facing chat API endpoints"""

import logging
from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from curbside.api.websockets import notify_conversation_changed, notify_message_posted
from curbside.config import settings
from curbside.db.database import get_db
from curbside.schemas.chat import (
    ConversationEnvelope,
    ConversationOpen,
    ConversationResponse,
    MessageCreate,
    MessageEnvelope,
    MessageListResponse,
    MessageResponse,
)
from curbside.services.chat import ChatService
from curbside.services.errors import PortalError

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/chat/conversations", response_model=ConversationEnvelope)
async def open_conversation(
    open_data: ConversationOpen,
    response: Response,
    db: AsyncSession = Depends(get_db),
) -> ConversationEnvelope:
    """Return the visitor's active conversation, creating one if there is none"""
    try:
        conversation, created = await ChatService(db).open_conversation(open_data)
        await db.commit()
    except PortalError:
        await db.rollback()
        raise
    except Exception as e:
        await db.rollback()
        logger.error(f"Error opening conversation for {open_data.visitor_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to open conversation",
        )

    if created:
        response.status_code = status.HTTP_201_CREATED
        await notify_conversation_changed(str(conversation.id), conversation.status.value)

    return ConversationEnvelope(conversation=ConversationResponse.model_validate(conversation))


@router.get("/chat/conversations/{conversation_id}", response_model=ConversationEnvelope)
async def get_conversation(
    conversation_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> ConversationEnvelope:
    conversation = await ChatService(db).get_conversation(conversation_id)
    return ConversationEnvelope(conversation=ConversationResponse.model_validate(conversation))


@router.get(
    "/chat/conversations/{conversation_id}/messages",
    response_model=MessageListResponse,
)
async def list_messages(
    conversation_id: UUID,
    after: datetime | None = Query(None, description="Only messages created at or after this time"),
    limit: int = Query(settings.chat_default_page_size, ge=1, le=settings.chat_max_page_size),
    db: AsyncSession = Depends(get_db),
) -> MessageListResponse:
    """Messages oldest first"""
    messages, has_more = await ChatService(db).list_messages(conversation_id, after, limit)
    return MessageListResponse(
        messages=[MessageResponse.model_validate(message) for message in messages],
        has_more=has_more,
    )


@router.post("/chat/messages", response_model=MessageEnvelope, status_code=status.HTTP_201_CREATED)
async def post_message(
    message_data: MessageCreate,
    db: AsyncSession = Depends(get_db),
) -> MessageEnvelope:
    try:
        message = await ChatService(db).post_message(
            message_data.conversation_id,
            message_data.sender_id,
            message_data.sender_type,
            message_data.message,
        )
        await db.commit()
    except PortalError:
        await db.rollback()
        raise
    except Exception as e:
        await db.rollback()
        logger.error(f"Error posting message to {message_data.conversation_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to post message",
        )

    message_response = MessageResponse.model_validate(message)
    await notify_message_posted(
        str(message.conversation_id), message_response.model_dump(mode="json", by_alias=True)
    )
    return MessageEnvelope(message=message_response)
