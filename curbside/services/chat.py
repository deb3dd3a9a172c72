"""Chat session management: conversations, messages and unread projections"""

import logging
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from sqlalchemy import and_, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from curbside.config import settings
from curbside.db.models import (
    ChatConversation,
    ChatMessage,
    ConversationStatus,
    SenderType,
    utcnow,
)
from curbside.schemas.chat import ConversationOpen
from curbside.services.errors import NotFoundError, PersistenceError, ValidationError

logger = logging.getLogger(__name__)


class ChatService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def open_conversation(
        self, open_data: ConversationOpen
    ) -> tuple[ChatConversation, bool]:
        """Return the visitor's active conversation, creating one if needed.

        Returns the conversation and whether it was newly created.
        """
        existing = await self._get_active_for_visitor(open_data.visitor_id)
        if existing:
            self._fill_profile(existing, open_data)
            await self._flush("update conversation profile")
            return existing, False

        conversation = ChatConversation(
            visitor_id=open_data.visitor_id,
            user_id=open_data.user_id,
            visitor_name=open_data.visitor_name,
            visitor_email=open_data.visitor_email,
            status=ConversationStatus.ACTIVE,
        )

        self.db.add(conversation)
        try:
            await self.db.flush()
        except IntegrityError:
            # a concurrent open won the race for this visitor
            await self.db.rollback()
            existing = await self._get_active_for_visitor(open_data.visitor_id)
            if existing is None:
                raise PersistenceError("Failed to open conversation")
            return existing, False

        logger.info(f"Opened conversation {conversation.id} for visitor {open_data.visitor_id}")
        return conversation, True

    async def get_conversation(self, conversation_id: UUID) -> ChatConversation:
        result = await self.db.execute(
            select(ChatConversation).where(ChatConversation.id == conversation_id)
        )
        conversation = result.scalar_one_or_none()
        if conversation is None:
            raise NotFoundError(f"Conversation {conversation_id} not found")
        return conversation

    async def post_message(
        self,
        conversation_id: UUID,
        sender_id: str,
        sender_type: SenderType,
        text: str,
    ) -> ChatMessage:
        """Append a message and bump the conversation's updated_at"""
        if not text or not text.strip():
            raise ValidationError("Message text is required")
        if not sender_id or not sender_id.strip():
            raise ValidationError("senderId is required")

        conversation = await self.get_conversation(conversation_id)
        if conversation.status == ConversationStatus.CLOSED:
            raise ValidationError("Conversation is closed")

        message = ChatMessage(
            conversation_id=conversation.id,
            sender_id=sender_id,
            sender_type=sender_type,
            message=text.strip(),
            is_read=False,
        )
        self.db.add(message)
        conversation.updated_at = utcnow()
        await self._flush("post message")

        return message

    async def list_messages(
        self,
        conversation_id: UUID,
        after: datetime | None = None,
        limit: int | None = None,
    ) -> tuple[list[ChatMessage], bool]:
        """Messages oldest first, optionally only those at or after a cursor.

        Returns the page and whether more messages follow it.
        """
        await self.get_conversation(conversation_id)

        page_size = min(limit or settings.chat_default_page_size, settings.chat_max_page_size)

        query = select(ChatMessage).where(ChatMessage.conversation_id == conversation_id)
        if after is not None:
            if after.tzinfo is None:
                after = after.replace(tzinfo=timezone.utc)
            # inclusive: a message sharing the cursor timestamp may land after the
            # previous poll; callers drop repeats by id
            query = query.where(ChatMessage.created_at >= after)

        result = await self.db.execute(
            query.order_by(ChatMessage.created_at.asc(), ChatMessage.id.asc()).limit(page_size + 1)
        )
        messages = list(result.scalars().all())
        has_more = len(messages) > page_size
        return messages[:page_size], has_more

    async def mark_read(self, conversation_id: UUID, viewer: SenderType) -> int:
        """Mark the other party's messages read; returns how many flipped"""
        await self.get_conversation(conversation_id)
        other_party = SenderType.USER if viewer == SenderType.ADMIN else SenderType.ADMIN

        try:
            result = await self.db.execute(
                update(ChatMessage)
                .where(
                    ChatMessage.conversation_id == conversation_id,
                    ChatMessage.sender_type == other_party,
                    ChatMessage.is_read.is_(False),
                )
                .values(is_read=True)
                .execution_options(synchronize_session="fetch")
            )
        except SQLAlchemyError as e:
            logger.error(f"Failed to mark conversation {conversation_id} read: {e}")
            raise PersistenceError("Failed to mark messages read") from e

        return result.rowcount or 0

    async def close_conversation(self, conversation_id: UUID) -> ChatConversation:
        """Close a conversation; there is no reopen"""
        conversation = await self.get_conversation(conversation_id)
        if conversation.status != ConversationStatus.CLOSED:
            conversation.status = ConversationStatus.CLOSED
            await self._flush("close conversation")
            logger.info(f"Closed conversation {conversation_id}")
        return conversation

    async def unread_count(self, conversation_id: UUID) -> int:
        result = await self.db.execute(
            select(func.count(ChatMessage.id)).where(
                ChatMessage.conversation_id == conversation_id,
                ChatMessage.sender_type == SenderType.USER,
                ChatMessage.is_read.is_(False),
            )
        )
        return result.scalar() or 0

    async def list_conversations(
        self, status: ConversationStatus | None = None
    ) -> list[dict[str, Any]]:
        """Conversations with last-message and unread projections, computed per call"""
        unread = (
            select(
                ChatMessage.conversation_id.label("conversation_id"),
                func.count(ChatMessage.id).label("unread_count"),
            )
            .where(
                ChatMessage.sender_type == SenderType.USER,
                ChatMessage.is_read.is_(False),
            )
            .group_by(ChatMessage.conversation_id)
            .subquery()
        )
        ranked = select(
            ChatMessage.conversation_id.label("conversation_id"),
            ChatMessage.message.label("message"),
            ChatMessage.sender_type.label("sender_type"),
            ChatMessage.created_at.label("created_at"),
            func.row_number()
            .over(
                partition_by=ChatMessage.conversation_id,
                order_by=ChatMessage.created_at.desc(),
            )
            .label("position"),
        ).subquery()

        query = (
            select(
                ChatConversation,
                unread.c.unread_count,
                ranked.c.message,
                ranked.c.sender_type,
                ranked.c.created_at,
            )
            .outerjoin(unread, unread.c.conversation_id == ChatConversation.id)
            .outerjoin(
                ranked,
                and_(ranked.c.conversation_id == ChatConversation.id, ranked.c.position == 1),
            )
            .order_by(ChatConversation.updated_at.desc())
        )
        if status is not None:
            query = query.where(ChatConversation.status == status)

        result = await self.db.execute(query)

        conversations = []
        for conversation, unread_count, last_text, last_sender, last_at in result.all():
            last_message = None
            if last_text is not None:
                last_message = {
                    "message": last_text,
                    "sender_type": SenderType(last_sender),
                    "created_at": last_at,
                }
            conversations.append({
                "conversation": conversation,
                "last_message": last_message,
                "unread_count": unread_count or 0,
            })
        return conversations

    async def count_active_and_unread(self) -> tuple[int, int]:
        active_result = await self.db.execute(
            select(func.count(ChatConversation.id)).where(
                ChatConversation.status == ConversationStatus.ACTIVE
            )
        )
        unread_result = await self.db.execute(
            select(func.count(ChatMessage.id)).where(
                ChatMessage.sender_type == SenderType.USER,
                ChatMessage.is_read.is_(False),
            )
        )
        return active_result.scalar() or 0, unread_result.scalar() or 0

    async def _get_active_for_visitor(self, visitor_id: str) -> ChatConversation | None:
        result = await self.db.execute(
            select(ChatConversation)
            .where(
                ChatConversation.visitor_id == visitor_id,
                ChatConversation.status == ConversationStatus.ACTIVE,
            )
            .order_by(ChatConversation.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    def _fill_profile(self, conversation: ChatConversation, open_data: ConversationOpen) -> None:
        if open_data.user_id and not conversation.user_id:
            conversation.user_id = open_data.user_id
        if open_data.visitor_name and not conversation.visitor_name:
            conversation.visitor_name = open_data.visitor_name
        if open_data.visitor_email and not conversation.visitor_email:
            conversation.visitor_email = open_data.visitor_email

    async def _flush(self, action: str) -> None:
        try:
            await self.db.flush()
        except SQLAlchemyError as e:
            logger.error(f"Failed to {action}: {e}")
            raise PersistenceError(f"Failed to {action}") from e
