"""Database models for the Curbside service portal"""

import enum
import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    text,
)
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from curbside.db.database import Base

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class TimestampMixin:
    """Mixin for adding timestamp columns to models"""
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False
    )


class RequestStatus(str, enum.Enum):
    """Service request lifecycle status"""
    PENDING = "pending"
    PENDING_PAYMENT = "pending_payment"
    PAID = "paid"
    SUBMITTED = "submitted"
    INVESTIGATING = "investigating"
    IN_PROGRESS = "in_progress"
    SCHEDULED = "scheduled"
    RESPONDED = "responded"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ConversationStatus(str, enum.Enum):
    """Chat conversation status"""
    ACTIVE = "active"
    CLOSED = "closed"


class SenderType(str, enum.Enum):
    """Who authored a chat message"""
    USER = "user"
    ADMIN = "admin"


class PaymentRecordStatus(str, enum.Enum):
    """Local view of a payment intent"""
    CREATED = "created"
    SUCCEEDED = "succeeded"
    CANCELLED = "cancelled"
    ORPHANED = "orphaned"
    REFUNDED = "refunded"
    FAILED = "failed"


class UserProfile(Base):
    """Minimal profile of an identity-provider user"""
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    first_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    service_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False
    )


class ServiceRequest(Base, TimestampMixin):
    """A submitted service request; transitioned, never deleted"""
    __tablename__ = "service_requests"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    # Identity is external, so no foreign key to users
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    service_type: Mapped[str] = mapped_column(String(255), nullable=False)
    service_id: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[RequestStatus] = mapped_column(
        SQLEnum(RequestStatus, values_callable=enum_values, native_enum=False, length=32),
        default=RequestStatus.PENDING,
        nullable=False
    )
    form_data: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict, nullable=False)
    amount: Mapped[int | None] = mapped_column(Integer, nullable=True)
    payment_intent_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Operator response
    admin_response: Mapped[str | None] = mapped_column(Text, nullable=True)
    admin_responded_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )

    __table_args__ = (
        Index("idx_service_request_user", "user_id"),
        Index("idx_service_request_status", "status"),
        Index("idx_service_request_payment_intent", "payment_intent_id"),
        Index("idx_service_request_created", "created_at"),
    )


class SavedAddress(Base, TimestampMixin):
    """A user's saved service address"""
    __tablename__ = "saved_addresses"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    street: Mapped[str] = mapped_column(String(255), nullable=False)
    apt: Mapped[str | None] = mapped_column(String(64), nullable=True)
    city: Mapped[str] = mapped_column(String(100), nullable=False)
    state: Mapped[str] = mapped_column(String(32), default="GA", nullable=False)
    zip: Mapped[str] = mapped_column(String(10), nullable=False)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    __table_args__ = (
        Index("idx_saved_address_user", "user_id"),
    )


class ChatConversation(Base, TimestampMixin):
    """Support conversation between a visitor and operators"""
    __tablename__ = "chat_conversations"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    visitor_id: Mapped[str] = mapped_column(String(128), nullable=False)
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    visitor_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    visitor_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[ConversationStatus] = mapped_column(
        SQLEnum(ConversationStatus, values_callable=enum_values, native_enum=False, length=16),
        default=ConversationStatus.ACTIVE,
        nullable=False
    )

    # Relationships
    messages = relationship(
        "ChatMessage",
        back_populates="conversation",
        order_by="ChatMessage.created_at",
    )

    __table_args__ = (
        Index("idx_conversation_visitor_status", "visitor_id", "status"),
        Index("idx_conversation_updated", "updated_at"),
        # at most one active conversation per visitor
        Index(
            "uq_conversation_active_visitor",
            "visitor_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )


class ChatMessage(Base):
    """Append-only chat message"""
    __tablename__ = "chat_messages"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    conversation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("chat_conversations.id", ondelete="CASCADE"),
        nullable=False
    )
    sender_id: Mapped[str] = mapped_column(String(128), nullable=False)
    sender_type: Mapped[SenderType] = mapped_column(
        SQLEnum(SenderType, values_callable=enum_values, native_enum=False, length=16),
        nullable=False
    )
    message: Mapped[str] = mapped_column(Text, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False
    )

    # Relationships
    conversation = relationship("ChatConversation", back_populates="messages")

    __table_args__ = (
        Index("idx_chat_message_conversation_created", "conversation_id", "created_at"),
        Index("idx_chat_message_unread", "conversation_id", "sender_type", "is_read"),
    )


class PaymentRecord(Base, TimestampMixin):
    """Local ledger row for a Payment Processor intent"""
    __tablename__ = "payment_records"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    payment_intent_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="usd", nullable=False)
    service_id: Mapped[str] = mapped_column(String(100), nullable=False)
    service_type: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[PaymentRecordStatus] = mapped_column(
        SQLEnum(PaymentRecordStatus, values_callable=enum_values, native_enum=False, length=16),
        default=PaymentRecordStatus.CREATED,
        nullable=False
    )
    service_request_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("service_requests.id", ondelete="SET NULL"),
        nullable=True
    )
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    extra_metadata: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict, nullable=False)

    __table_args__ = (
        Index("idx_payment_record_status", "status"),
        Index("idx_payment_record_request", "service_request_id"),
    )
