#!/usr/bin/env python3
"""Seed data script for a development database"""

import asyncio
from datetime import datetime, timedelta, timezone

from curbside.db.database import create_schema, engine, session_scope
from curbside.db.models import (
    ChatConversation,
    ChatMessage,
    ConversationStatus,
    RequestStatus,
    SavedAddress,
    SenderType,
    ServiceRequest,
    UserProfile,
)

SAMPLE_USERS = [
    {
        "id": "user_alice",
        "email": "alice@example.com",
        "first_name": "Alice",
        "last_name": "Johnson",
        "phone": "+14045550101",
        "addresses": [
            {"street": "123 Main St", "city": "Decatur", "zip": "30030", "is_default": True},
            {"street": "77 Oak Ave", "apt": "2B", "city": "Decatur", "zip": "30033"},
        ],
    },
    {
        "id": "user_bob",
        "email": "bob@example.com",
        "first_name": "Bob",
        "last_name": "Smith",
        "phone": "+14045550102",
        "addresses": [
            {"street": "4500 Memorial Dr", "city": "Stone Mountain", "zip": "30083", "is_default": True},
        ],
    },
]

SAMPLE_REQUESTS = [
    {
        "user_id": "user_alice",
        "service_type": "residential",
        "service_id": "residential-roll-off",
        "amount": 22600,
        "status": RequestStatus.PAID,
        "payment_intent_id": "pi_sim_seed0001",
        "form_data": {
            "selectedOption": {"name": "10 Yard Container", "price": 22600},
            "address": {"street": "123 Main St", "city": "Decatur", "state": "GA", "zip": "30030"},
            "rentalDays": 14,
        },
    },
    {
        "user_id": "user_bob",
        "service_type": "residential",
        "service_id": "residential-roll-cart",
        "amount": None,
        "status": RequestStatus.INVESTIGATING,
        "form_data": {
            "reason": "damaged-cart",
            "description": "Lid snapped off during collection",
            "photo": "uploads/seed/damaged-cart.jpg",
        },
    },
    {
        "user_id": None,
        "service_type": "Quick Service - Missed Collection",
        "service_id": "quick-missed-collection",
        "amount": 0,
        "status": RequestStatus.SUBMITTED,
        "form_data": {"subType": "recycling", "address": "4500 Memorial Dr"},
    },
]

SAMPLE_CHATS = [
    {
        "visitor_id": "visitor_1700000000000_seed01",
        "visitor_name": "Alice Johnson",
        "visitor_email": "alice@example.com",
        "user_id": "user_alice",
        "messages": [
            (SenderType.USER, "Hi, when will my roll-off be delivered?"),
            (SenderType.ADMIN, "We are scheduling it now; expect a call tomorrow."),
            (SenderType.USER, "Thanks!"),
        ],
    },
]


async def seed_database():
    """Populate users, addresses, requests and a chat"""
    await create_schema()

    print("Starting database seeding...")
    async with session_scope() as session:
        for user_data in SAMPLE_USERS:
            addresses = user_data.pop("addresses")
            session.add(UserProfile(**user_data))
            for address in addresses:
                session.add(SavedAddress(user_id=user_data["id"], **address))
        await session.flush()

        for request_data in SAMPLE_REQUESTS:
            session.add(ServiceRequest(**request_data))
        await session.flush()

        started = datetime.now(timezone.utc) - timedelta(hours=1)
        for chat_data in SAMPLE_CHATS:
            messages = chat_data.pop("messages")
            conversation = ChatConversation(status=ConversationStatus.ACTIVE, **chat_data)
            session.add(conversation)
            await session.flush()
            for offset, (sender_type, text) in enumerate(messages):
                session.add(ChatMessage(
                    conversation_id=conversation.id,
                    sender_id=chat_data["visitor_id"] if sender_type == SenderType.USER else "admin",
                    sender_type=sender_type,
                    message=text,
                    is_read=sender_type == SenderType.ADMIN,
                    created_at=started + timedelta(minutes=offset),
                ))

    print("Database seeded successfully!")
    print(f"  - {len(SAMPLE_USERS)} users")
    print(f"  - {len(SAMPLE_REQUESTS)} service requests")
    print(f"  - {len(SAMPLE_CHATS)} conversations")


async def main():
    try:
        await seed_database()
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
