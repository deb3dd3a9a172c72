"""Tests for the live chat and operator dashboard WebSocket channels"""

from collections.abc import Iterator
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.websockets import WebSocketState
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from starlette.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from curbside.api.websockets import ConnectionManager, notify_request_updated
from curbside.db.database import Base, get_db
from curbside.main import app

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
def ws_client() -> Iterator[TestClient]:
    """Sync client so WebSocket sessions and HTTP calls share one app loop"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_db():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        async with TestSessionLocal() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as tc:
        yield tc
        tc.portal.call(engine.dispose)

    app.dependency_overrides.clear()


def open_conversation(tc: TestClient, visitor_id: str = "visitor_1") -> str:
    response = tc.post("/api/chat/conversations", json={"visitorId": visitor_id})
    assert response.status_code in (200, 201)
    return response.json()["conversation"]["id"]


class TestChatChannel:

    def test_connect_and_ping(self, ws_client: TestClient):
        with ws_client.websocket_connect("/api/chat/conversations/abc/ws") as ws:
            hello = ws.receive_json()
            assert hello == {"type": "connection", "data": {"status": "connected", "channel": "abc"}}

            ws.send_json({"type": "ping", "timestamp": 1760000000})
            assert ws.receive_json() == {"type": "pong", "data": {"timestamp": 1760000000}}

    def test_posted_message_is_pushed(self, ws_client: TestClient):
        conversation_id = open_conversation(ws_client)

        with ws_client.websocket_connect(f"/api/chat/conversations/{conversation_id}/ws") as ws:
            ws.receive_json()

            response = ws_client.post(
                "/api/chat/messages",
                json={
                    "conversationId": conversation_id,
                    "senderId": "visitor_1",
                    "senderType": "user",
                    "message": "My cart was not emptied",
                },
            )
            assert response.status_code == 201

            event = ws.receive_json()
            assert event["type"] == "message"
            assert event["data"]["conversationId"] == conversation_id
            assert event["data"]["message"]["message"] == "My cart was not emptied"

    def test_close_is_pushed(self, ws_client: TestClient):
        conversation_id = open_conversation(ws_client)

        with ws_client.websocket_connect(f"/api/chat/conversations/{conversation_id}/ws") as ws:
            ws.receive_json()

            response = ws_client.patch(f"/api/admin/conversations/{conversation_id}/close")
            assert response.status_code == 200

            event = ws.receive_json()
            assert event == {
                "type": "conversation_update",
                "data": {"conversationId": conversation_id, "status": "closed"},
            }


class TestAdminChannel:

    def test_wrong_key_rejected(self, ws_client: TestClient):
        with patch("curbside.api.websockets.settings.admin_api_key", "operator-secret"):
            with pytest.raises(WebSocketDisconnect) as exc_info:
                with ws_client.websocket_connect("/api/admin/ws?key=nope") as ws:
                    ws.receive_json()
        assert exc_info.value.code == 1008

    def test_key_in_query_accepted(self, ws_client: TestClient):
        with patch("curbside.api.websockets.settings.admin_api_key", "operator-secret"):
            with ws_client.websocket_connect("/api/admin/ws?key=operator-secret") as ws:
                assert ws.receive_json()["data"]["status"] == "connected"

    def test_new_request_is_pushed(self, ws_client: TestClient):
        with ws_client.websocket_connect("/api/admin/ws") as ws:
            ws.receive_json()

            response = ws_client.post(
                "/api/service-requests",
                json={"serviceType": "residential", "serviceId": "residential-trash"},
                headers={"X-User-Id": "user_alice"},
            )
            assert response.status_code == 201

            event = ws.receive_json()
            assert event["type"] == "request_created"
            assert event["data"]["requestId"] == response.json()["id"]


class TestConnectionManager:

    @pytest.mark.asyncio
    async def test_broken_connection_dropped_without_raising(self):
        manager = ConnectionManager("Test")
        broken = MagicMock()
        broken.client_state = WebSocketState.CONNECTED
        broken.send_text = AsyncMock(side_effect=OSError("broken pipe"))
        healthy = MagicMock()
        healthy.client_state = WebSocketState.CONNECTED
        healthy.send_text = AsyncMock()
        manager.channels["all"].extend([broken, healthy])

        await manager.send({"type": "request_update", "data": {}})

        healthy.send_text.assert_awaited_once()
        assert manager.channels["all"] == [healthy]

    @pytest.mark.asyncio
    async def test_push_failure_does_not_reach_caller(self):
        broken = MagicMock()
        broken.client_state = WebSocketState.CONNECTED
        broken.send_text = AsyncMock(side_effect=ValueError("bad frame"))

        with patch("curbside.api.websockets.admin_manager", ConnectionManager("Admin")) as manager:
            manager.channels["all"].append(broken)
            await notify_request_updated("req-1", "paid")

        assert manager.connection_count() == 0
