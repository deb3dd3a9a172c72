"""WebSocket endpoints for live chat and the operator dashboard.

Polling stays the source of truth; these channels only push
notifications so open views can refresh sooner.
"""

import hmac
import json
import logging
from collections import defaultdict
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status
from fastapi.websockets import WebSocketState

from curbside.config import settings

logger = logging.getLogger(__name__)

router = APIRouter()


class ConnectionManager:
    """Tracks WebSocket connections grouped by channel"""

    def __init__(self, name: str):
        self.name = name
        self.channels: dict[str, list[WebSocket]] = defaultdict(list)

    async def connect(self, websocket: WebSocket, channel: str = "all") -> None:
        await websocket.accept()
        self.channels[channel].append(websocket)
        logger.info(
            f"{self.name} WebSocket connected to {channel}. "
            f"Total connections: {self.connection_count()}"
        )

    def disconnect(self, websocket: WebSocket, channel: str = "all") -> None:
        connections = self.channels.get(channel)
        if connections and websocket in connections:
            connections.remove(websocket)
            if not connections:
                del self.channels[channel]
        logger.info(
            f"{self.name} WebSocket disconnected from {channel}. "
            f"Total connections: {self.connection_count()}"
        )

    def connection_count(self) -> int:
        return sum(len(connections) for connections in self.channels.values())

    async def send(self, message: dict[str, Any], channel: str = "all") -> None:
        """Send to every connection on a channel, dropping dead ones.

        Never raises: callers push after their transaction has committed.
        """
        connections = list(self.channels.get(channel, ()))
        if not connections:
            return

        message_json = json.dumps(message, default=str)
        dead = []
        for connection in connections:
            try:
                if connection.client_state == WebSocketState.CONNECTED:
                    await connection.send_text(message_json)
                else:
                    dead.append(connection)
            except Exception as e:
                logger.error(f"Error sending {self.name} WebSocket message: {e}")
                dead.append(connection)

        for connection in dead:
            self.disconnect(connection, channel)


chat_manager = ConnectionManager("Chat")
admin_manager = ConnectionManager("Admin")


async def _serve(websocket: WebSocket, manager: ConnectionManager, channel: str) -> None:
    """Answer pings until the client goes away"""
    await manager.connect(websocket, channel)
    try:
        await websocket.send_text(json.dumps({
            "type": "connection",
            "data": {"status": "connected", "channel": channel},
        }))
        while True:
            data = await websocket.receive_text()
            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                logger.warning(f"Invalid JSON received from WebSocket: {data[:100]}")
                continue
            if isinstance(message, dict) and message.get("type") == "ping":
                await websocket.send_text(json.dumps({
                    "type": "pong",
                    "data": {"timestamp": message.get("timestamp")},
                }))
    except WebSocketDisconnect:
        pass
    finally:
        manager.disconnect(websocket, channel)


@router.websocket("/chat/conversations/{conversation_id}/ws")
async def chat_websocket_endpoint(websocket: WebSocket, conversation_id: str):
    """Live updates for one conversation"""
    await _serve(websocket, chat_manager, conversation_id)


@router.websocket("/admin/ws")
async def admin_websocket_endpoint(websocket: WebSocket):
    """Live updates for the operator dashboard"""
    if settings.admin_api_key:
        supplied = (
            websocket.headers.get(settings.admin_key_header)
            or websocket.query_params.get("key")
            or ""
        )
        if not hmac.compare_digest(supplied, settings.admin_api_key):
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return
    await _serve(websocket, admin_manager, "all")


# Helpers for the HTTP endpoints
async def notify_message_posted(conversation_id: str, message: dict[str, Any]) -> None:
    payload = {"type": "message", "data": {"conversationId": conversation_id, "message": message}}
    await chat_manager.send(payload, conversation_id)
    await admin_manager.send(payload)


async def notify_conversation_changed(conversation_id: str, status_value: str) -> None:
    payload = {
        "type": "conversation_update",
        "data": {"conversationId": conversation_id, "status": status_value},
    }
    await chat_manager.send(payload, conversation_id)
    await admin_manager.send(payload)


async def notify_request_created(request_id: str, service_type: str) -> None:
    await admin_manager.send({
        "type": "request_created",
        "data": {"requestId": request_id, "serviceType": service_type},
    })


async def notify_request_updated(request_id: str, status_value: str) -> None:
    await admin_manager.send({
        "type": "request_update",
        "data": {"requestId": request_id, "status": status_value},
    })
