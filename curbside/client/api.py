"""Async HTTP client for the portal API"""

import logging
from datetime import datetime
from typing import Any

import httpx

from curbside.config import settings
from curbside.workflows.errors import SubmissionError

logger = logging.getLogger(__name__)

# 4xx responses a user can sensibly retry
RETRYABLE_CLIENT_STATUSES = {402, 408, 409, 429}


class PortalClient:
    """Talks to the portal API on behalf of one user or visitor.

    Implements the submission gateway used by the multi-step flows, plus the
    address book, chat and operator calls. Every failure is raised as a
    `SubmissionError`; nothing is retried here.
    """

    def __init__(
        self,
        base_url: str,
        user_id: str | None = None,
        admin_key: str | None = None,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        headers = {"Accept": "application/json"}
        if user_id:
            headers[settings.identity_header] = user_id
        if admin_key:
            headers[settings.admin_key_header] = admin_key
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "PortalClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning(f"{method} {path} timed out")
            raise SubmissionError("The server took too long to respond", retryable=True) from e
        except httpx.TransportError as e:
            logger.warning(f"{method} {path} failed: {e}")
            raise SubmissionError("Could not reach the server", retryable=True) from e

        if response.is_error:
            try:
                body = response.json()
                message = body.get("message") or body.get("detail") or response.reason_phrase
            except ValueError:
                message = response.text or response.reason_phrase
            logger.warning(f"{method} {path} returned {response.status_code}: {message}")
            raise SubmissionError(
                message,
                retryable=(
                    response.status_code >= 500
                    or response.status_code in RETRYABLE_CLIENT_STATUSES
                ),
                status_code=response.status_code,
            )

        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    # Submission gateway

    async def create_payment_intent(
        self, amount: int, service_id: str, service_type: str
    ) -> dict[str, Any]:
        return await self._request(
            "POST",
            "/api/create-payment-intent",
            json={"amount": amount, "serviceId": service_id, "serviceType": service_type},
        )

    async def create_service_request(
        self,
        service_type: str,
        service_id: str,
        form_data: dict[str, Any],
        amount: int | None = None,
        payment_intent_id: str | None = None,
    ) -> dict[str, Any]:
        payload = {
            "serviceType": service_type,
            "serviceId": service_id,
            "formData": form_data,
            "amount": amount,
        }
        if payment_intent_id:
            payload["paymentIntentId"] = payment_intent_id
        return await self._request("POST", "/api/service-requests", json=payload)

    async def confirm_payment(self, payment_intent_id: str) -> dict[str, Any]:
        return await self._request(
            "POST", "/api/confirm-payment", json={"paymentIntentId": payment_intent_id}
        )

    async def cancel_payment_intent(
        self, payment_intent_id: str, reason: str | None = None
    ) -> dict[str, Any]:
        return await self._request(
            "POST",
            "/api/cancel-payment-intent",
            json={"paymentIntentId": payment_intent_id, "reason": reason},
        )

    # Requests and addresses

    async def create_quick_service_request(self, payload: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", "/api/quick-service-requests", json=payload)

    async def list_my_requests(self) -> list[dict[str, Any]]:
        return await self._request("GET", "/api/service-requests")

    async def get_catalog(self) -> list[dict[str, Any]]:
        return await self._request("GET", "/api/catalog")

    async def list_addresses(self) -> list[dict[str, Any]]:
        return await self._request("GET", "/api/addresses")

    async def create_address(self, address: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", "/api/addresses", json=address)

    async def delete_address(self, address_id: str) -> None:
        await self._request("DELETE", f"/api/addresses/{address_id}")

    # Chat

    async def open_conversation(
        self,
        visitor_id: str,
        visitor_name: str | None = None,
        visitor_email: str | None = None,
    ) -> dict[str, Any]:
        body = await self._request(
            "POST",
            "/api/chat/conversations",
            json={
                "visitorId": visitor_id,
                "visitorName": visitor_name,
                "visitorEmail": visitor_email,
            },
        )
        return body["conversation"]

    async def list_messages(
        self,
        conversation_id: str,
        after: datetime | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {}
        if after is not None:
            params["after"] = after.isoformat()
        if limit is not None:
            params["limit"] = limit
        body = await self._request(
            "GET", f"/api/chat/conversations/{conversation_id}/messages", params=params
        )
        return body["messages"]

    async def post_message(
        self, conversation_id: str, sender_id: str, sender_type: str, message: str
    ) -> dict[str, Any]:
        body = await self._request(
            "POST",
            "/api/chat/messages",
            json={
                "conversationId": conversation_id,
                "senderId": sender_id,
                "senderType": sender_type,
                "message": message,
            },
        )
        return body["message"]

    # Operator

    async def admin_list_requests(self, status: str | None = None) -> list[dict[str, Any]]:
        params = {"status": status} if status else None
        body = await self._request("GET", "/api/admin/requests", params=params)
        return body["requests"]

    async def admin_respond(
        self, request_id: str, response: str, new_status: str | None = "responded"
    ) -> dict[str, Any]:
        return await self._request(
            "POST",
            f"/api/admin/requests/{request_id}/respond",
            json={"response": response, "newStatus": new_status},
        )

    async def admin_set_status(self, request_id: str, status: str) -> dict[str, Any]:
        return await self._request(
            "PATCH", f"/api/admin/requests/{request_id}/status", json={"status": status}
        )

    async def admin_list_conversations(self) -> list[dict[str, Any]]:
        body = await self._request("GET", "/api/admin/conversations")
        return body["conversations"]

    async def admin_mark_read(self, conversation_id: str) -> dict[str, Any]:
        return await self._request("POST", f"/api/admin/conversations/{conversation_id}/read")

    async def admin_close_conversation(self, conversation_id: str) -> dict[str, Any]:
        return await self._request("PATCH", f"/api/admin/conversations/{conversation_id}/close")
