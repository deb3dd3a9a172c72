"""Tests for the service request lifecycle"""

from uuid import uuid4

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from curbside.db.models import RequestStatus
from curbside.schemas.requests import ServiceRequestCreate
from curbside.services.errors import NotFoundError, ValidationError
from curbside.services.requests import (
    ServiceRequestService,
    can_operator_transition,
    initial_status,
    post_payment_status,
)


class TestLifecycleRules:
    """Pure status rules"""

    def test_initial_status_depends_on_amount(self):
        assert initial_status(None) == RequestStatus.SUBMITTED
        assert initial_status(0) == RequestStatus.SUBMITTED
        assert initial_status(2500) == RequestStatus.PENDING_PAYMENT

    def test_post_payment_routing(self):
        assert post_payment_status("residential-roll-off") == RequestStatus.PAID
        assert post_payment_status("residential-roll-cart") == RequestStatus.INVESTIGATING
        assert post_payment_status("some-other-roll-cart") == RequestStatus.INVESTIGATING
        assert post_payment_status("residential-bulk-pickup") == RequestStatus.SUBMITTED

    def test_operator_allow_list(self):
        assert can_operator_transition(RequestStatus.SUBMITTED, RequestStatus.IN_PROGRESS)
        assert can_operator_transition(RequestStatus.PAID, RequestStatus.SCHEDULED)
        assert can_operator_transition(RequestStatus.PENDING_PAYMENT, RequestStatus.CANCELLED)
        assert not can_operator_transition(RequestStatus.PENDING_PAYMENT, RequestStatus.SCHEDULED)
        assert not can_operator_transition(RequestStatus.SUBMITTED, RequestStatus.PAID)
        assert not can_operator_transition(RequestStatus.COMPLETED, RequestStatus.IN_PROGRESS)
        assert not can_operator_transition(RequestStatus.CANCELLED, RequestStatus.RESPONDED)


class TestServiceRequestService:
    """Service layer behaviour against the database"""

    @pytest.mark.asyncio
    async def test_free_request_is_submitted(self, test_db: AsyncSession):
        """A request without a price skips payment entirely"""
        service = ServiceRequestService(test_db)
        service_request = await service.create_request(
            ServiceRequestCreate(
                service_type="residential",
                service_id="residential-bulk-pickup",
                form_data={"items": "sofa"},
            ),
            user_id="user_alice",
        )

        assert service_request.status == RequestStatus.SUBMITTED
        assert service_request.amount is None
        assert service_request.form_data == {"items": "sofa"}

    @pytest.mark.asyncio
    async def test_blank_service_id_rejected(self, test_db: AsyncSession):
        service = ServiceRequestService(test_db)
        with pytest.raises(ValidationError):
            await service.create_request(
                ServiceRequestCreate(service_type="residential", service_id="  ")
            )

    @pytest.mark.asyncio
    async def test_mark_paid_is_idempotent(self, test_db: AsyncSession):
        """Re-applying the same payment leaves the request unchanged"""
        service = ServiceRequestService(test_db)
        service_request = await service.create_request(
            ServiceRequestCreate(
                service_type="residential",
                service_id="residential-roll-off",
                amount=22600,
                payment_intent_id="pi_test_1",
            )
        )
        assert service_request.status == RequestStatus.PENDING_PAYMENT

        paid = await service.mark_paid(service_request.id, "pi_test_1")
        assert paid.status == RequestStatus.PAID

        again = await service.mark_paid(service_request.id, "pi_test_1")
        assert again.status == RequestStatus.PAID

        with pytest.raises(ValidationError):
            await service.mark_paid(service_request.id, "pi_other")

    @pytest.mark.asyncio
    async def test_mark_paid_rejects_free_request(self, test_db: AsyncSession):
        service = ServiceRequestService(test_db)
        service_request = await service.create_request(
            ServiceRequestCreate(service_type="residential", service_id="residential-trash")
        )
        with pytest.raises(ValidationError):
            await service.mark_paid(service_request.id, "pi_test_2")

    @pytest.mark.asyncio
    async def test_attach_response_sets_all_fields(self, test_db: AsyncSession):
        """Response text, timestamp and status change together"""
        service = ServiceRequestService(test_db)
        service_request = await service.create_request(
            ServiceRequestCreate(service_type="residential", service_id="residential-trash")
        )

        updated = await service.attach_response(
            service_request.id, "Crew is on the way", RequestStatus.RESPONDED
        )

        assert updated.admin_response == "Crew is on the way"
        assert updated.admin_responded_at is not None
        assert updated.status == RequestStatus.RESPONDED

    @pytest.mark.asyncio
    async def test_unknown_request_not_found(self, test_db: AsyncSession):
        service = ServiceRequestService(test_db)
        with pytest.raises(NotFoundError):
            await service.set_status(uuid4(), RequestStatus.COMPLETED)


class TestServiceRequestEndpoints:
    """HTTP surface for requesters"""

    @pytest.mark.asyncio
    async def test_create_and_list_own_requests(self, client: AsyncClient, user_headers):
        response = await client.post(
            "/api/service-requests",
            json={
                "serviceType": "residential",
                "serviceId": "residential-bulk-pickup",
                "formData": {"items": "mattress"},
            },
            headers=user_headers,
        )
        assert response.status_code == 201
        created = response.json()
        assert created["status"] == "submitted"
        assert created["userId"] == "user_alice"
        assert created["formData"] == {"items": "mattress"}

        # another user's request must not show up
        await client.post(
            "/api/service-requests",
            json={"serviceType": "residential", "serviceId": "residential-trash"},
            headers={"X-User-Id": "user_bob"},
        )

        response = await client.get("/api/service-requests", headers=user_headers)
        assert response.status_code == 200
        data = response.json()
        assert [item["id"] for item in data] == [created["id"]]

        response = await client.get(f"/api/service-requests/{created['id']}", headers=user_headers)
        assert response.status_code == 200

        response = await client.get(
            f"/api/service-requests/{created['id']}", headers={"X-User-Id": "user_bob"}
        )
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    @pytest.mark.asyncio
    async def test_list_requires_identity(self, client: AsyncClient):
        response = await client.get("/api/service-requests")
        assert response.status_code == 401
        assert response.json()["error"] == "auth_error"

    @pytest.mark.asyncio
    async def test_invalid_body_is_validation_error(self, client: AsyncClient, user_headers):
        response = await client.post(
            "/api/service-requests",
            json={"serviceType": "residential", "serviceId": "residential-trash", "amount": -5},
            headers=user_headers,
        )
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "validation_error"
        assert "amount" in body["message"]

    @pytest.mark.asyncio
    async def test_priced_request_with_unknown_intent_rejected(
        self, client: AsyncClient, user_headers
    ):
        response = await client.post(
            "/api/service-requests",
            json={
                "serviceType": "residential",
                "serviceId": "residential-roll-off",
                "amount": 22600,
                "paymentIntentId": "pi_does_not_exist",
            },
            headers=user_headers,
        )
        assert response.status_code == 400

        response = await client.get("/api/service-requests", headers=user_headers)
        assert response.json() == []


class TestQuickServiceRequests:
    """Anonymous quick-service variant"""

    @pytest.mark.asyncio
    async def test_missed_collection(self, client: AsyncClient):
        response = await client.post(
            "/api/quick-service-requests",
            json={"type": "missed-collection", "subType": "recycling", "address": "123 Main St"},
        )
        assert response.status_code == 201
        data = response.json()
        assert data["serviceType"] == "Quick Service - Missed Collection"
        assert data["amount"] == 0
        assert data["status"] == "submitted"
        assert data["userId"] is None
        assert data["formData"] == {"subType": "recycling", "address": "123 Main St"}

    @pytest.mark.asyncio
    async def test_informational_types_start_pending(self, client: AsyncClient):
        response = await client.post(
            "/api/quick-service-requests",
            json={"type": "service-day-inquiry", "address": "77 Oak Ave"},
        )
        assert response.status_code == 201
        assert response.json()["status"] == "pending"

    @pytest.mark.asyncio
    async def test_supervisor_callback_requires_number(self, client: AsyncClient):
        response = await client.post(
            "/api/quick-service-requests",
            json={"type": "supervisor-callback", "problemDescription": "Missed three weeks"},
        )
        assert response.status_code == 400
        assert "callbackNumber" in response.json()["message"]

    @pytest.mark.asyncio
    async def test_unknown_type_rejected(self, client: AsyncClient):
        response = await client.post(
            "/api/quick-service-requests",
            json={"type": "free-pizza", "address": "1 Elm St"},
        )
        assert response.status_code == 400
