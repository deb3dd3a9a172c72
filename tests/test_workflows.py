"""Tests for the client-side submission flows"""

import enum
from datetime import date, timedelta
from unittest.mock import AsyncMock

import pytest

from curbside.services.catalog import get_service
from curbside.workflows.additional_resource import AdditionalResourceFlow, ResourceStep
from curbside.workflows.base import FlowStatus, add_business_days, check_exhaustive
from curbside.workflows.errors import (
    FlowClosedError,
    InvalidTransitionError,
    StepValidationError,
    SubmissionError,
)
from curbside.workflows.orchestrator import SubmissionOrchestrator
from curbside.workflows.payment_saga import PaymentSaga, SagaStage
from curbside.workflows.rental_delivery import RentalDeliveryFlow, RentalStep

# A Friday
TODAY = date(2026, 10, 16)

ROLL_CART = get_service("residential-roll-cart")
ROLL_OFF = get_service("residential-roll-off")
TEN_YARD = ROLL_OFF.get_option("10-yard")


def make_gateway() -> AsyncMock:
    gateway = AsyncMock()
    gateway.create_payment_intent.return_value = {
        "paymentIntentId": "pi_sim_1",
        "clientSecret": "pi_sim_1_secret",
    }
    gateway.create_service_request.return_value = {"id": "req-1", "status": "pending_payment"}
    gateway.confirm_payment.return_value = {
        "paymentIntentId": "pi_sim_1",
        "paymentStatus": "succeeded",
        "request": {"id": "req-1", "status": "paid"},
    }
    gateway.cancel_payment_intent.return_value = {"status": "cancelled"}
    return gateway


def rental_flow(gateway) -> RentalDeliveryFlow:
    return RentalDeliveryFlow(ROLL_OFF, TEN_YARD, gateway, today=TODAY)


class TestBusinessDays:

    def test_skips_weekends(self):
        assert add_business_days(TODAY, 1) == date(2026, 10, 19)
        assert add_business_days(TODAY, 3) == date(2026, 10, 21)
        assert add_business_days(date(2026, 10, 19), 3) == date(2026, 10, 22)

    def test_exhaustiveness_check(self):
        class Broken(str, enum.Enum):
            START = "start"
            MIDDLE = "middle"
            END = "end"

        with pytest.raises(TypeError):
            check_exhaustive(
                Broken,
                {Broken.START: (Broken.MIDDLE,), Broken.MIDDLE: (), Broken.END: ()},
                frozenset({Broken.END}),
            )
        with pytest.raises(TypeError):
            check_exhaustive(Broken, {Broken.START: (Broken.END,)}, frozenset({Broken.END}))


class TestAdditionalResourceFlow:

    def test_selecting_reason_advances(self):
        flow = AdditionalResourceFlow(ROLL_CART, make_gateway())
        assert flow.step == ResourceStep.REASON_SELECT

        flow.select_reason("damaged-cart")
        assert flow.step == ResourceStep.DETAIL_ENTRY

    def test_unknown_reason_blocks(self):
        flow = AdditionalResourceFlow(ROLL_CART, make_gateway())
        with pytest.raises(StepValidationError):
            flow.select_reason("too-many-raccoons")
        assert flow.step == ResourceStep.REASON_SELECT

    @pytest.mark.asyncio
    async def test_missing_photo_blocks_without_network(self):
        gateway = make_gateway()
        flow = AdditionalResourceFlow(ROLL_CART, gateway)
        flow.select_reason("damaged-cart")
        flow.enter_details("Lid is cracked", location="curb")
        flow.continue_()

        with pytest.raises(StepValidationError) as exc_info:
            await flow.submit()
        assert exc_info.value.field == "photo"
        assert flow.step == ResourceStep.EVIDENCE_UPLOAD
        gateway.create_service_request.assert_not_awaited()

        flow.attach_photo("uploads/cart.jpg")
        await flow.submit()

        assert flow.step == ResourceStep.SUBMITTED
        assert flow.status == FlowStatus.COMPLETED
        gateway.create_service_request.assert_awaited_once()
        kwargs = gateway.create_service_request.call_args.kwargs
        assert kwargs["service_id"] == "residential-roll-cart"
        assert kwargs["form_data"]["photo"] == "uploads/cart.jpg"
        assert kwargs["form_data"]["location"] == "curb"
        gateway.create_payment_intent.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_priced_reason_uses_payment_saga(self):
        gateway = make_gateway()
        flow = AdditionalResourceFlow(ROLL_CART, gateway)
        flow.select_reason("additional-garbage-cart")
        flow.enter_details("Family of six")
        flow.continue_()
        flow.attach_photo("uploads/full-cart.jpg")

        result = await flow.submit()

        assert result == {"id": "req-1", "status": "paid"}
        gateway.create_payment_intent.assert_awaited_once_with(
            2500, "residential-roll-cart", "residential"
        )
        assert gateway.create_service_request.call_args.kwargs["amount"] == 2500

    def test_back_preserves_values(self):
        flow = AdditionalResourceFlow(ROLL_CART, make_gateway())
        flow.select_reason("stolen-cart")
        flow.enter_details("Gone after pickup", location="alley")
        flow.continue_()
        flow.attach_photo("uploads/empty-curb.jpg")

        flow.back()
        assert flow.step == ResourceStep.DETAIL_ENTRY
        flow.back()
        assert flow.step == ResourceStep.REASON_SELECT
        assert flow.values == {
            "reason": "stolen-cart",
            "description": "Gone after pickup",
            "location": "alley",
            "photo": "uploads/empty-curb.jpg",
        }

        with pytest.raises(InvalidTransitionError):
            flow.back()

    def test_blank_description_blocks_continue(self):
        flow = AdditionalResourceFlow(ROLL_CART, make_gateway())
        flow.select_reason("damaged-cart")
        flow.enter_details("  ")
        with pytest.raises(StepValidationError):
            flow.continue_()
        assert flow.step == ResourceStep.DETAIL_ENTRY

    @pytest.mark.asyncio
    async def test_cancelled_flow_is_dead(self):
        flow = AdditionalResourceFlow(ROLL_CART, make_gateway())
        flow.select_reason("damaged-cart")
        flow.cancel()

        assert flow.status == FlowStatus.CANCELLED
        assert flow.values == {}
        with pytest.raises(FlowClosedError):
            flow.enter_details("anything")
        with pytest.raises(FlowClosedError):
            await flow.submit()

    @pytest.mark.asyncio
    async def test_completed_flow_cannot_resubmit(self):
        gateway = make_gateway()
        flow = AdditionalResourceFlow(ROLL_CART, gateway)
        flow.select_reason("damaged-cart")
        flow.enter_details("Cracked")
        flow.continue_()
        flow.attach_photo("uploads/crack.jpg")
        await flow.submit()

        with pytest.raises(FlowClosedError):
            await flow.submit()
        with pytest.raises(FlowClosedError):
            flow.back()
        assert gateway.create_service_request.await_count == 1


class TestRentalDeliveryFlow:

    def test_saved_address_prefills(self):
        flow = rental_flow(make_gateway())
        flow.use_saved_address({
            "id": "addr-1",
            "street": "123 Main St",
            "apt": None,
            "city": "Decatur",
            "state": "GA",
            "zip": "30030",
            "isDefault": True,
        })
        flow.continue_()
        assert flow.step == RentalStep.DATE_ENTRY
        assert flow.values["street"] == "123 Main St"

    def test_address_requires_street_city_zip(self):
        flow = rental_flow(make_gateway())
        flow.enter_address(street="123 Main St", city="", zip="30030")
        with pytest.raises(StepValidationError) as exc_info:
            flow.continue_()
        assert exc_info.value.field == "city"
        assert flow.step == RentalStep.ADDRESS_ENTRY

    def test_delivery_needs_three_business_days(self):
        flow = rental_flow(make_gateway())
        flow.enter_address(street="123 Main St", city="Decatur", zip="30030")
        flow.continue_()

        # Friday + 3 business days is Wednesday
        flow.set_delivery(date(2026, 10, 20))
        with pytest.raises(StepValidationError):
            flow.continue_()
        assert flow.step == RentalStep.DATE_ENTRY

        flow.set_delivery(date(2026, 10, 21), instructions="Driveway, left side")
        flow.continue_()
        assert flow.step == RentalStep.PAYMENT_REVIEW
        assert flow.summary()["total"] == 22600

    @pytest.mark.asyncio
    async def test_ten_yard_scenario(self):
        gateway = make_gateway()
        flow = rental_flow(gateway)
        flow.enter_address(street="123 Main St", city="Decatur", zip="30030")
        flow.continue_()
        flow.set_delivery(TODAY + timedelta(days=5))
        flow.continue_()

        result = await flow.pay()

        assert result["status"] == "paid"
        assert flow.step == RentalStep.CONFIRMATION
        kwargs = gateway.create_service_request.call_args.kwargs
        assert kwargs["amount"] == 22600
        assert kwargs["payment_intent_id"] == "pi_sim_1"
        assert kwargs["form_data"]["selectedOption"] == {"name": "10 Yard Container", "price": 22600}
        assert kwargs["form_data"]["address"]["zip"] == "30030"
        assert kwargs["form_data"]["rentalDays"] == 14
        gateway.confirm_payment.assert_awaited_once_with("pi_sim_1")

    def test_back_keeps_address_and_date(self):
        flow = rental_flow(make_gateway())
        flow.enter_address(street="9 Pine Rd", city="Tucker", zip="30084", apt="4")
        flow.continue_()
        flow.set_delivery(date(2026, 10, 23), instructions="Gate code 1234")
        flow.continue_()

        flow.back()
        flow.back()
        assert flow.step == RentalStep.ADDRESS_ENTRY
        assert flow.values["apt"] == "4"
        assert flow.values["delivery_date"] == date(2026, 10, 23)
        assert flow.values["instructions"] == "Gate code 1234"

    @pytest.mark.asyncio
    async def test_confirm_failure_retries_only_confirm(self):
        gateway = make_gateway()
        gateway.confirm_payment.side_effect = [
            SubmissionError("Could not reach the server", retryable=True),
            {"paymentStatus": "succeeded", "request": {"id": "req-1", "status": "paid"}},
        ]
        flow = rental_flow(gateway)
        flow.enter_address(street="123 Main St", city="Decatur", zip="30030")
        flow.continue_()
        flow.set_delivery(date(2026, 10, 26))
        flow.continue_()

        with pytest.raises(SubmissionError) as exc_info:
            await flow.pay()
        assert exc_info.value.stage == SagaStage.CONFIRM_PAYMENT.value
        assert flow.step == RentalStep.PAYMENT_REVIEW
        assert flow.last_error is exc_info.value
        assert flow.values["street"] == "123 Main St"

        # the request exists now, so the flow can no longer be unwound
        with pytest.raises(InvalidTransitionError):
            flow.back()

        await flow.pay()
        assert flow.step == RentalStep.CONFIRMATION
        assert gateway.create_payment_intent.await_count == 1
        assert gateway.create_service_request.await_count == 1
        assert gateway.confirm_payment.await_count == 2

    @pytest.mark.asyncio
    async def test_charged_flow_cannot_be_cancelled(self):
        gateway = make_gateway()
        gateway.create_service_request.side_effect = SubmissionError("Server error", retryable=True)
        flow = RentalDeliveryFlow(ROLL_OFF, TEN_YARD, gateway, today=TODAY, collect_payment=AsyncMock())
        flow.enter_address(street="123 Main St", city="Decatur", zip="30030")
        flow.continue_()
        flow.set_delivery(date(2026, 10, 26))
        flow.continue_()

        with pytest.raises(SubmissionError):
            await flow.pay()

        assert flow.submission_started
        with pytest.raises(InvalidTransitionError):
            flow.cancel()

    def test_unpriced_option_rejected(self):
        with pytest.raises(ValueError):
            RentalDeliveryFlow(ROLL_OFF, ROLL_CART.get_option("damaged-cart"), make_gateway())


class TestPaymentSaga:

    @pytest.mark.asyncio
    async def test_request_failure_cancels_intent(self):
        gateway = make_gateway()
        gateway.create_service_request.side_effect = SubmissionError("Server error", retryable=True)
        saga = PaymentSaga(gateway, "residential-roll-off", "residential", 22600)

        with pytest.raises(SubmissionError) as exc_info:
            await saga.run({"deliveryDate": "2026-10-26"})

        assert exc_info.value.stage == SagaStage.CREATE_REQUEST.value
        gateway.cancel_payment_intent.assert_awaited_once()
        assert gateway.cancel_payment_intent.call_args.args[0] == "pi_sim_1"
        gateway.confirm_payment.assert_not_awaited()
        assert saga.stage == SagaStage.CREATE_INTENT
        assert not saga.request_created

        # retry starts with a fresh intent
        gateway.create_service_request.side_effect = None
        await saga.run({"deliveryDate": "2026-10-26"})
        assert gateway.create_payment_intent.await_count == 2
        assert saga.done

    @pytest.mark.asyncio
    async def test_intent_failure_leaves_nothing_to_compensate(self):
        gateway = make_gateway()
        gateway.create_payment_intent.side_effect = SubmissionError("Card service down")
        saga = PaymentSaga(gateway, "residential-roll-off", "residential", 22600)

        with pytest.raises(SubmissionError) as exc_info:
            await saga.run({})
        assert exc_info.value.stage == SagaStage.CREATE_INTENT.value
        gateway.cancel_payment_intent.assert_not_awaited()
        gateway.create_service_request.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_collect_payment_receives_client_secret(self):
        gateway = make_gateway()
        collect = AsyncMock()
        saga = PaymentSaga(gateway, "residential-roll-off", "residential", 22600, collect_payment=collect)

        await saga.run({})
        collect.assert_awaited_once_with("pi_sim_1_secret")

    @pytest.mark.asyncio
    async def test_charged_intent_is_kept_when_request_fails(self):
        gateway = make_gateway()
        gateway.create_service_request.side_effect = SubmissionError("Server error", retryable=True)
        collect = AsyncMock()
        saga = PaymentSaga(gateway, "residential-roll-off", "residential", 22600, collect_payment=collect)

        with pytest.raises(SubmissionError) as exc_info:
            await saga.run({"deliveryDate": "2026-10-26"})

        assert exc_info.value.stage == SagaStage.CREATE_REQUEST.value
        assert exc_info.value.retryable
        gateway.cancel_payment_intent.assert_not_awaited()
        assert saga.charged
        assert saga.in_flight
        assert saga.stage == SagaStage.CREATE_REQUEST
        assert saga.payment_intent_id == "pi_sim_1"

        # retry only creates the request, with the same intent
        gateway.create_service_request.side_effect = None
        await saga.run({"deliveryDate": "2026-10-26"})

        assert saga.done
        collect.assert_awaited_once()
        assert gateway.create_payment_intent.await_count == 1
        assert gateway.create_service_request.await_count == 2
        assert gateway.create_service_request.call_args.kwargs["payment_intent_id"] == "pi_sim_1"
        gateway.confirm_payment.assert_awaited_once_with("pi_sim_1")

    @pytest.mark.asyncio
    async def test_final_request_failure_after_charge_reports_charge(self):
        gateway = make_gateway()
        gateway.create_service_request.side_effect = SubmissionError(
            "serviceId and serviceType are required", retryable=False, status_code=400
        )
        gateway.confirm_payment.return_value = {
            "paymentIntentId": "pi_sim_1",
            "paymentStatus": "orphaned",
            "request": None,
        }
        saga = PaymentSaga(
            gateway, "residential-roll-off", "residential", 22600, collect_payment=AsyncMock()
        )

        with pytest.raises(SubmissionError) as exc_info:
            await saga.run({})

        assert not exc_info.value.retryable
        gateway.cancel_payment_intent.assert_not_awaited()
        gateway.confirm_payment.assert_awaited_once_with("pi_sim_1")
        assert saga.stage == SagaStage.ABANDONED
        assert not saga.in_flight

        # an abandoned saga never charges or submits again
        with pytest.raises(SubmissionError) as exc_info:
            await saga.run({})
        assert not exc_info.value.retryable
        assert gateway.create_payment_intent.await_count == 1
        assert gateway.create_service_request.await_count == 1

    @pytest.mark.asyncio
    async def test_unapplied_confirmation_is_final(self):
        gateway = make_gateway()
        gateway.confirm_payment.return_value = {
            "paymentIntentId": "pi_sim_1",
            "paymentStatus": "orphaned",
            "request": {"id": "req-1", "status": "cancelled"},
        }
        saga = PaymentSaga(gateway, "residential-roll-off", "residential", 22600)

        with pytest.raises(SubmissionError) as exc_info:
            await saga.run({})

        assert exc_info.value.stage == SagaStage.CONFIRM_PAYMENT.value
        assert not exc_info.value.retryable
        assert saga.stage == SagaStage.ABANDONED
        assert not saga.done


class TestOrchestrator:

    @pytest.mark.asyncio
    async def test_done_resets_selection(self):
        orchestrator = SubmissionOrchestrator(make_gateway(), today=TODAY)
        flow = orchestrator.select("residential-roll-off", "10-yard")
        assert isinstance(flow, RentalDeliveryFlow)

        flow.enter_address(street="123 Main St", city="Decatur", zip="30030")
        flow.continue_()
        flow.set_delivery(date(2026, 10, 26))
        flow.continue_()
        await flow.pay()

        orchestrator.done()
        assert not orchestrator.selected

    def test_cancel_resets_selection(self):
        orchestrator = SubmissionOrchestrator(make_gateway())
        flow = orchestrator.select("residential-roll-cart")
        flow.select_reason("damaged-cart")

        orchestrator.cancel()
        assert not orchestrator.selected
        assert flow.status == FlowStatus.CANCELLED

    def test_select_requires_option_for_rentals(self):
        orchestrator = SubmissionOrchestrator(make_gateway())
        with pytest.raises(InvalidTransitionError):
            orchestrator.select("residential-roll-off")
        with pytest.raises(InvalidTransitionError):
            orchestrator.select("residential-trash")

    def test_done_requires_completed_flow(self):
        orchestrator = SubmissionOrchestrator(make_gateway())
        orchestrator.select("residential-roll-cart")
        with pytest.raises(InvalidTransitionError):
            orchestrator.done()
