"""
Tests for PaymentManager.
"""

from decimal import Decimal

import pytest

from conftest import make_settings

from nepali_payment.events import (
    EventDispatcher,
    PaymentCancelled,
    PaymentCompleted,
    PaymentEvent,
    PaymentFailed,
    PaymentRefunded,
)
from nepali_payment.exceptions import DatabaseDisabledError, UnsupportedGatewayError
from nepali_payment.fsm.states import Gateway, PaymentStatus, RefundStatus
from nepali_payment.gateways.esewa import EsewaClient
from nepali_payment.gateways.registry import GatewayRegistry
from nepali_payment.services.interceptor import PaymentInterceptor
from nepali_payment.services.payment_ledger import PayableRef
from nepali_payment.services.payment_manager import PaymentManager


@pytest.fixture
def events():
    return EventDispatcher()


@pytest.fixture
def received(events):
    collected = []
    events.subscribe(PaymentEvent, collected.append)
    return collected


@pytest.fixture
def manager(db, settings, registry, events):
    return PaymentManager(db, settings=settings, registry=registry, events=events)


@pytest.fixture
def offline_manager(registry):
    return PaymentManager(
        settings=make_settings(database_enabled=False),
        registry=registry,
    )


class TestGatewayAccess:

    @pytest.mark.asyncio
    async def test_gateway_is_intercepted_with_persistence(self, manager, fake_khalti):
        client = manager.gateway("khalti")

        assert isinstance(client, PaymentInterceptor)
        assert client.client is fake_khalti

    def test_gateway_is_raw_without_persistence(self, offline_manager, fake_khalti):
        assert offline_manager.gateway("khalti") is fake_khalti
        assert offline_manager.khalti() is fake_khalti

    def test_shortcuts(self, offline_manager):
        assert isinstance(offline_manager.esewa(), EsewaClient)
        assert offline_manager.connectips().gateway == Gateway.CONNECTIPS

    def test_unknown_gateway(self, offline_manager):
        with pytest.raises(UnsupportedGatewayError):
            offline_manager.gateway("paypal")

    def test_enabled_flag_without_session_disables_ledger(self, registry, settings):
        manager = PaymentManager(settings=settings, registry=registry)

        assert not isinstance(manager.gateway("khalti"), PaymentInterceptor)
        with pytest.raises(DatabaseDisabledError):
            manager.get_payments_by_status("pending")


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_khalti_payment_to_refund(self, manager, received):
        payment = await manager.create_payment("khalti", 1000, response={"pidx": "p1"})
        assert payment.status == PaymentStatus.PENDING
        assert payment.merchant_reference_id == "p1"

        assert await manager.record_payment_verification(payment, {}, success=True)
        assert payment.status == PaymentStatus.PROCESSING
        assert payment.verified_at is not None

        await manager.complete_payment(payment)
        assert payment.status == PaymentStatus.COMPLETED
        assert payment.completed_at is not None

        refund = await manager.create_refund(payment, 1000, "user_request")
        assert refund.refund_status == RefundStatus.PENDING

        await manager.process_refund(refund, {}, success=True)
        assert refund.refund_status == RefundStatus.COMPLETED
        assert payment.status == PaymentStatus.REFUNDED
        assert await manager.remaining_refundable_amount(payment) == Decimal("0.00")

        assert [type(e) for e in received] == [PaymentCompleted, PaymentRefunded]

    @pytest.mark.asyncio
    async def test_intercepted_flow(self, manager):
        client = manager.khalti()

        await client.payment({"amount": 1000, "purchase_order_id": "o-1", "purchase_order_name": "Mug"})
        await client.verify({"pidx": "pidx_123"})

        payment = await manager.find_payment_by_reference("pidx_123")
        assert payment.status == PaymentStatus.PROCESSING

        await manager.complete_payment(payment)
        assert await manager.get_payments_by_status("completed").count() == 1

    @pytest.mark.asyncio
    async def test_fail_and_cancel_dispatch_events(self, manager, received):
        failing = await manager.create_payment("esewa", 100, response={"transaction_uuid": "u1"})
        cancelled = await manager.create_payment("esewa", 100, response={"transaction_uuid": "u2"})

        await manager.fail_payment(failing, reason="Customer abandoned")
        await manager.cancel_payment(cancelled)

        assert isinstance(received[0], PaymentFailed)
        assert received[0].reason == "Customer abandoned"
        assert isinstance(received[1], PaymentCancelled)
        assert received[1].transaction is cancelled

    @pytest.mark.asyncio
    async def test_queries(self, manager):
        payment = await manager.create_payment(
            "connectips", 500, response={"txn_id": "c1"}, payable=PayableRef("invoices", "9")
        )
        await manager.record_payment_verification(
            payment, {}, success=True, gateway_transaction_id="G1"
        )

        assert (await manager.find_payment_by_transaction_id("G1")).id == payment.id
        assert (await manager.get_payment(payment.id)) is payment
        assert await manager.get_payments_by_gateway("connectips").count() == 1
        assert await manager.get_payments_for_payable("invoices", 9).count() == 1
        assert await manager.find_payment_by_reference("missing") is None

    @pytest.mark.asyncio
    async def test_get_refunds(self, manager):
        payment = await manager.create_payment("khalti", 1000, response={"pidx": "p1"})
        await manager.record_payment_verification(payment, {}, success=True)
        await manager.complete_payment(payment)
        refund = await manager.create_refund(payment, 100)
        await manager.mark_refund_processing(refund)

        refunds = await manager.get_refunds(payment)

        assert [r.refund_status for r in refunds] == [RefundStatus.PROCESSING]


class TestPersistenceDisabled:

    def test_queries_fail_fast(self, offline_manager):
        with pytest.raises(DatabaseDisabledError):
            offline_manager.get_payments_by_status("pending")

    def test_gateway_names_validated_before_persistence(self, offline_manager):
        with pytest.raises(UnsupportedGatewayError):
            offline_manager.get_payments_by_gateway("paypal")
        with pytest.raises(DatabaseDisabledError):
            offline_manager.get_payments_by_gateway("khalti")

    @pytest.mark.asyncio
    async def test_lookups_fail_fast(self, offline_manager):
        with pytest.raises(DatabaseDisabledError):
            await offline_manager.find_payment_by_reference("p1")

    @pytest.mark.asyncio
    async def test_create_payment_fails_fast(self, offline_manager):
        with pytest.raises(DatabaseDisabledError):
            await offline_manager.create_payment("khalti", 100)

    def test_registry_shared_between_managers(self, settings):
        registry = GatewayRegistry(settings)
        first = PaymentManager(settings=settings, registry=registry)
        second = PaymentManager(settings=settings, registry=registry)

        assert first.esewa() is second.esewa()
