"""
Tests for RefundService.
"""

from decimal import Decimal

import pytest

from nepali_payment.events import EventDispatcher, PaymentRefunded
from nepali_payment.exceptions import (
    DatabaseDisabledError,
    InvalidStateTransitionError,
    PaymentValidationError,
    RefundAmountExceededError,
    RefundNotAllowedError,
)
from nepali_payment.fsm.states import PaymentStatus, RefundReason, RefundStatus
from nepali_payment.services.payment_ledger import PaymentLedger
from nepali_payment.services.refund_service import RefundService


async def make_payment(ledger: PaymentLedger, status: PaymentStatus, amount=1000):
    """Create a payment and walk it to `status` through the ledger."""
    payment = await ledger.create_payment("khalti", amount, response={"pidx": f"p-{status.value}"})
    if status == PaymentStatus.PENDING:
        return payment
    if status == PaymentStatus.CANCELLED:
        await ledger.cancel_payment(payment)
        return payment
    if status == PaymentStatus.FAILED:
        await ledger.fail_payment(payment)
        return payment

    await ledger.record_verification(payment, {}, success=True)
    if status == PaymentStatus.PROCESSING:
        return payment
    await ledger.complete_payment(payment)
    if status == PaymentStatus.REFUNDED:
        await ledger.mark_refunded(payment)
    return payment


@pytest.fixture
def events():
    return EventDispatcher()


@pytest.fixture
def refunded_events(events):
    received = []
    events.subscribe(PaymentRefunded, received.append)
    return received


@pytest.fixture
def ledger(db):
    return PaymentLedger(db)


@pytest.fixture
def service(ledger, events):
    return RefundService(ledger, events=events)


class TestCreateRefund:

    @pytest.mark.asyncio
    async def test_create_pending_refund(self, service, ledger):
        payment = await make_payment(ledger, PaymentStatus.COMPLETED)

        refund = await service.create_refund(
            payment, 250, reason="duplicate", notes="charged twice", requested_by=42
        )

        assert refund.id is not None
        assert refund.payment_id == payment.id
        assert refund.refund_amount == Decimal("250.00")
        assert refund.refund_reason == RefundReason.DUPLICATE
        assert refund.refund_status == RefundStatus.PENDING
        assert refund.notes == "charged twice"
        assert refund.requested_by == "42"
        assert refund.requested_at is not None

    @pytest.mark.asyncio
    async def test_unknown_reason_becomes_other(self, service, ledger):
        payment = await make_payment(ledger, PaymentStatus.COMPLETED)

        refund = await service.create_refund(payment, 100, reason="changed my mind")

        assert refund.refund_reason == RefundReason.OTHER

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status",
        [s for s in PaymentStatus if s != PaymentStatus.COMPLETED],
    )
    async def test_only_completed_payments(self, service, ledger, status):
        payment = await make_payment(ledger, status)

        with pytest.raises(RefundNotAllowedError) as exc_info:
            await service.create_refund(payment, 100)

        assert exc_info.value.status == status.value

    @pytest.mark.asyncio
    async def test_amount_above_remaining(self, service, ledger):
        payment = await make_payment(ledger, PaymentStatus.COMPLETED, amount=1000)

        with pytest.raises(RefundAmountExceededError) as exc_info:
            await service.create_refund(payment, "1000.01")

        assert exc_info.value.requested == Decimal("1000.01")
        assert exc_info.value.available == Decimal("1000.00")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [0, -10])
    async def test_non_positive_amount(self, service, ledger, amount):
        payment = await make_payment(ledger, PaymentStatus.COMPLETED)

        with pytest.raises(PaymentValidationError):
            await service.create_refund(payment, amount)


class TestProcessRefund:

    @pytest.mark.asyncio
    async def test_full_refund_marks_payment_refunded(self, service, ledger, refunded_events):
        payment = await make_payment(ledger, PaymentStatus.COMPLETED, amount=1000)
        refund = await service.create_refund(payment, 1000, "user_request")

        await service.process_refund(refund, {"gateway_refund_id": "R-1"}, success=True)

        assert refund.refund_status == RefundStatus.COMPLETED
        assert refund.gateway_refund_id == "R-1"
        assert refund.gateway_response == {"gateway_refund_id": "R-1"}
        assert refund.processed_at is not None
        assert payment.status == PaymentStatus.REFUNDED
        assert payment.refunded_at is not None
        assert await ledger.remaining_refundable_amount(payment) == Decimal("0.00")

        assert len(refunded_events) == 1
        assert refunded_events[0].transaction is payment
        assert refunded_events[0].refund is refund

    @pytest.mark.asyncio
    async def test_empty_response_is_not_stored(self, service, ledger):
        payment = await make_payment(ledger, PaymentStatus.COMPLETED)
        refund = await service.create_refund(payment, 100)

        await service.process_refund(refund, {}, success=True)

        assert refund.gateway_response is None
        assert refund.gateway_refund_id is None

    @pytest.mark.asyncio
    async def test_payment_waits_for_open_refunds(self, service, ledger, refunded_events):
        payment = await make_payment(ledger, PaymentStatus.COMPLETED, amount=1000)
        first = await service.create_refund(payment, 400)
        second = await service.create_refund(payment, 300)

        await service.process_refund(first, success=True)
        assert payment.status == PaymentStatus.COMPLETED
        assert refunded_events == []

        await service.process_refund(second, success=True)
        assert payment.status == PaymentStatus.REFUNDED
        assert len(refunded_events) == 1

    @pytest.mark.asyncio
    async def test_completion_rechecks_refundable_amount(self, service, ledger):
        payment = await make_payment(ledger, PaymentStatus.COMPLETED, amount=1000)
        first = await service.create_refund(payment, 600)
        second = await service.create_refund(payment, 600)

        await service.process_refund(first, success=True)

        with pytest.raises(RefundAmountExceededError):
            await service.process_refund(second, success=True)
        assert second.refund_status == RefundStatus.PENDING
        assert await ledger.remaining_refundable_amount(payment) == Decimal("400.00")

    @pytest.mark.asyncio
    async def test_failed_refund(self, service, ledger, refunded_events):
        payment = await make_payment(ledger, PaymentStatus.COMPLETED)
        refund = await service.create_refund(payment, 100, notes="requested by phone")

        await service.process_refund(refund, {"error": "Insufficient balance"}, success=False)

        assert refund.refund_status == RefundStatus.FAILED
        assert refund.notes == "requested by phone\nInsufficient balance"
        assert payment.status == PaymentStatus.COMPLETED
        assert refunded_events == []

    @pytest.mark.asyncio
    async def test_failed_refund_default_note(self, service, ledger):
        payment = await make_payment(ledger, PaymentStatus.COMPLETED)
        refund = await service.create_refund(payment, 100)

        await service.process_refund(refund, success=False)

        assert refund.notes == "Refund processing failed"

    @pytest.mark.asyncio
    async def test_failed_refund_after_partial_keeps_payment_completed(
        self, service, ledger, refunded_events
    ):
        payment = await make_payment(ledger, PaymentStatus.COMPLETED, amount=1000)
        done = await service.create_refund(payment, 500)
        rejected = await service.create_refund(payment, 200)

        await service.process_refund(done, success=True)
        await service.process_refund(rejected, success=False)

        await ledger.db.refresh(payment)
        assert payment.status == PaymentStatus.COMPLETED
        assert payment.refunded_at is None
        assert refunded_events == []
        assert await ledger.remaining_refundable_amount(payment) == Decimal("500.00")

        # Still refundable after the failure
        retry = await service.create_refund(payment, 200)
        assert retry.refund_status == RefundStatus.PENDING

    @pytest.mark.asyncio
    async def test_processing_then_completed(self, service, ledger):
        payment = await make_payment(ledger, PaymentStatus.COMPLETED)
        refund = await service.create_refund(payment, 100)

        await service.mark_processing(refund)
        assert refund.refund_status == RefundStatus.PROCESSING

        await service.process_refund(refund, success=True)
        assert refund.refund_status == RefundStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_settled_refund_cannot_be_processed_again(self, service, ledger):
        payment = await make_payment(ledger, PaymentStatus.COMPLETED)
        refund = await service.create_refund(payment, 100)
        await service.process_refund(refund, success=True)

        with pytest.raises(InvalidStateTransitionError):
            await service.process_refund(refund, success=False)

    @pytest.mark.asyncio
    async def test_refunds_for(self, service, ledger):
        payment = await make_payment(ledger, PaymentStatus.COMPLETED)
        first = await service.create_refund(payment, 100)
        second = await service.create_refund(payment, 200)

        refunds = await service.refunds_for(payment)

        assert {r.id for r in refunds} == {first.id, second.id}


class TestPersistenceDisabled:

    @pytest.mark.asyncio
    async def test_process_refund_fails_fast(self, db, ledger):
        payment = await make_payment(ledger, PaymentStatus.COMPLETED)
        refund = await RefundService(ledger).create_refund(payment, 100)

        disabled = RefundService(PaymentLedger(db, enabled=False))

        with pytest.raises(DatabaseDisabledError):
            await disabled.process_refund(refund, success=True)
        assert refund.refund_status == RefundStatus.PENDING

    @pytest.mark.asyncio
    async def test_create_refund_fails_fast(self, db, ledger):
        payment = await make_payment(ledger, PaymentStatus.COMPLETED)

        with pytest.raises(DatabaseDisabledError):
            await RefundService(PaymentLedger(db, enabled=False)).create_refund(payment, 100)
