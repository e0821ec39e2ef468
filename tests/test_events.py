"""
Tests for EventDispatcher.
"""

import pytest

from nepali_payment.events import (
    EventDispatcher,
    PaymentCompleted,
    PaymentEvent,
    PaymentFailed,
)
from nepali_payment.fsm.states import Gateway
from nepali_payment.models.payment import PaymentTransaction


@pytest.fixture
def transaction():
    return PaymentTransaction(gateway=Gateway.KHALTI, merchant_reference_id="p1", amount=100)


@pytest.mark.asyncio
async def test_sync_and_async_handlers(transaction):
    dispatcher = EventDispatcher()
    calls = []

    async def async_handler(event):
        calls.append(("async", event.name))

    dispatcher.subscribe(PaymentCompleted, lambda event: calls.append(("sync", event.name)))
    dispatcher.subscribe(PaymentCompleted, async_handler)

    await dispatcher.dispatch(PaymentCompleted(transaction))

    assert calls == [("sync", "PaymentCompleted"), ("async", "PaymentCompleted")]


@pytest.mark.asyncio
async def test_base_class_subscribers_get_every_event(transaction):
    dispatcher = EventDispatcher()
    seen = []
    dispatcher.subscribe(PaymentEvent, seen.append)

    await dispatcher.dispatch(PaymentCompleted(transaction))
    await dispatcher.dispatch(PaymentFailed(transaction, reason="declined"))

    assert [e.name for e in seen] == ["PaymentCompleted", "PaymentFailed"]
    assert seen[1].reason == "declined"


@pytest.mark.asyncio
async def test_only_matching_subscribers(transaction):
    dispatcher = EventDispatcher()
    failed = []
    dispatcher.subscribe(PaymentFailed, failed.append)

    await dispatcher.dispatch(PaymentCompleted(transaction))

    assert failed == []


@pytest.mark.asyncio
async def test_failing_handler_does_not_stop_others(transaction, caplog):
    dispatcher = EventDispatcher()
    seen = []

    def broken(event):
        raise RuntimeError("mail server down")

    dispatcher.subscribe(PaymentCompleted, broken)
    dispatcher.subscribe(PaymentCompleted, seen.append)

    await dispatcher.dispatch(PaymentCompleted(transaction))

    assert len(seen) == 1
    assert "broken" in caplog.text


@pytest.mark.asyncio
async def test_unsubscribe(transaction):
    dispatcher = EventDispatcher()
    seen = []
    dispatcher.subscribe(PaymentCompleted, seen.append)
    dispatcher.unsubscribe(PaymentCompleted, seen.append)
    # Unknown handler is ignored
    dispatcher.unsubscribe(PaymentFailed, seen.append)

    await dispatcher.dispatch(PaymentCompleted(transaction))

    assert seen == []


def test_events_have_unique_ids(transaction):
    first = PaymentCompleted(transaction)
    second = PaymentCompleted(transaction)

    assert first.event_id != second.event_id
    assert first.occurred_at.tzinfo is not None
