"""
Payment lifecycle events.

Dataclass events describe what happened to a transaction after the change was
written. EventDispatcher hands them to in-process subscribers; the host
application decides what to do with them (notifications, fulfilment, ...).
"""

import inspect
import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type, Union

from nepali_payment.database import utcnow
from nepali_payment.models.payment import PaymentTransaction
from nepali_payment.models.refund import PaymentRefund

logger = logging.getLogger(__name__)


@dataclass
class PaymentEvent:
    transaction: PaymentTransaction
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=utcnow)

    @property
    def name(self) -> str:
        return type(self).__name__


@dataclass
class PaymentInitiated(PaymentEvent):
    pass


@dataclass
class PaymentProcessing(PaymentEvent):
    pass


@dataclass
class PaymentCompleted(PaymentEvent):
    pass


@dataclass
class PaymentFailed(PaymentEvent):
    reason: Optional[str] = None


@dataclass
class PaymentCancelled(PaymentEvent):
    pass


@dataclass
class PaymentRefunded(PaymentEvent):
    refund: Optional[PaymentRefund] = None


Handler = Callable[[PaymentEvent], Union[None, Awaitable[None]]]


class EventDispatcher:
    """In-process publish/subscribe for payment events."""

    def __init__(self) -> None:
        self._handlers: Dict[Type[PaymentEvent], List[Handler]] = defaultdict(list)

    def subscribe(self, event_type: Type[PaymentEvent], handler: Handler) -> None:
        """Register a sync or async handler; PaymentEvent receives every event."""
        self._handlers[event_type].append(handler)

    def unsubscribe(self, event_type: Type[PaymentEvent], handler: Handler) -> None:
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    async def dispatch(self, event: PaymentEvent) -> None:
        """
        Deliver an event to its subscribers in registration order.

        The state change behind the event is already stored, so a failing
        handler is logged and the remaining handlers still run.
        """
        for event_type in type(event).__mro__:
            for handler in list(self._handlers.get(event_type, [])):
                try:
                    result: Any = handler(event)
                    if inspect.isawaitable(result):
                        await result
                except Exception:
                    logger.exception(
                        f"Handler {getattr(handler, '__name__', handler)!r} failed for "
                        f"{event.name} on payment {event.transaction.id}"
                    )
