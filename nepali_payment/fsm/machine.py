"""
Status machine - allowed payment and refund transitions.
"""

from typing import Dict, FrozenSet, Tuple

from nepali_payment.exceptions import InvalidStateTransitionError
from nepali_payment.fsm.states import PaymentStatus, RefundStatus


# target status -> statuses it may be entered from
PAYMENT_TRANSITIONS: Dict[PaymentStatus, FrozenSet[PaymentStatus]] = {
    PaymentStatus.PROCESSING: frozenset({PaymentStatus.PENDING}),
    PaymentStatus.COMPLETED: frozenset({PaymentStatus.PROCESSING}),
    PaymentStatus.FAILED: frozenset({PaymentStatus.PENDING, PaymentStatus.PROCESSING}),
    PaymentStatus.CANCELLED: frozenset({PaymentStatus.PENDING}),
    PaymentStatus.REFUNDED: frozenset({PaymentStatus.COMPLETED}),
}

REFUND_TRANSITIONS: Dict[RefundStatus, FrozenSet[RefundStatus]] = {
    RefundStatus.PROCESSING: frozenset({RefundStatus.PENDING}),
    RefundStatus.COMPLETED: frozenset({RefundStatus.PENDING, RefundStatus.PROCESSING}),
    RefundStatus.FAILED: frozenset({RefundStatus.PENDING, RefundStatus.PROCESSING}),
}

PENDING_STATUSES: Tuple[PaymentStatus, ...] = (
    PaymentStatus.PENDING,
    PaymentStatus.PROCESSING,
)

OPEN_REFUND_STATUSES: Tuple[RefundStatus, ...] = (
    RefundStatus.PENDING,
    RefundStatus.PROCESSING,
)


def payment_sources(target: PaymentStatus) -> FrozenSet[PaymentStatus]:
    """Statuses a payment may move to `target` from."""
    return PAYMENT_TRANSITIONS.get(target, frozenset())


def refund_sources(target: RefundStatus) -> FrozenSet[RefundStatus]:
    """Statuses a refund may move to `target` from."""
    return REFUND_TRANSITIONS.get(target, frozenset())


def can_transition(current: PaymentStatus, target: PaymentStatus) -> bool:
    return current in payment_sources(target)


def ensure_payment_transition(current: PaymentStatus, target: PaymentStatus) -> None:
    """Raise if a payment cannot move from `current` to `target`."""
    if not can_transition(current, target):
        raise InvalidStateTransitionError("payment", current.value, target.value)


def ensure_refund_transition(current: RefundStatus, target: RefundStatus) -> None:
    """Raise if a refund cannot move from `current` to `target`."""
    if current not in refund_sources(target):
        raise InvalidStateTransitionError("refund", current.value, target.value)
