"""Payment and refund status machine."""

from nepali_payment.fsm.states import Gateway, PaymentStatus, RefundReason, RefundStatus
from nepali_payment.fsm.machine import (
    PAYMENT_TRANSITIONS,
    REFUND_TRANSITIONS,
    can_transition,
    ensure_payment_transition,
    ensure_refund_transition,
)

__all__ = [
    "Gateway",
    "PaymentStatus",
    "RefundReason",
    "RefundStatus",
    "PAYMENT_TRANSITIONS",
    "REFUND_TRANSITIONS",
    "can_transition",
    "ensure_payment_transition",
    "ensure_refund_transition",
]
