"""Models package for database models."""

from nepali_payment.models.payment import PaymentTransaction
from nepali_payment.models.refund import PaymentRefund

__all__ = [
    "PaymentTransaction",
    "PaymentRefund",
]
