"""Services package."""

from nepali_payment.services.interceptor import PaymentInterceptor
from nepali_payment.services.payment_ledger import PayableRef, PaymentLedger, PaymentQuery
from nepali_payment.services.payment_manager import PaymentManager, PaymentOrchestrator
from nepali_payment.services.reference_strategy import ReferenceStrategy, StrategyRegistry
from nepali_payment.services.refund_service import RefundService

__all__ = [
    "PaymentInterceptor",
    "PayableRef",
    "PaymentLedger",
    "PaymentQuery",
    "PaymentManager",
    "PaymentOrchestrator",
    "ReferenceStrategy",
    "StrategyRegistry",
    "RefundService",
]
