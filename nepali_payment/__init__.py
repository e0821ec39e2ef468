"""
Payment orchestration for Nepali gateways (eSewa, Khalti, ConnectIPS)
with an optional transaction and refund ledger.
"""

from nepali_payment.config import Settings, get_settings
from nepali_payment.events import EventDispatcher
from nepali_payment.fsm.states import Gateway, PaymentStatus, RefundReason, RefundStatus
from nepali_payment.gateways.registry import GatewayRegistry
from nepali_payment.services.payment_ledger import PayableRef
from nepali_payment.services.payment_manager import PaymentManager, PaymentOrchestrator
from nepali_payment.services.reference_strategy import StrategyRegistry

__version__ = "0.1.0"

__all__ = [
    "Settings",
    "get_settings",
    "EventDispatcher",
    "Gateway",
    "PaymentStatus",
    "RefundReason",
    "RefundStatus",
    "GatewayRegistry",
    "PayableRef",
    "PaymentManager",
    "PaymentOrchestrator",
    "StrategyRegistry",
]
