"""
Payment Manager - single entry point for gateways, ledger and refunds.

Build one per session scope:

    async with get_db_context() as db:
        payments = PaymentManager(db, registry=registry)
        response = await payments.khalti().payment({...})
"""

import logging
import uuid
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from nepali_payment.config import Settings, get_settings
from nepali_payment.events import (
    EventDispatcher,
    PaymentCancelled,
    PaymentCompleted,
    PaymentFailed,
)
from nepali_payment.fsm.states import Gateway, PaymentStatus, RefundReason
from nepali_payment.gateways.base import GatewayClient
from nepali_payment.gateways.registry import GatewayRegistry
from nepali_payment.models.payment import PaymentTransaction
from nepali_payment.models.refund import PaymentRefund
from nepali_payment.services.interceptor import PaymentInterceptor
from nepali_payment.services.payment_ledger import PayableRef, PaymentLedger, PaymentQuery
from nepali_payment.services.reference_strategy import StrategyRegistry
from nepali_payment.services.refund_service import RefundService

logger = logging.getLogger(__name__)


class PaymentManager:
    """
    Facade over the gateway registry, the payment ledger and refunds.

    With persistence on, `gateway()` hands out ledger-aware interceptors;
    with it off, the raw clients, and every ledger operation raises
    DatabaseDisabledError.
    """

    def __init__(
        self,
        db: Optional[AsyncSession] = None,
        settings: Optional[Settings] = None,
        registry: Optional[GatewayRegistry] = None,
        strategies: Optional[StrategyRegistry] = None,
        events: Optional[EventDispatcher] = None,
    ):
        self.settings = settings or get_settings()
        self.registry = registry or GatewayRegistry(self.settings)
        self.strategies = strategies or StrategyRegistry(self.settings)
        self.events = events or EventDispatcher()

        self.database_enabled = self.settings.database_enabled
        if self.database_enabled and db is None:
            logger.warning("Persistence enabled but no database session given; ledger disabled")
        self.ledger = PaymentLedger(db, enabled=self.database_enabled)
        self.refunds = RefundService(self.ledger, events=self.events)

    # ============= Gateways =============

    def gateway(self, name: Union[Gateway, str]) -> GatewayClient:
        """Client for a gateway, wrapped with ledger bookkeeping when persistence is on."""
        gateway = Gateway.parse(name)
        client = self.registry.make(gateway)
        if not self.ledger.is_enabled:
            return client
        return PaymentInterceptor(
            client,
            self.ledger,
            self.strategies.for_gateway(gateway),
            events=self.events,
        )

    def esewa(self) -> GatewayClient:
        return self.gateway(Gateway.ESEWA)

    def khalti(self) -> GatewayClient:
        return self.gateway(Gateway.KHALTI)

    def connectips(self) -> GatewayClient:
        return self.gateway(Gateway.CONNECTIPS)

    # ============= Payments =============

    async def create_payment(
        self,
        gateway: Union[Gateway, str],
        amount: Any,
        payload: Optional[Dict[str, Any]] = None,
        response: Optional[Dict[str, Any]] = None,
        payable: Optional[PayableRef] = None,
        reference_id: Optional[str] = None,
        currency: str = "NPR",
        description: Optional[str] = None,
    ) -> PaymentTransaction:
        gateway = Gateway.parse(gateway)
        return await self.ledger.create_payment(
            gateway,
            amount,
            payload=payload,
            response=response,
            payable=payable,
            reference_id=reference_id,
            currency=currency,
            description=description,
        )

    async def record_payment_verification(
        self,
        payment: PaymentTransaction,
        verification_data: Dict[str, Any],
        success: bool = True,
        gateway_transaction_id: Optional[str] = None,
    ) -> bool:
        return await self.ledger.record_verification(
            payment,
            verification_data,
            success=success,
            gateway_transaction_id=gateway_transaction_id,
        )

    async def complete_payment(self, payment: PaymentTransaction) -> None:
        await self.ledger.complete_payment(payment)
        await self.events.dispatch(PaymentCompleted(payment))

    async def fail_payment(
        self,
        payment: PaymentTransaction,
        reason: Optional[str] = None,
    ) -> None:
        await self.ledger.fail_payment(payment)
        await self.events.dispatch(PaymentFailed(payment, reason=reason))

    async def cancel_payment(self, payment: PaymentTransaction) -> None:
        await self.ledger.cancel_payment(payment)
        await self.events.dispatch(PaymentCancelled(payment))

    # ============= Lookups & queries =============

    async def get_payment(self, payment_id: Union[uuid.UUID, str]) -> Optional[PaymentTransaction]:
        return await self.ledger.get(payment_id)

    async def find_payment_by_reference(self, reference_id: str) -> Optional[PaymentTransaction]:
        return await self.ledger.find_by_reference(reference_id)

    async def find_payment_by_transaction_id(
        self,
        gateway_transaction_id: str,
    ) -> Optional[PaymentTransaction]:
        return await self.ledger.find_by_transaction_id(gateway_transaction_id)

    def get_payments_by_status(self, status: Union[PaymentStatus, str]) -> PaymentQuery:
        return self.ledger.by_status(status)

    def get_payments_by_gateway(self, gateway: Union[Gateway, str]) -> PaymentQuery:
        return self.ledger.by_gateway(Gateway.parse(gateway))

    def get_payments_for_payable(self, payable_type: str, payable_id: Any) -> PaymentQuery:
        return self.ledger.for_payable(payable_type, payable_id)

    # ============= Refunds =============

    async def create_refund(
        self,
        payment: PaymentTransaction,
        amount: Any,
        reason: Union[RefundReason, str, None] = RefundReason.USER_REQUEST,
        notes: Optional[str] = None,
        requested_by: Optional[Any] = None,
    ) -> PaymentRefund:
        return await self.refunds.create_refund(
            payment,
            amount,
            reason=reason,
            notes=notes,
            requested_by=requested_by,
        )

    async def mark_refund_processing(self, refund: PaymentRefund) -> None:
        await self.refunds.mark_processing(refund)

    async def process_refund(
        self,
        refund: PaymentRefund,
        gateway_response: Optional[Dict[str, Any]] = None,
        success: bool = True,
    ) -> None:
        await self.refunds.process_refund(refund, gateway_response, success=success)

    async def get_refunds(self, payment: PaymentTransaction) -> List[PaymentRefund]:
        return await self.refunds.refunds_for(payment)

    async def remaining_refundable_amount(self, payment: PaymentTransaction) -> Decimal:
        return await self.ledger.remaining_refundable_amount(payment)


PaymentOrchestrator = PaymentManager
