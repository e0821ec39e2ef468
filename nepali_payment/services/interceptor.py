"""
Payment Interceptor - wraps a gateway client and keeps the ledger in step.

payment(): call the gateway, then record a PENDING transaction.
verify(): call the gateway, find the transaction by its reference, then move
it to PROCESSING or FAILED.
"""

import logging
from typing import Any, Dict, Optional

from nepali_payment.events import (
    EventDispatcher,
    PaymentFailed,
    PaymentInitiated,
    PaymentProcessing,
)
from nepali_payment.exceptions import PersistenceError
from nepali_payment.gateways.base import GatewayClient, GatewayResponse
from nepali_payment.services.payment_ledger import PayableRef, PaymentLedger, to_amount
from nepali_payment.services.reference_strategy import ReferenceStrategy

logger = logging.getLogger(__name__)


class PaymentInterceptor(GatewayClient):
    """Ledger-aware decorator around any GatewayClient."""

    def __init__(
        self,
        client: GatewayClient,
        ledger: PaymentLedger,
        strategy: ReferenceStrategy,
        events: Optional[EventDispatcher] = None,
    ):
        self.client = client
        self.ledger = ledger
        self.strategy = strategy
        self.gateway = strategy.gateway
        self.events = events or EventDispatcher()

    async def payment(
        self,
        data: Dict[str, Any],
        payable: Optional[PayableRef] = None,
        description: Optional[str] = None,
    ) -> GatewayResponse:
        """
        Start a payment and record it as PENDING.

        The amount is validated before the gateway is called. If the gateway
        accepted the payment but the record cannot be written, PersistenceError
        is raised with the gateway response attached for reconciliation.
        """
        payload = self.strategy.build_payment_data(data)
        amount = payload.get("total_amount")
        if amount is None:
            amount = payload.get("amount")
        amount = to_amount(amount)
        self.ledger.ensure_enabled()

        response = await self.client.payment(payload)
        if not response.is_success():
            logger.warning(f"{self.gateway.value} rejected payment initiation: {response.data}")
            return response

        response_data = response.to_dict()
        try:
            transaction = await self.ledger.create_payment(
                gateway=self.gateway,
                amount=amount,
                payload=payload,
                response=response_data,
                payable=payable,
                reference_id=self.strategy.extract_reference_id(payload),
                currency=payload.get("currency") or "NPR",
                description=description,
            )
        except PersistenceError as e:
            e.response = response_data
            logger.error(
                f"{self.gateway.value} payment accepted but not recorded, "
                f"needs reconciliation: {response_data}"
            )
            raise

        await self.events.dispatch(PaymentInitiated(transaction))
        return response

    async def verify(self, data: Dict[str, Any]) -> GatewayResponse:
        """Verify with the gateway and apply the outcome to the matching transaction."""
        response = await self.client.verify(data)
        response_data = response.to_dict()

        reference_id = self.strategy.extract_reference_id(data)
        if not reference_id:
            reference_id = self.strategy.extract_reference_id(response_data)
        if not reference_id:
            logger.warning(f"No {self.gateway.value} reference in verification data")
            return response

        transaction = await self.ledger.find_by_reference(reference_id)
        if transaction is None or transaction.gateway != self.gateway:
            logger.warning(f"No {self.gateway.value} payment found for reference {reference_id}")
            return response

        success = response.is_success()
        applied = await self.ledger.record_verification(
            transaction,
            response_data,
            success=success,
            gateway_transaction_id=(
                self.strategy.extract_transaction_id(response_data) if success else None
            ),
        )
        if applied:
            if success:
                await self.events.dispatch(PaymentProcessing(transaction))
            else:
                await self.events.dispatch(
                    PaymentFailed(transaction, reason=response_data.get("error") or "Verification failed")
                )
        return response

    async def aclose(self) -> None:
        await self.client.aclose()
