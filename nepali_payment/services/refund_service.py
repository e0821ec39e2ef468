"""
Refund Service - refund requests, settlement and the refundable-amount rule.

Completed refunds of a payment never add up to more than the payment amount.
The rule is checked when a refund is requested and again when it completes,
so two refunds requested side by side cannot both settle past the limit.
"""

import logging
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import case, func, select, update
from sqlalchemy.exc import SQLAlchemyError

from nepali_payment.database import utcnow
from nepali_payment.events import EventDispatcher, PaymentRefunded
from nepali_payment.exceptions import (
    InvalidStateTransitionError,
    PersistenceError,
    RefundAmountExceededError,
    RefundNotAllowedError,
)
from nepali_payment.fsm.machine import (
    OPEN_REFUND_STATUSES,
    ensure_refund_transition,
    refund_sources,
)
from nepali_payment.fsm.states import PaymentStatus, RefundReason, RefundStatus
from nepali_payment.models.payment import PaymentTransaction
from nepali_payment.models.refund import PaymentRefund
from nepali_payment.services.payment_ledger import PaymentLedger, to_amount, to_jsonable

logger = logging.getLogger(__name__)


class RefundService:
    """Service for refunds against completed payments."""

    def __init__(self, ledger: PaymentLedger, events: Optional[EventDispatcher] = None):
        self.ledger = ledger
        self.events = events or EventDispatcher()

    @property
    def db(self):
        return self.ledger.db

    async def create_refund(
        self,
        payment: PaymentTransaction,
        amount: Any,
        reason: Union[RefundReason, str, None] = RefundReason.USER_REQUEST,
        notes: Optional[str] = None,
        requested_by: Optional[Any] = None,
    ) -> PaymentRefund:
        """Request a refund; it starts PENDING."""
        self.ledger.ensure_enabled()

        if not payment.can_be_refunded:
            raise RefundNotAllowedError(payment.status.value)

        amount = to_amount(amount)
        remaining = await self.ledger.remaining_refundable_amount(payment)
        if amount > remaining:
            raise RefundAmountExceededError(amount, remaining)

        refund = PaymentRefund(
            payment_id=payment.id,
            refund_amount=amount,
            refund_reason=RefundReason.parse(reason),
            refund_status=RefundStatus.PENDING,
            notes=notes,
            requested_by=str(requested_by) if requested_by is not None else None,
            requested_at=utcnow(),
        )

        try:
            self.db.add(refund)
            await self.db.flush()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to create refund for payment {payment.id}: {e}")
            raise PersistenceError(
                str(e),
                gateway=payment.gateway.value,
                payment_id=str(payment.id),
            ) from e

        logger.info(f"Refund {refund.id} requested: {amount} of payment {payment.id}")
        return refund

    async def _transition(
        self,
        refund: PaymentRefund,
        target: RefundStatus,
        **values: Any,
    ) -> None:
        statement = (
            update(PaymentRefund)
            .where(PaymentRefund.id == refund.id)
            .where(PaymentRefund.refund_status.in_(list(refund_sources(target))))
            .values(refund_status=target, **values)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.db.execute(statement)
            await self.db.refresh(refund)
        except SQLAlchemyError as e:
            logger.error(f"Failed to update refund {refund.id}: {e}")
            raise PersistenceError(str(e), payment_id=str(refund.payment_id)) from e

        if not result.rowcount:
            raise InvalidStateTransitionError(
                "refund", refund.refund_status.value, target.value
            )
        logger.info(f"Refund {refund.id} -> {target.value}")

    async def mark_processing(self, refund: PaymentRefund) -> None:
        """PENDING -> PROCESSING, once submitted to the gateway."""
        self.ledger.ensure_enabled()
        await self._transition(refund, RefundStatus.PROCESSING)

    async def process_refund(
        self,
        refund: PaymentRefund,
        gateway_response: Optional[Dict[str, Any]] = None,
        success: bool = True,
    ) -> None:
        """
        Settle a refund with the gateway's answer.

        On success the refundable amount is re-checked against the locked
        payment row before the refund is marked COMPLETED. A failed refund
        leaves the payment as it is.
        """
        self.ledger.ensure_enabled()
        gateway_response = gateway_response or {}
        values: Dict[str, Any] = {"processed_at": utcnow()}
        if gateway_response:
            values["gateway_response"] = to_jsonable(gateway_response)

        if not success:
            reason = gateway_response.get("error") or "Refund processing failed"
            values["notes"] = f"{refund.notes}\n{reason}" if refund.notes else reason
            await self._transition(refund, RefundStatus.FAILED, **values)
            return

        ensure_refund_transition(refund.refund_status, RefundStatus.COMPLETED)
        payment = await self.ledger.get(refund.payment_id, for_update=True)

        refund_id = gateway_response.get("gateway_refund_id") or gateway_response.get("refund_id")
        if refund_id:
            values["gateway_refund_id"] = str(refund_id)

        remaining = await self.ledger.remaining_refundable_amount(payment)
        if refund.refund_amount > remaining:
            raise RefundAmountExceededError(refund.refund_amount, remaining)

        await self._transition(refund, RefundStatus.COMPLETED, **values)
        await self._settle_payment(payment, refund)

    async def _settle_payment(self, payment: PaymentTransaction, refund: PaymentRefund) -> None:
        """Mark the payment REFUNDED once no refund is open and at least one completed."""
        if payment.status != PaymentStatus.COMPLETED:
            return

        result = await self.db.execute(
            select(
                func.sum(case((PaymentRefund.refund_status.in_(OPEN_REFUND_STATUSES), 1), else_=0)),
                func.sum(case((PaymentRefund.refund_status == RefundStatus.COMPLETED, 1), else_=0)),
            ).where(PaymentRefund.payment_id == payment.id)
        )
        open_count, completed_count = result.one()
        if open_count or not completed_count:
            return

        await self.ledger.mark_refunded(payment)
        await self.events.dispatch(PaymentRefunded(payment, refund=refund))

    async def refunds_for(self, payment: PaymentTransaction) -> List[PaymentRefund]:
        """Refunds of a payment, oldest first."""
        self.ledger.ensure_enabled()
        result = await self.db.execute(
            select(PaymentRefund)
            .where(PaymentRefund.payment_id == payment.id)
            .order_by(PaymentRefund.requested_at)
        )
        return list(result.scalars().all())
