"""
Payment Ledger - payment transaction records, status transitions and queries.
"""

import json
import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import Select, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from nepali_payment.database import utcnow
from nepali_payment.exceptions import (
    DatabaseDisabledError,
    InvalidStateTransitionError,
    PaymentValidationError,
    PersistenceError,
)
from nepali_payment.fsm.machine import PENDING_STATUSES, payment_sources
from nepali_payment.fsm.states import Gateway, PaymentStatus, RefundStatus
from nepali_payment.models.payment import PaymentTransaction
from nepali_payment.models.refund import PaymentRefund

logger = logging.getLogger(__name__)

# Gateway correlation keys, in lookup order
REFERENCE_KEYS = ("pidx", "transaction_uuid", "txn_id")

CENT = Decimal("0.01")


def to_amount(value: Any) -> Decimal:
    """Parse a positive money amount with two decimal places."""
    if value is None or isinstance(value, bool):
        raise PaymentValidationError("Amount is required")
    try:
        amount = Decimal(str(value))
    except InvalidOperation as e:
        raise PaymentValidationError(f"Invalid amount: {value!r}") from e
    if not amount.is_finite() or amount <= 0:
        raise PaymentValidationError(f"Amount must be positive, got {value!r}")
    return amount.quantize(CENT)


def to_jsonable(data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Make a payload safe for a JSON column (Decimals, UUIDs, dates as strings)."""
    return json.loads(json.dumps(data or {}, default=str))


def resolve_reference_id(
    response: Dict[str, Any],
    reference_id: Optional[str] = None,
) -> str:
    """Gateway correlation key, else caller's reference, else a new UUID."""
    for key in REFERENCE_KEYS:
        value = response.get(key)
        if value not in (None, ""):
            return str(value)
    if reference_id:
        return str(reference_id)
    return str(uuid.uuid4())


@dataclass(frozen=True)
class PayableRef:
    """Type tag + id of the host entity a payment belongs to. Never loaded here."""

    type: str
    id: str

    @classmethod
    def for_model(cls, model: Any) -> "PayableRef":
        """Reference a SQLAlchemy model instance by table name and primary key."""
        return cls(type=model.__tablename__, id=str(model.id))


class PaymentQuery:
    """
    Lazy, chainable query over payment transactions.

    Nothing runs until `all()`, `first()` or `count()` is awaited.
    """

    def __init__(self, db: AsyncSession, statement: Select):
        self.db = db
        self.statement = statement

    def where(self, *criteria: Any) -> "PaymentQuery":
        return PaymentQuery(self.db, self.statement.where(*criteria))

    def order_by(self, *clauses: Any) -> "PaymentQuery":
        return PaymentQuery(self.db, self.statement.order_by(*clauses))

    def limit(self, limit: int) -> "PaymentQuery":
        return PaymentQuery(self.db, self.statement.limit(limit))

    async def all(self) -> List[PaymentTransaction]:
        result = await self.db.execute(self.statement)
        return list(result.scalars().all())

    async def first(self) -> Optional[PaymentTransaction]:
        result = await self.db.execute(self.statement.limit(1))
        return result.scalars().first()

    async def count(self) -> int:
        result = await self.db.execute(
            select(func.count()).select_from(self.statement.subquery())
        )
        return result.scalar_one()


class PaymentLedger:
    """Service owning payment transaction state."""

    def __init__(self, db: Optional[AsyncSession], enabled: bool = True):
        self.db = db
        self.enabled = enabled

    @property
    def is_enabled(self) -> bool:
        return self.enabled and self.db is not None

    def ensure_enabled(self) -> None:
        if not self.is_enabled:
            raise DatabaseDisabledError()

    # ============= Creation =============

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
        """
        Record a new PENDING payment.

        The merchant reference id comes from the gateway response (pidx,
        transaction_uuid, txn_id), else `reference_id`, else a fresh UUID.
        """
        self.ensure_enabled()
        gateway = Gateway.parse(gateway)
        amount = to_amount(amount)
        response = to_jsonable(response)
        merchant_reference_id = resolve_reference_id(response, reference_id)

        if await self.find_by_reference(merchant_reference_id) is not None:
            raise PersistenceError(
                f"Duplicate merchant reference id '{merchant_reference_id}'",
                gateway=gateway.value,
            )

        payment = PaymentTransaction(
            gateway=gateway,
            status=PaymentStatus.PENDING,
            amount=amount,
            currency=currency or "NPR",
            merchant_reference_id=merchant_reference_id,
            gateway_payload=to_jsonable(payload),
            gateway_response=response,
            description=description,
            payable_type=payable.type if payable else None,
            payable_id=str(payable.id) if payable else None,
            initiated_at=utcnow(),
        )

        try:
            self.db.add(payment)
            await self.db.flush()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to create {gateway.value} payment record: {e}")
            raise PersistenceError(str(e), gateway=gateway.value) from e

        logger.info(
            f"Payment {payment.id} created: {gateway.value} {amount} {payment.currency} "
            f"ref={merchant_reference_id}"
        )
        return payment

    # ============= Transitions =============

    async def _transition(
        self,
        payment: PaymentTransaction,
        target: PaymentStatus,
        idempotent: bool = False,
        **values: Any,
    ) -> bool:
        """
        Move a payment to `target` with one conditional UPDATE.

        The row only changes if its stored status is an allowed source, so two
        requests racing on the same payment cannot both apply. With
        `idempotent`, finding the payment already at `target` returns False.
        """
        statement = (
            update(PaymentTransaction)
            .where(PaymentTransaction.id == payment.id)
            .where(PaymentTransaction.status.in_(list(payment_sources(target))))
            .values(status=target, **values)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.db.execute(statement)
            await self.db.refresh(payment)
        except SQLAlchemyError as e:
            logger.error(f"Failed to update payment {payment.id}: {e}")
            raise PersistenceError(
                str(e),
                gateway=payment.gateway.value,
                payment_id=str(payment.id),
            ) from e

        if result.rowcount:
            logger.info(f"Payment {payment.id} -> {target.value}")
            return True

        if idempotent and payment.status == target:
            logger.info(f"Payment {payment.id} already {target.value}, skipping")
            return False

        raise InvalidStateTransitionError("payment", payment.status.value, target.value)

    async def record_verification(
        self,
        payment: PaymentTransaction,
        verification_data: Dict[str, Any],
        success: bool = True,
        gateway_transaction_id: Optional[str] = None,
    ) -> bool:
        """
        Apply a verification outcome: PROCESSING on success, FAILED otherwise.

        Returns False when the payment is already in that state (a repeated
        gateway callback); nothing is written then.
        """
        self.ensure_enabled()
        values: Dict[str, Any] = {"gateway_response": to_jsonable(verification_data)}

        if success:
            target = PaymentStatus.PROCESSING
            values["verified_at"] = utcnow()
            if gateway_transaction_id:
                values["gateway_transaction_id"] = gateway_transaction_id
        else:
            target = PaymentStatus.FAILED
            values["failed_at"] = utcnow()

        if payment.status == target:
            logger.info(f"Duplicate verification for payment {payment.id} ignored")
            return False

        return await self._transition(payment, target, idempotent=True, **values)

    async def complete_payment(self, payment: PaymentTransaction) -> None:
        """PROCESSING -> COMPLETED."""
        self.ensure_enabled()
        await self._transition(payment, PaymentStatus.COMPLETED, completed_at=utcnow())

    async def fail_payment(self, payment: PaymentTransaction) -> None:
        """PENDING / PROCESSING -> FAILED."""
        self.ensure_enabled()
        await self._transition(payment, PaymentStatus.FAILED, failed_at=utcnow())

    async def cancel_payment(self, payment: PaymentTransaction) -> None:
        """PENDING -> CANCELLED."""
        self.ensure_enabled()
        await self._transition(payment, PaymentStatus.CANCELLED, cancelled_at=utcnow())

    async def mark_refunded(self, payment: PaymentTransaction) -> None:
        """COMPLETED -> REFUNDED, once every refund is settled."""
        self.ensure_enabled()
        await self._transition(payment, PaymentStatus.REFUNDED, refunded_at=utcnow())

    # ============= Lookups =============

    async def get(
        self,
        payment_id: Union[uuid.UUID, str],
        for_update: bool = False,
    ) -> Optional[PaymentTransaction]:
        """Get a payment by id, optionally locking the row."""
        self.ensure_enabled()
        if isinstance(payment_id, str):
            try:
                payment_id = uuid.UUID(payment_id)
            except ValueError as e:
                raise PaymentValidationError(f"Invalid payment id: {payment_id!r}") from e
        statement = select(PaymentTransaction).where(PaymentTransaction.id == payment_id)
        if for_update:
            statement = statement.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(statement)
        return result.scalar_one_or_none()

    async def find_by_reference(self, reference_id: str) -> Optional[PaymentTransaction]:
        """Find a payment by merchant reference id; None when there is none."""
        self.ensure_enabled()
        result = await self.db.execute(
            select(PaymentTransaction).where(
                PaymentTransaction.merchant_reference_id == str(reference_id)
            )
        )
        return result.scalar_one_or_none()

    async def find_by_transaction_id(
        self,
        gateway_transaction_id: str,
    ) -> Optional[PaymentTransaction]:
        """Find a payment by the gateway's settlement id."""
        self.ensure_enabled()
        result = await self.db.execute(
            select(PaymentTransaction).where(
                PaymentTransaction.gateway_transaction_id == str(gateway_transaction_id)
            )
        )
        return result.scalar_one_or_none()

    # ============= Queries =============

    def _query(self, *criteria: Any) -> PaymentQuery:
        self.ensure_enabled()
        statement = (
            select(PaymentTransaction)
            .where(*criteria)
            .order_by(PaymentTransaction.created_at.desc())
        )
        return PaymentQuery(self.db, statement)

    def by_status(self, status: Union[PaymentStatus, str]) -> PaymentQuery:
        self.ensure_enabled()
        try:
            status = PaymentStatus(status)
        except ValueError as e:
            raise PaymentValidationError(f"Unknown payment status: {status!r}") from e
        return self._query(PaymentTransaction.status == status)

    def by_gateway(self, gateway: Union[Gateway, str]) -> PaymentQuery:
        self.ensure_enabled()
        return self._query(PaymentTransaction.gateway == Gateway.parse(gateway))

    def for_payable(self, payable_type: str, payable_id: Any) -> PaymentQuery:
        return self._query(
            PaymentTransaction.payable_type == payable_type,
            PaymentTransaction.payable_id == str(payable_id),
        )

    def pending(self) -> PaymentQuery:
        """PENDING and PROCESSING payments."""
        return self._query(PaymentTransaction.status.in_(PENDING_STATUSES))

    def completed(self) -> PaymentQuery:
        return self._query(PaymentTransaction.status == PaymentStatus.COMPLETED)

    def failed(self) -> PaymentQuery:
        return self._query(PaymentTransaction.status == PaymentStatus.FAILED)

    # ============= Refund totals =============

    async def refunded_amount(self, payment: PaymentTransaction) -> Decimal:
        """Sum of COMPLETED refunds of a payment."""
        self.ensure_enabled()
        result = await self.db.execute(
            select(func.coalesce(func.sum(PaymentRefund.refund_amount), 0))
            .where(PaymentRefund.payment_id == payment.id)
            .where(PaymentRefund.refund_status == RefundStatus.COMPLETED)
        )
        return Decimal(str(result.scalar_one())).quantize(CENT)

    async def remaining_refundable_amount(self, payment: PaymentTransaction) -> Decimal:
        """Amount minus completed refunds, never below zero."""
        remaining = Decimal(str(payment.amount)) - await self.refunded_amount(payment)
        return max(remaining, Decimal("0")).quantize(CENT)
