"""PaymentTransaction model - one record per payment attempt."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import JSON, DateTime, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from nepali_payment.database import Base, enum_column_type, utcnow
from nepali_payment.fsm.states import Gateway, PaymentStatus


class PaymentTransaction(Base):
    """
    Payment attempt tracked from initiation through verification.

    Status only changes through the ledger's guarded transitions; rows are
    never deleted so the table doubles as an audit trail.
    """

    __tablename__ = "payment_transactions"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    gateway: Mapped[Gateway] = mapped_column(
        enum_column_type(Gateway, "payment_gateway"),
        nullable=False,
        index=True,
    )

    status: Mapped[PaymentStatus] = mapped_column(
        enum_column_type(PaymentStatus, "payment_status"),
        nullable=False,
        default=PaymentStatus.PENDING,
        index=True,
    )

    amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
    )

    currency: Mapped[str] = mapped_column(
        String(3),
        default="NPR",
        nullable=False,
    )

    # Lookup key used when the gateway calls back
    merchant_reference_id: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
    )

    # Gateway's own settlement id, known after verification
    gateway_transaction_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        unique=True,
        nullable=True,
    )

    # Exactly what was sent / what came back
    gateway_payload: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    gateway_response: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)

    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Weak reference to the host application's order / invoice / user
    payable_type: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    payable_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Lifecycle timestamps
    initiated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    verified_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    failed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    refunded_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        index=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    @property
    def is_completed(self) -> bool:
        return self.status == PaymentStatus.COMPLETED

    @property
    def is_failed(self) -> bool:
        return self.status == PaymentStatus.FAILED

    @property
    def is_pending(self) -> bool:
        return self.status.is_pending

    @property
    def can_be_refunded(self) -> bool:
        return self.status == PaymentStatus.COMPLETED

    def __repr__(self) -> str:
        return f"<PaymentTransaction {self.gateway.value}:{self.merchant_reference_id} {self.status.value}>"
