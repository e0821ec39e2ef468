"""PaymentRefund model - refund requests against a payment transaction."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from nepali_payment.database import Base, enum_column_type, utcnow
from nepali_payment.fsm.states import RefundReason, RefundStatus


class PaymentRefund(Base):
    """
    Refund request.
    Completed refunds of one payment never add up to more than its amount.
    """

    __tablename__ = "payment_refunds"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    payment_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("payment_transactions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    refund_amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
    )

    refund_reason: Mapped[RefundReason] = mapped_column(
        enum_column_type(RefundReason, "refund_reason"),
        nullable=False,
        default=RefundReason.USER_REQUEST,
    )

    refund_status: Mapped[RefundStatus] = mapped_column(
        enum_column_type(RefundStatus, "refund_status"),
        nullable=False,
        default=RefundStatus.PENDING,
        index=True,
    )

    gateway_refund_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    gateway_response: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Opaque id of whoever asked for the refund
    requested_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    requested_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    @property
    def is_completed(self) -> bool:
        return self.refund_status == RefundStatus.COMPLETED

    @property
    def is_open(self) -> bool:
        return self.refund_status.is_open

    def __repr__(self) -> str:
        return f"<PaymentRefund {self.refund_amount} {self.refund_status.value}>"
