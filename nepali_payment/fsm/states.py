"""
Payment state definitions.
Gateways, payment and refund statuses, refund reasons.
"""

from enum import Enum
from typing import Union

from nepali_payment.exceptions import UnsupportedGatewayError


class Gateway(str, Enum):
    """Supported payment gateways."""

    ESEWA = "esewa"
    KHALTI = "khalti"
    CONNECTIPS = "connectips"

    @property
    def label(self) -> str:
        """Human-readable gateway name."""
        labels = {
            self.ESEWA: "eSewa",
            self.KHALTI: "Khalti",
            self.CONNECTIPS: "ConnectIPS",
        }
        return labels.get(self, self.value)

    @classmethod
    def parse(cls, value: Union["Gateway", str]) -> "Gateway":
        """Parse a gateway identifier coming from outside the package."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        raise UnsupportedGatewayError(
            str(value),
            supported=[gateway.value for gateway in cls],
        )


class PaymentStatus(str, Enum):
    """
    Status of a payment transaction.
    PENDING and PROCESSING count as pending; the rest are terminal.
    """

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"

    @property
    def is_terminal(self) -> bool:
        return self in (
            PaymentStatus.COMPLETED,
            PaymentStatus.FAILED,
            PaymentStatus.CANCELLED,
            PaymentStatus.REFUNDED,
        )

    @property
    def is_pending(self) -> bool:
        return self in (PaymentStatus.PENDING, PaymentStatus.PROCESSING)

    @property
    def label(self) -> str:
        """Label for admin screens."""
        labels = {
            self.PENDING: "Pending",
            self.PROCESSING: "Processing (paid)",
            self.COMPLETED: "Completed",
            self.FAILED: "Failed",
            self.CANCELLED: "Cancelled",
            self.REFUNDED: "Refunded",
        }
        return labels.get(self, self.value)


class RefundStatus(str, Enum):
    """Status of a refund request."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RefundStatus.COMPLETED, RefundStatus.FAILED)

    @property
    def is_open(self) -> bool:
        return not self.is_terminal


class RefundReason(str, Enum):
    """Why a refund was requested."""

    USER_REQUEST = "user_request"   # Customer asked for it
    DUPLICATE = "duplicate"         # Charged twice
    ERROR = "error"                 # System error
    OTHER = "other"

    @property
    def label(self) -> str:
        labels = {
            self.USER_REQUEST: "User Request",
            self.DUPLICATE: "Duplicate Payment",
            self.ERROR: "System Error",
            self.OTHER: "Other",
        }
        return labels.get(self, self.value)

    @classmethod
    def parse(cls, value: Union["RefundReason", str, None]) -> "RefundReason":
        """Map a reason string to the enum; unknown reasons become OTHER."""
        if value is None:
            return cls.USER_REQUEST
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.OTHER
