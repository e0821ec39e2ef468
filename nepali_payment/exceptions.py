"""
Exception hierarchy for payment orchestration.

Every error carries a message, a machine-readable error code and a details
dict so host applications can map them onto their own responses.
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional


class NepaliPaymentError(Exception):
    """Base class for all package errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)


# ============================================================================
# Gateway / configuration
# ============================================================================

class UnsupportedGatewayError(NepaliPaymentError, ValueError):
    """Gateway identifier is not one of the supported gateways."""

    def __init__(self, gateway: str, supported: Optional[List[str]] = None):
        self.gateway = gateway
        self.supported = supported or []
        message = f"Unsupported gateway: {gateway}."
        if self.supported:
            message += f" Supported gateways: {', '.join(self.supported)}"
        super().__init__(message, details={"gateway": gateway})


class ConfigurationError(NepaliPaymentError):
    """A required gateway setting is missing."""

    def __init__(self, gateway: str, field: str):
        self.gateway = gateway
        self.field = field
        super().__init__(
            f"Missing config for nepali-payment [{gateway}.{field}]",
            details={"gateway": gateway, "field": field},
        )


class GatewayError(NepaliPaymentError):
    """Transport or protocol failure while talking to a gateway."""

    def __init__(self, gateway: str, message: str, status_code: Optional[int] = None):
        self.gateway = gateway
        self.status_code = status_code
        super().__init__(
            f"{gateway} request failed: {message}",
            details={"gateway": gateway, "status_code": status_code},
        )


# ============================================================================
# Persistence
# ============================================================================

class DatabaseDisabledError(NepaliPaymentError):
    """Operation needs persistence but it is turned off."""

    def __init__(self):
        super().__init__(
            "Database integration is not enabled. "
            "Set NEPALI_PAYMENT_DATABASE_ENABLED=true in .env"
        )


class PersistenceError(NepaliPaymentError):
    """
    Storage operation failed.

    The original exception is chained as __cause__. When a gateway call
    already succeeded, its serialized response is kept on `response` so the
    caller can reconcile.
    """

    def __init__(
        self,
        reason: str,
        gateway: Optional[str] = None,
        payment_id: Optional[str] = None,
        response: Optional[Dict[str, Any]] = None,
    ):
        self.reason = reason
        self.gateway = gateway
        self.payment_id = payment_id
        self.response = response

        if payment_id:
            message = f"Failed to update payment record '{payment_id}'. Reason: {reason}"
        else:
            message = (
                f"Failed to create payment record for gateway '{gateway}'. "
                f"Reason: {reason}"
            )
        super().__init__(
            message,
            details={"gateway": gateway, "payment_id": payment_id},
        )


# ============================================================================
# Business rules
# ============================================================================

class PaymentValidationError(NepaliPaymentError, ValueError):
    """Input rejected before anything was charged or stored."""


class InvalidStateTransitionError(NepaliPaymentError):
    """Requested status change is not in the transition table."""

    def __init__(self, entity: str, current: str, target: str):
        self.entity = entity
        self.current = current
        self.target = target
        super().__init__(
            f"Cannot move {entity} from '{current}' to '{target}'",
            details={"entity": entity, "current": current, "target": target},
        )


class RefundNotAllowedError(NepaliPaymentError):
    """Only completed payments can be refunded."""

    def __init__(self, status: str):
        self.status = status
        super().__init__(
            f"Payment with status '{status}' cannot be refunded. "
            "Only completed payments can be refunded.",
            details={"status": status},
        )


class RefundAmountExceededError(NepaliPaymentError):
    """Refund would exceed what is left to refund."""

    def __init__(self, requested: Decimal, available: Decimal):
        self.requested = requested
        self.available = available
        super().__init__(
            f"Refund amount ({requested}) exceeds remaining refundable amount ({available})",
            details={"requested": str(requested), "available": str(available)},
        )
