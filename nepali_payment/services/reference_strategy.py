"""
Reference strategies - gateway-specific payload shaping and correlation ids.

Keeps the interceptor gateway-agnostic: each gateway knows which callback URLs
it needs and which key of a callback points back at our transaction.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Union

from nepali_payment.config import Settings
from nepali_payment.exceptions import PaymentValidationError
from nepali_payment.fsm.states import Gateway
from nepali_payment.gateways.esewa import decode_callback

logger = logging.getLogger(__name__)


def _first_present(data: Dict[str, Any], *keys: str) -> Optional[str]:
    for key in keys:
        value = data.get(key)
        if value not in (None, ""):
            return str(value)
    return None


class ReferenceStrategy(ABC):
    """Gateway-specific request shaping and callback parsing."""

    gateway: Gateway

    def __init__(self, settings: Settings):
        self.settings = settings

    def defaults(self) -> Dict[str, Any]:
        """Fields injected into every payment request; empty settings are skipped."""
        return {}

    def build_payment_data(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Merge configured defaults under the caller's payload (caller wins)."""
        defaults = {key: value for key, value in self.defaults().items() if value}
        return {**defaults, **data}

    @abstractmethod
    def extract_reference_id(self, data: Dict[str, Any]) -> Optional[str]:
        """Merchant reference id carried by verification data, if any."""

    def extract_transaction_id(self, response: Dict[str, Any]) -> Optional[str]:
        """Gateway's own settlement id from a verification response, if any."""
        return None


class EsewaStrategy(ReferenceStrategy):
    gateway = Gateway.ESEWA

    def defaults(self) -> Dict[str, Any]:
        return {
            "success_url": self.settings.esewa_success_url,
            "failure_url": self.settings.esewa_failure_url,
        }

    def extract_reference_id(self, data: Dict[str, Any]) -> Optional[str]:
        reference = _first_present(data, "transaction_uuid")
        if reference or not data.get("data"):
            return reference

        # Raw redirect: base64 JSON in `data`
        try:
            return _first_present(decode_callback(data["data"]), "transaction_uuid")
        except PaymentValidationError:
            logger.warning("Could not decode eSewa callback data")
            return None

    def extract_transaction_id(self, response: Dict[str, Any]) -> Optional[str]:
        return _first_present(response, "transaction_code", "ref_id")


class KhaltiStrategy(ReferenceStrategy):
    gateway = Gateway.KHALTI

    def defaults(self) -> Dict[str, Any]:
        return {
            "return_url": self.settings.khalti_success_url,
            "website_url": self.settings.khalti_website_url,
        }

    def extract_reference_id(self, data: Dict[str, Any]) -> Optional[str]:
        return _first_present(data, "pidx")

    def extract_transaction_id(self, response: Dict[str, Any]) -> Optional[str]:
        return _first_present(response, "transaction_id")


class ConnectIpsStrategy(ReferenceStrategy):
    gateway = Gateway.CONNECTIPS

    def defaults(self) -> Dict[str, Any]:
        return {"return_url": self.settings.connectips_return_url}

    def extract_reference_id(self, data: Dict[str, Any]) -> Optional[str]:
        return _first_present(data, "transaction_uuid", "txn_id", "TXNID")


STRATEGY_CLASSES = {
    Gateway.ESEWA: EsewaStrategy,
    Gateway.KHALTI: KhaltiStrategy,
    Gateway.CONNECTIPS: ConnectIpsStrategy,
}


class StrategyRegistry:
    """One strategy instance per gateway, built once and passed around."""

    def __init__(self, settings: Settings):
        self._strategies: Dict[Gateway, ReferenceStrategy] = {
            gateway: strategy_cls(settings)
            for gateway, strategy_cls in STRATEGY_CLASSES.items()
        }

    def for_gateway(self, gateway: Union[Gateway, str]) -> ReferenceStrategy:
        return self._strategies[Gateway.parse(gateway)]
