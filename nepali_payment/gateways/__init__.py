"""Gateway clients and the registry that builds them."""

from nepali_payment.gateways.base import GatewayClient, GatewayResponse
from nepali_payment.gateways.connectips import ConnectIpsClient
from nepali_payment.gateways.esewa import EsewaClient
from nepali_payment.gateways.khalti import KhaltiClient
from nepali_payment.gateways.registry import GatewayRegistry

__all__ = [
    "GatewayClient",
    "GatewayResponse",
    "ConnectIpsClient",
    "EsewaClient",
    "KhaltiClient",
    "GatewayRegistry",
]
