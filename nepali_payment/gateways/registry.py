"""
Gateway registry - builds gateway clients from settings and caches them.
"""

import logging
import threading
from typing import Callable, Dict, Optional, Union

from nepali_payment.config import REQUIRED_GATEWAY_FIELDS, Settings
from nepali_payment.exceptions import ConfigurationError
from nepali_payment.fsm.states import Gateway
from nepali_payment.gateways.base import GatewayClient
from nepali_payment.gateways.connectips import ConnectIpsClient
from nepali_payment.gateways.esewa import EsewaClient
from nepali_payment.gateways.khalti import KhaltiClient

logger = logging.getLogger(__name__)

ClientBuilder = Callable[[Settings], GatewayClient]


def build_esewa(settings: Settings) -> GatewayClient:
    return EsewaClient(
        product_code=settings.esewa_product_code,
        secret_key=settings.esewa_secret_key,
        environment=settings.esewa_environment,
        timeout=settings.http_timeout,
    )


def build_khalti(settings: Settings) -> GatewayClient:
    return KhaltiClient(
        secret_key=settings.khalti_secret_key,
        environment=settings.khalti_environment,
        timeout=settings.http_timeout,
    )


def build_connectips(settings: Settings) -> GatewayClient:
    return ConnectIpsClient(
        merchant_id=settings.connectips_merchant_id,
        app_id=settings.connectips_app_id,
        app_name=settings.connectips_app_name,
        private_key_path=settings.connectips_private_key_path,
        password=settings.connectips_password,
        key_password=settings.connectips_key_password,
        environment=settings.connectips_environment,
        timeout=settings.http_timeout,
    )


DEFAULT_BUILDERS: Dict[Gateway, ClientBuilder] = {
    Gateway.ESEWA: build_esewa,
    Gateway.KHALTI: build_khalti,
    Gateway.CONNECTIPS: build_connectips,
}


class GatewayRegistry:
    """
    Resolves a gateway name to a configured client.

    One client per gateway is kept for the registry's lifetime; the cache is
    lock-guarded so threads sharing a registry never build two.
    """

    def __init__(
        self,
        settings: Settings,
        builders: Optional[Dict[Gateway, ClientBuilder]] = None,
    ):
        self.settings = settings
        self._builders = {**DEFAULT_BUILDERS, **(builders or {})}
        self._clients: Dict[Gateway, GatewayClient] = {}
        self._lock = threading.Lock()

    def make(self, gateway: Union[Gateway, str]) -> GatewayClient:
        """Return the cached client for a gateway, building it on first use."""
        gateway = Gateway.parse(gateway)

        client = self._clients.get(gateway)
        if client is not None:
            return client

        with self._lock:
            client = self._clients.get(gateway)
            if client is None:
                self._ensure_config(gateway)
                client = self._builders[gateway](self.settings)
                self._clients[gateway] = client
                logger.info(f"Gateway client created: {gateway.value}")
        return client

    def _ensure_config(self, gateway: Gateway) -> None:
        missing = self.settings.missing_fields(gateway, REQUIRED_GATEWAY_FIELDS[gateway])
        if missing:
            raise ConfigurationError(gateway.value, missing[0])

    def is_cached(self, gateway: Union[Gateway, str]) -> bool:
        return Gateway.parse(gateway) in self._clients

    def forget(self, gateway: Union[Gateway, str]) -> None:
        """Drop one cached client; forgetting an uncached gateway is a no-op."""
        with self._lock:
            self._clients.pop(Gateway.parse(gateway), None)

    def flush(self) -> None:
        """Drop every cached client."""
        with self._lock:
            self._clients.clear()

    async def aclose(self) -> None:
        """Close and drop every cached client."""
        with self._lock:
            clients = list(self._clients.values())
            self._clients.clear()
        for client in clients:
            await client.aclose()
