"""
Gateway client contract.

Every gateway client - the bundled ones, test fakes, and the ledger-aware
PaymentInterceptor - implements GatewayClient, so callers never need to know
which one they were handed.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx

from nepali_payment.exceptions import GatewayError, PaymentValidationError
from nepali_payment.fsm.states import Gateway

logger = logging.getLogger(__name__)


@dataclass
class GatewayResponse:
    """Normalized answer from a gateway call."""

    success: bool
    data: Dict[str, Any] = field(default_factory=dict)
    status_code: Optional[int] = None

    def is_success(self) -> bool:
        return self.success

    def to_dict(self) -> Dict[str, Any]:
        """Serializable copy of what the gateway returned."""
        return dict(self.data)

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)


class GatewayClient(ABC):
    """Interface every gateway client satisfies."""

    gateway: Gateway

    @abstractmethod
    async def payment(self, data: Dict[str, Any]) -> GatewayResponse:
        """Start a payment."""

    @abstractmethod
    async def verify(self, data: Dict[str, Any]) -> GatewayResponse:
        """Confirm a payment from the gateway's callback data."""

    async def aclose(self) -> None:
        """Release network resources."""


class HttpGatewayClient(GatewayClient):
    """Shared httpx plumbing for the bundled clients."""

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    @staticmethod
    def _require(data: Dict[str, Any], *keys: str) -> None:
        missing = [key for key in keys if data.get(key) in (None, "")]
        if missing:
            raise PaymentValidationError(
                f"Missing required payment field(s): {', '.join(missing)}",
                details={"missing": missing},
            )

    async def _request(self, method: str, url: str, **kwargs: Any) -> GatewayResponse:
        """
        Send a request and wrap the JSON body.

        4xx answers come back as unsuccessful responses (the gateway rejected
        the request); transport errors and 5xx raise GatewayError.
        """
        try:
            response = await self._http.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"{self.gateway.value} request to {url} failed: {e}")
            raise GatewayError(self.gateway.value, str(e)) from e

        if response.status_code >= 500:
            raise GatewayError(
                self.gateway.value,
                f"HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError:
            body = {"raw": response.text}
        if not isinstance(body, dict):
            body = {"data": body}

        if response.status_code >= 400:
            logger.warning(
                f"{self.gateway.value} rejected request to {url}: "
                f"HTTP {response.status_code} {body}"
            )
            return GatewayResponse(False, body, response.status_code)

        return GatewayResponse(True, body, response.status_code)
