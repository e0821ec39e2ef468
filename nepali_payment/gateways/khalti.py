"""
Khalti client - ePayment (KPG-2) initiate and lookup.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from nepali_payment.gateways.base import GatewayResponse, HttpGatewayClient
from nepali_payment.fsm.states import Gateway

logger = logging.getLogger(__name__)

KHALTI_BASE_URLS = {
    "test": "https://dev.khalti.com/api/v2/",
    "live": "https://khalti.com/api/v2/",
}


class KhaltiClient(HttpGatewayClient):
    """Khalti digital wallet."""

    gateway = Gateway.KHALTI

    def __init__(
        self,
        secret_key: str,
        environment: str = "test",
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        super().__init__(http_client=http_client, timeout=timeout)
        self.secret_key = secret_key
        self.environment = environment
        self.base_url = KHALTI_BASE_URLS.get(environment, KHALTI_BASE_URLS["test"])

    @property
    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Key {self.secret_key}"}

    async def payment(self, data: Dict[str, Any]) -> GatewayResponse:
        """
        Initiate a payment.

        Amount is in paisa. The response carries `pidx` and the `payment_url`
        the customer is redirected to.
        """
        self._require(
            data,
            "return_url",
            "website_url",
            "amount",
            "purchase_order_id",
            "purchase_order_name",
        )
        response = await self._request(
            "POST",
            f"{self.base_url}epayment/initiate/",
            json=data,
            headers=self._headers,
        )
        if response.success and not response.get("pidx"):
            response.success = False

        logger.info(f"Khalti payment initiated: {response.get('pidx')}")
        return response

    async def verify(self, data: Dict[str, Any]) -> GatewayResponse:
        """Look up a payment by pidx; only `Completed` counts as success."""
        self._require(data, "pidx")
        response = await self._request(
            "POST",
            f"{self.base_url}epayment/lookup/",
            json={"pidx": data["pidx"]},
            headers=self._headers,
        )
        response.success = response.success and response.get("status") == "Completed"
        return response
