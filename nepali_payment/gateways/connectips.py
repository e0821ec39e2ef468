"""
ConnectIPS client - signed login-page form and transaction validation.

Tokens are RSA-SHA256 signatures made with the merchant's private key
(PEM, or the .pfx ConnectIPS issues).
"""

import base64
import logging
from datetime import date
from pathlib import Path
from typing import Any, Dict, Optional

import httpx
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.hazmat.primitives.serialization import pkcs12

from nepali_payment.exceptions import ConfigurationError
from nepali_payment.gateways.base import GatewayResponse, HttpGatewayClient
from nepali_payment.fsm.states import Gateway

logger = logging.getLogger(__name__)

CONNECTIPS_BASE_URLS = {
    "test": "https://uat.connectips.com",
    "live": "https://connectips.com",
}


class ConnectIpsClient(HttpGatewayClient):
    """ConnectIPS bank interconnection."""

    gateway = Gateway.CONNECTIPS

    def __init__(
        self,
        merchant_id: str,
        app_id: str,
        app_name: str,
        private_key_path: str,
        password: str,
        environment: str = "test",
        key_password: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        super().__init__(http_client=http_client, timeout=timeout)
        self.merchant_id = str(merchant_id)
        self.app_id = app_id
        self.app_name = app_name
        self.private_key_path = private_key_path
        self.password = password
        self.key_password = key_password
        self.environment = environment
        self.base_url = CONNECTIPS_BASE_URLS.get(environment, CONNECTIPS_BASE_URLS["test"])
        self._private_key = None

    @property
    def form_url(self) -> str:
        return f"{self.base_url}/connectipswebgw/loginpage"

    @property
    def validate_url(self) -> str:
        return f"{self.base_url}/connectipswebws/api/creditor/validatetxn"

    def _load_private_key(self):
        path = Path(self.private_key_path)
        try:
            raw = path.read_bytes()
        except OSError as e:
            raise ConfigurationError(Gateway.CONNECTIPS.value, "private_key_path") from e

        password = self.key_password.encode() if self.key_password else None
        if path.suffix.lower() in (".pfx", ".p12"):
            key, _, _ = pkcs12.load_key_and_certificates(raw, password)
            return key
        return serialization.load_pem_private_key(raw, password=password)

    def sign(self, message: str) -> str:
        """Base64 RSA-SHA256 signature of `message`."""
        if self._private_key is None:
            self._private_key = self._load_private_key()
        signature = self._private_key.sign(
            message.encode(),
            padding.PKCS1v15(),
            hashes.SHA256(),
        )
        return base64.b64encode(signature).decode()

    async def payment(self, data: Dict[str, Any]) -> GatewayResponse:
        """
        Build the signed form for the ConnectIPS login page.

        Amount is in paisa. `txn_id` (or `transaction_uuid`) identifies the
        transaction and comes back on the return URL as TXNID.
        """
        txn_id = data.get("txn_id") or data.get("transaction_uuid")
        payload = {**data, "txn_id": txn_id}
        self._require(payload, "txn_id", "amount")

        txn_date = data.get("txn_date") or date.today().strftime("%d-%m-%Y")
        fields = {
            "MERCHANTID": self.merchant_id,
            "APPID": self.app_id,
            "APPNAME": self.app_name,
            "TXNID": str(txn_id),
            "TXNDATE": txn_date,
            "TXNCRNCY": data.get("currency", "NPR"),
            "TXNAMT": str(data["amount"]),
            "REFERENCEID": str(data.get("reference_id") or txn_id),
            "REMARKS": data.get("remarks", ""),
            "PARTICULARS": data.get("particulars", ""),
        }
        message = ",".join(f"{key}={value}" for key, value in fields.items()) + ",TOKEN=TOKEN"
        fields["TOKEN"] = self.sign(message)

        return GatewayResponse(
            True,
            {
                "form_url": self.form_url,
                "method": "POST",
                "fields": fields,
                "txn_id": fields["TXNID"],
                "return_url": data.get("return_url"),
            },
        )

    async def verify(self, data: Dict[str, Any]) -> GatewayResponse:
        """Validate a transaction; only status `SUCCESS` counts."""
        txn_id = data.get("txn_id") or data.get("TXNID") or data.get("transaction_uuid")
        amount = data.get("amount") or data.get("txn_amt")
        self._require({"txn_id": txn_id, "amount": amount}, "txn_id", "amount")

        token = self.sign(
            f"MERCHANTID={self.merchant_id},APPID={self.app_id},"
            f"REFERENCEID={txn_id},TXNAMT={amount}"
        )
        response = await self._request(
            "POST",
            self.validate_url,
            json={
                "merchantId": self.merchant_id,
                "appId": self.app_id,
                "referenceId": str(txn_id),
                "txnAmt": str(amount),
                "token": token,
            },
            auth=(self.app_id, self.password),
        )
        response.data.setdefault("txn_id", str(txn_id))
        response.success = response.success and response.get("status") == "SUCCESS"
        return response
