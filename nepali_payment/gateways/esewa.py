"""
eSewa client - ePay v2 signed form and transaction status check.
"""

import base64
import binascii
import hashlib
import hmac
import json
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

import httpx

from nepali_payment.exceptions import PaymentValidationError
from nepali_payment.gateways.base import GatewayResponse, HttpGatewayClient
from nepali_payment.fsm.states import Gateway

logger = logging.getLogger(__name__)

ESEWA_FORM_URLS = {
    "test": "https://rc-epay.esewa.com.np/api/epay/main/v2/form",
    "live": "https://epay.esewa.com.np/api/epay/main/v2/form",
}

ESEWA_STATUS_URLS = {
    "test": "https://rc.esewa.com.np/api/epay/transaction/status/",
    "live": "https://esewa.com.np/api/epay/transaction/status/",
}

SIGNED_FIELD_NAMES = "total_amount,transaction_uuid,product_code"


def _format_amount(value: Any) -> str:
    """Render an amount the way eSewa signs it (no trailing '.00')."""
    try:
        amount = Decimal(str(value).replace(",", ""))
    except InvalidOperation as e:
        raise PaymentValidationError(f"Invalid amount: {value!r}") from e
    if amount == amount.to_integral_value():
        return str(amount.quantize(Decimal("1")))
    return str(amount.normalize())


def decode_callback(encoded: str) -> Dict[str, Any]:
    """Decode the base64 JSON `data` parameter eSewa redirects back with."""
    try:
        decoded = json.loads(base64.b64decode(encoded))
    except (binascii.Error, ValueError) as e:
        raise PaymentValidationError("Malformed eSewa callback data") from e
    if not isinstance(decoded, dict):
        raise PaymentValidationError("Malformed eSewa callback data")
    return decoded


class EsewaClient(HttpGatewayClient):
    """eSewa wallet (redirect form)."""

    gateway = Gateway.ESEWA

    def __init__(
        self,
        product_code: str,
        secret_key: str,
        environment: str = "test",
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        super().__init__(http_client=http_client, timeout=timeout)
        self.product_code = product_code
        self.secret_key = secret_key
        self.environment = environment
        self.form_url = ESEWA_FORM_URLS.get(environment, ESEWA_FORM_URLS["test"])
        self.status_url = ESEWA_STATUS_URLS.get(environment, ESEWA_STATUS_URLS["test"])

    def sign(self, fields: Dict[str, Any], signed_field_names: str = SIGNED_FIELD_NAMES) -> str:
        """HMAC-SHA256 over `name=value` pairs, base64 encoded."""
        message = ",".join(
            f"{name}={fields.get(name, '')}" for name in signed_field_names.split(",")
        )
        digest = hmac.new(
            self.secret_key.encode(),
            message.encode(),
            hashlib.sha256,
        ).digest()
        return base64.b64encode(digest).decode()

    async def payment(self, data: Dict[str, Any]) -> GatewayResponse:
        """
        Build the signed form the customer posts to eSewa.

        No request is sent here; eSewa is reached through the browser.
        """
        self._require(data, "amount", "transaction_uuid", "success_url", "failure_url")

        amount = Decimal(_format_amount(data["amount"]))
        tax_amount = Decimal(_format_amount(data.get("tax_amount", 0)))
        service_charge = Decimal(_format_amount(data.get("product_service_charge", 0)))
        delivery_charge = Decimal(_format_amount(data.get("product_delivery_charge", 0)))
        total_amount = data.get("total_amount") or (
            amount + tax_amount + service_charge + delivery_charge
        )

        fields = {
            "amount": _format_amount(amount),
            "tax_amount": _format_amount(tax_amount),
            "total_amount": _format_amount(total_amount),
            "transaction_uuid": str(data["transaction_uuid"]),
            "product_code": data.get("product_code") or self.product_code,
            "product_service_charge": _format_amount(service_charge),
            "product_delivery_charge": _format_amount(delivery_charge),
            "success_url": data["success_url"],
            "failure_url": data["failure_url"],
            "signed_field_names": SIGNED_FIELD_NAMES,
        }
        fields["signature"] = self.sign(fields)

        return GatewayResponse(
            True,
            {
                "form_url": self.form_url,
                "method": "POST",
                "fields": fields,
                "transaction_uuid": fields["transaction_uuid"],
                "total_amount": fields["total_amount"],
            },
        )

    async def verify(self, data: Dict[str, Any]) -> GatewayResponse:
        """
        Verify a callback.

        Accepts either the raw `data` parameter eSewa sends back or already
        decoded fields. A bad signature fails without calling eSewa.
        """
        payload = decode_callback(data["data"]) if data.get("data") else dict(data)

        signature = payload.get("signature")
        if signature:
            expected = self.sign(
                payload,
                payload.get("signed_field_names", SIGNED_FIELD_NAMES),
            )
            if not hmac.compare_digest(expected, signature):
                logger.error(
                    f"eSewa callback signature mismatch for {payload.get('transaction_uuid')}"
                )
                return GatewayResponse(False, {**payload, "error": "Invalid signature"})

        self._require(payload, "transaction_uuid", "total_amount")
        response = await self._request(
            "GET",
            self.status_url,
            params={
                "product_code": payload.get("product_code") or self.product_code,
                "total_amount": str(payload["total_amount"]).replace(",", ""),
                "transaction_uuid": payload["transaction_uuid"],
            },
        )
        response.data = {**payload, **response.data}
        response.data.pop("signature", None)
        response.success = response.success and response.get("status") == "COMPLETE"
        return response
