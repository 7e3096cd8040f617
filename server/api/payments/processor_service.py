# Payment processor client
# Charges, refunds and promotion-code lookups over the processor's HTTP API

import hashlib
import hmac
import httpx
import logging
import secrets
from decimal import Decimal
from typing import Dict, Any, Optional

from ordering.errors import ConfigurationError, ProcessorError
from utils.config import Config

logger = logging.getLogger(__name__)

# amounts ending in 02 cents are declined in mock mode
MOCK_DECLINE_CENTS = 2


class PaymentProcessorService:
    """
    Payment processor client

    Answers {"success": True, "processor_reference": ...} or
    {"success": False, "reason": ...}; transport failures raise ProcessorError.
    Mock mode is opt-in; a live service without an API key raises ConfigurationError.
    """

    def __init__(self, payments_config: Dict[str, Any] = None, transport: httpx.BaseTransport = None):
        payments_config = payments_config if payments_config is not None else Config().get_payments_config()
        self.base_url = payments_config.get("base_url", "")
        self.api_key = payments_config.get("api_key")
        self.currency = payments_config.get("currency", "usd")
        self.timeout = payments_config.get("timeout_seconds", 10)
        self.webhook_secret = payments_config.get("webhook_secret")
        self.mock_promo_codes = payments_config.get("mock_promo_codes", {})
        self.transport = transport
        self.mock_mode = bool(payments_config.get("mock_mode", False))

    @staticmethod
    def _is_set(value: Optional[str]) -> bool:
        return bool(value) and not str(value).startswith("${")

    def _require_api_key(self):
        if not self._is_set(self.api_key):
            logger.error("Payment processor API key is not configured and mock mode is off")
            raise ConfigurationError("Payment processor API key is not configured")

    def _client(self) -> httpx.Client:
        self._require_api_key()
        return httpx.Client(
            base_url=self.base_url,
            timeout=self.timeout,
            headers={"Authorization": f"Bearer {self.api_key}"},
            transport=self.transport,
        )

    def _post(self, path: str, payload: Dict[str, Any], idempotency_key: str) -> Dict[str, Any]:
        try:
            with self._client() as client:
                response = client.post(path, json=payload, headers={"Idempotency-Key": idempotency_key})
        except httpx.RequestError as e:
            logger.error(f"Payment processor request failed: {path}: {str(e)}")
            raise ProcessorError(f"Payment processor unreachable: {str(e)}") from e

        return self._parse_result(path, response)

    @staticmethod
    def _parse_result(path: str, response: httpx.Response) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError as e:
            logger.error(f"Payment processor returned non-JSON ({response.status_code}) for {path}")
            raise ProcessorError("Payment processor returned an unreadable response") from e

        # 402 is a business decline; any other error status is a processor failure
        if response.status_code == 402 or (response.is_success and data.get("status") == "declined"):
            reason = (data.get("error") or {}).get("message") or data.get("decline_reason") or "Payment was declined"
            logger.info(f"Payment processor declined {path}: {reason}")
            return {"success": False, "reason": reason}

        if not response.is_success or not data.get("id"):
            logger.error(f"Payment processor error {response.status_code} for {path}: {data}")
            raise ProcessorError(f"Payment processor error {response.status_code}")

        return {"success": True, "processor_reference": data["id"]}

    def charge(self, amount_cents: int, currency: str, order_id: int, order_number: str,
               idempotency_key: str, payment_token: Optional[str] = None) -> Dict[str, Any]:
        """
        Charge a customer

        Args:
            amount_cents: amount to capture
            currency: ISO currency code
            order_id: local order id, sent as metadata
            order_number: human-readable order number
            idempotency_key: opaque key the processor deduplicates on
            payment_token: card token captured by the checkout page
        """
        if self.mock_mode:
            return self._mock_result("ch", amount_cents, idempotency_key)

        return self._post("/charges", {
            "amount": amount_cents,
            "currency": currency,
            "source": payment_token,
            "description": f"Order {order_number}",
            "metadata": {"order_id": order_id, "order_number": order_number},
        }, idempotency_key)

    def refund(self, processor_reference: str, amount_cents: int, currency: str, order_id: int,
               idempotency_key: str) -> Dict[str, Any]:
        if self.mock_mode:
            return self._mock_result("re", amount_cents, idempotency_key)

        return self._post("/refunds", {
            "charge": processor_reference,
            "amount": amount_cents,
            "currency": currency,
            "metadata": {"order_id": order_id},
        }, idempotency_key)

    def lookup_promo_code(self, code: str) -> Optional[Dict[str, Any]]:
        """
        Active promotion for a code

        Returns:
            {"percent_off": Decimal} or {"amount_off": Decimal}, None when unknown or inactive
        """
        if self.mock_mode:
            promotion = self.mock_promo_codes.get(code.upper())
            return {k: Decimal(str(v)) for k, v in promotion.items()} if promotion else None

        try:
            with self._client() as client:
                response = client.get("/promotion_codes", params={"code": code, "active": "true"})
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Promotion code lookup failed: {str(e)}")
            raise ProcessorError(f"Promotion code lookup failed: {str(e)}") from e

        matches = response.json().get("data") or []
        if not matches:
            return None
        coupon = matches[0].get("coupon") or {}
        if coupon.get("percent_off"):
            return {"percent_off": Decimal(str(coupon["percent_off"]))}
        if coupon.get("amount_off"):
            return {"amount_off": Decimal(coupon["amount_off"]) / 100}
        return None

    def verify_webhook_signature(self, payload: bytes, signature: Optional[str]) -> bool:
        """HMAC-SHA256 of the raw body; unsigned webhooks are accepted only in mock mode without a secret"""
        if not self._is_set(self.webhook_secret):
            return self.mock_mode
        if not signature:
            return False
        expected = hmac.new(self.webhook_secret.encode(), payload, hashlib.sha256).hexdigest()
        return hmac.compare_digest(expected, signature)

    def _mock_result(self, prefix: str, amount_cents: int, idempotency_key: str) -> Dict[str, Any]:
        logger.info(f"Mock payment processor {prefix}: {amount_cents} cents ({idempotency_key})")
        if amount_cents % 100 == MOCK_DECLINE_CENTS:
            return {"success": False, "reason": "Your card was declined"}
        return {"success": True, "processor_reference": f"{prefix}_mock_{secrets.token_hex(8)}"}
