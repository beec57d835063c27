"""
Paystack client for transaction initialize / verify / refund and webhook
signature checks.
"""
import hashlib
import hmac
from typing import Dict, Optional, Protocol

import httpx

from .app_logger import get_logger
from .config import PAYSTACK_BASE_URL, PAYSTACK_CURRENCY, PAYSTACK_SECRET_KEY, REQUEST_TIMEOUT
from .errors import PaymentGatewayUnavailable

logger = get_logger(__name__)

CHANNELS = ["card", "bank", "ussd", "qr", "mobile_money"]


class PaymentGateway(Protocol):
    currency: str

    def initialize_transaction(self, email: str, amount_minor: int, reference: str,
                               metadata: dict, callback_url: Optional[str] = None) -> Dict: ...

    def verify_transaction(self, reference: str) -> Dict: ...

    def refund_transaction(self, reference: str, amount_minor: Optional[int] = None) -> Dict: ...

    def verify_webhook_signature(self, raw_body: bytes, signature: Optional[str]) -> bool: ...


class PaystackClient:
    """Long-lived client; one ``httpx.Client`` shared across requests."""

    def __init__(self, secret_key: str, base_url: str = PAYSTACK_BASE_URL,
                 currency: str = PAYSTACK_CURRENCY, timeout: float = REQUEST_TIMEOUT,
                 transport: Optional[httpx.BaseTransport] = None):
        self.secret_key = secret_key
        self.currency = currency
        self._http = httpx.Client(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={
                "Authorization": f"Bearer {secret_key}",
                "Content-Type": "application/json",
            },
        )

    def _request(self, method: str, path: str, json: Optional[dict] = None) -> Dict:
        """
        Send one request. Gateway-reported failures (4xx with a JSON body) are
        returned as-is so callers can read ``status``/``message``; transport
        errors and 5xx raise PaymentGatewayUnavailable.
        """
        try:
            resp = self._http.request(method, path, json=json)
        except httpx.HTTPError as e:
            logger.error("Paystack %s %s failed: %s", method, path, e)
            raise PaymentGatewayUnavailable(f"Payment gateway unavailable: {e}")

        if resp.status_code >= 500:
            logger.error("Paystack %s %s returned %s", method, path, resp.status_code)
            raise PaymentGatewayUnavailable(f"Payment gateway error ({resp.status_code})")

        try:
            body = resp.json()
        except ValueError:
            body = {"status": False, "message": resp.text or f"HTTP {resp.status_code}"}
        if resp.status_code >= 400:
            logger.warning("Paystack %s %s rejected: %s", method, path, body.get("message"))
            body.setdefault("status", False)
        return body

    def initialize_transaction(self, email: str, amount_minor: int, reference: str,
                               metadata: dict, callback_url: Optional[str] = None) -> Dict:
        payload = {
            "email": email,
            "amount": amount_minor,
            "reference": reference,
            "metadata": dict(metadata),
            "channels": CHANNELS,
            "currency": self.currency,
        }
        if callback_url:
            payload["callback_url"] = callback_url
            payload["metadata"]["cancel_action"] = callback_url
        return self._request("POST", "/transaction/initialize", json=payload)

    def verify_transaction(self, reference: str) -> Dict:
        return self._request("GET", f"/transaction/verify/{reference}")

    def refund_transaction(self, reference: str, amount_minor: Optional[int] = None) -> Dict:
        payload = {"transaction": reference}
        if amount_minor:
            payload["amount"] = amount_minor
        return self._request("POST", "/refund", json=payload)

    def verify_webhook_signature(self, raw_body: bytes, signature: Optional[str]) -> bool:
        """HMAC-SHA512 of the raw request body with the secret key, hex encoded."""
        if not signature:
            return False
        expected = hmac.new(self.secret_key.encode(), raw_body, hashlib.sha512).hexdigest()
        return hmac.compare_digest(expected.encode(), signature.encode("utf-8", "replace"))

    def close(self):
        self._http.close()


def build_paystack_client() -> Optional[PaystackClient]:
    if not PAYSTACK_SECRET_KEY:
        return None
    return PaystackClient(PAYSTACK_SECRET_KEY)
