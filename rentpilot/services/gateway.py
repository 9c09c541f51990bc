"""Paystack payment gateway client.

Every call has a timeout. Timeouts, transport failures and non-2xx answers
raise ExternalServiceError so callers surface a retryable failure instead
of guessing at the outcome.
"""

import hashlib
import hmac
import logging
import secrets
import string
import time
from decimal import Decimal
from typing import Any, Dict, Optional

import httpx

from rentpilot.api.errors import ExternalServiceError
from rentpilot.config import Settings

logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_uppercase


def verify_webhook_signature(payload: bytes, signature: Optional[str], secret: str) -> bool:
    """Check an HMAC-SHA512 webhook signature.

    Args:
        payload: Raw request body exactly as received
        signature: Hex digest from the x-paystack-signature header
        secret: Shared webhook secret

    Returns:
        True only when a signature is present and matches
    """
    if not signature or not secret:
        return False
    expected = hmac.new(secret.encode(), payload, hashlib.sha512).hexdigest()
    return hmac.compare_digest(expected, signature.strip().lower())


def _base36(number: int) -> str:
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits)) or "0"


def generate_reference(prefix: str = "RP") -> str:
    """Unique payment reference, e.g. RP_M1ABCD2E_X9K2LQ."""
    timestamp = _base36(int(time.time() * 1000))
    random_part = "".join(secrets.choice(_BASE36) for _ in range(6))
    return f"{prefix}_{timestamp}_{random_part}"


def to_minor_units(amount: Decimal) -> int:
    return int((amount * 100).to_integral_value())


class PaystackClient:
    """Thin wrapper over the Paystack REST API."""

    def __init__(self, settings: Settings, transport: Optional[httpx.BaseTransport] = None):
        """Initialize client.

        Args:
            settings: Application settings (secret key, base URL, timeout, currency)
            transport: Optional httpx transport (tests pass httpx.MockTransport)
        """
        self.currency = settings.currency
        self._client = httpx.Client(
            base_url=settings.paystack_base_url,
            timeout=settings.gateway_timeout_seconds,
            headers={
                "Authorization": f"Bearer {settings.paystack_secret_key}",
                "Content-Type": "application/json",
            },
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        try:
            response = self._client.request(method, path, **kwargs)
            response.raise_for_status()
            body = response.json()
        except httpx.TimeoutException as e:
            logger.error("gateway.timeout: %s %s", method, path)
            raise ExternalServiceError("Payment gateway timed out") from e
        except httpx.HTTPStatusError as e:
            logger.error(
                "gateway.http_error: %s %s status=%d", method, path, e.response.status_code
            )
            raise ExternalServiceError(
                f"Payment gateway error: {e.response.status_code}",
                retryable=e.response.status_code >= 500,
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error("gateway.failure: %s %s error=%s", method, path, e)
            raise ExternalServiceError("Payment gateway unavailable") from e

        if not body.get("status"):
            raise ExternalServiceError(
                body.get("message") or "Payment gateway rejected the request", retryable=False
            )
        return body.get("data") or {}

    def initialize_transaction(
        self,
        email: str,
        amount: Decimal,
        reference: str,
        callback_url: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        subaccount_code: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Open a payment session.

        Returns:
            Gateway data with authorization_url, access_code and reference
        """
        body: Dict[str, Any] = {
            "email": email,
            "amount": to_minor_units(amount),
            "reference": reference,
            "currency": self.currency,
        }
        if callback_url:
            body["callback_url"] = callback_url
        if metadata:
            body["metadata"] = metadata
        if subaccount_code:
            # Split payment: landlord subaccount receives the net and bears fees
            body["subaccount"] = subaccount_code
            body["bearer"] = "subaccount"

        return self._request("POST", "/transaction/initialize", json=body)

    def verify_transaction(self, reference: str) -> Dict[str, Any]:
        """Fetch the gateway's view of a transaction (status, amount, paid_at, channel)."""
        return self._request("GET", f"/transaction/verify/{reference}")


__all__ = [
    "PaystackClient",
    "generate_reference",
    "to_minor_units",
    "verify_webhook_signature",
]
