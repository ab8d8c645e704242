"""
Webhook authentication and parsing.

The gateway signs every webhook with HMAC-SHA512 over the raw request
body and sends the hex digest in the ``x-paystack-signature`` header. The
signature must be checked against the bytes as received: re-serializing
parsed JSON changes key order and whitespace.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging

import pydantic

from storefront.exceptions import ValidationError
from storefront.gateway.models import ChargeData, WebhookEvent

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-paystack-signature"


class WebhookVerifier:
    """
    Checks webhook signatures with the shared secret.

    Example:
        >>> verifier = WebhookVerifier("sk_test_123")
        >>> body = b'{"event": "charge.success"}'
        >>> verifier.verify(body, verifier.sign(body))
        True
    """

    def __init__(self, secret: str) -> None:
        if not secret:
            raise ValueError("Webhook secret must not be empty")
        self._secret = secret.encode()

    def sign(self, raw_body: bytes) -> str:
        """Hex HMAC-SHA512 of ``raw_body``."""
        return hmac.new(self._secret, raw_body, hashlib.sha512).hexdigest()

    def verify(self, raw_body: bytes, signature: str | None) -> bool:
        """
        True if ``signature`` matches ``raw_body``.

        Never raises: a missing or malformed signature is simply invalid.
        """
        if not signature:
            logger.warning("Webhook rejected: missing signature")
            return False
        if not signature.isascii():
            logger.warning("Webhook rejected: malformed signature")
            return False
        expected = self.sign(raw_body)
        if not hmac.compare_digest(expected, signature.strip().lower()):
            logger.warning("Webhook rejected: signature mismatch")
            return False
        return True


def parse_webhook_event(raw_body: bytes) -> WebhookEvent:
    """
    Parse a webhook envelope.

    Raises:
        ValidationError: If the body is not a JSON object with an ``event`` name
    """
    try:
        payload = json.loads(raw_body)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValidationError(f"Webhook body is not valid JSON: {e}") from e
    if not isinstance(payload, dict):
        raise ValidationError("Webhook body must be a JSON object")
    try:
        return WebhookEvent.model_validate(payload)
    except pydantic.ValidationError as e:
        raise ValidationError(f"Malformed webhook envelope: {e}") from e


def parse_charge(event: WebhookEvent) -> ChargeData:
    """
    Typed ``data`` of a charge.* event.

    Raises:
        ValidationError: If reference, amount or the checkout metadata is missing
    """
    try:
        return ChargeData.model_validate(event.data)
    except pydantic.ValidationError as e:
        raise ValidationError(f"Malformed {event.event} payload: {e}") from e


__all__ = [
    "SIGNATURE_HEADER",
    "WebhookVerifier",
    "parse_charge",
    "parse_webhook_event",
]
