"""Payment gateway client, payload models and webhook verification."""

from storefront.gateway.client import PaymentGateway, PaystackClient
from storefront.gateway.models import (
    CHARGE_FAILED,
    CHARGE_SUCCESS,
    ChargeData,
    PaymentMetadata,
    PaymentSession,
    RefundReceipt,
    TransactionVerification,
    WebhookEvent,
)
from storefront.gateway.webhook import (
    SIGNATURE_HEADER,
    WebhookVerifier,
    parse_charge,
    parse_webhook_event,
)

__all__ = [
    "CHARGE_FAILED",
    "CHARGE_SUCCESS",
    "SIGNATURE_HEADER",
    "ChargeData",
    "PaymentGateway",
    "PaymentMetadata",
    "PaymentSession",
    "PaystackClient",
    "RefundReceipt",
    "TransactionVerification",
    "WebhookEvent",
    "WebhookVerifier",
    "parse_charge",
    "parse_webhook_event",
]
