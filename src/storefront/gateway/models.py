"""
Typed payloads exchanged with the payment gateway.

Field aliases follow the gateway's camelCase JSON; Python code uses the
snake_case names.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

CHARGE_SUCCESS = "charge.success"
CHARGE_FAILED = "charge.failed"
CHARGE_EVENTS = frozenset({CHARGE_SUCCESS, CHARGE_FAILED})


class PaymentMetadata(BaseModel):
    """Checkout context attached to a transaction and echoed back by webhooks."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    cart_id: str = Field(alias="cartId", min_length=1)
    user_id: str = Field(alias="userId", min_length=1)
    buyer_email: str = Field(alias="buyerEmail", min_length=1)
    formatted_address: str = Field(alias="formattedAddress", min_length=1)

    def to_gateway(self) -> dict[str, str]:
        return self.model_dump(by_alias=True)


class ChargeData(BaseModel):
    """``data`` of a charge.* webhook event."""

    model_config = ConfigDict(frozen=True)

    reference: str = Field(min_length=1)
    amount: int = Field(ge=0)
    status: str | None = None
    currency: str | None = None
    gateway_response: str | None = None
    metadata: PaymentMetadata


class WebhookEvent(BaseModel):
    """Webhook envelope; ``data`` is parsed further per event type."""

    model_config = ConfigDict(frozen=True)

    event: str = Field(min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)


class PaymentSession(BaseModel):
    """Result of initializing a transaction: where to send the buyer."""

    model_config = ConfigDict(frozen=True)

    authorization_url: str
    access_code: str | None = None
    reference: str


class TransactionVerification(BaseModel):
    """Server-side view of a transaction."""

    model_config = ConfigDict(frozen=True)

    reference: str
    status: str
    amount: int
    currency: str | None = None
    paid_at: datetime | None = None
    gateway_response: str | None = None
    metadata: dict[str, Any] | None = None

    @property
    def is_successful(self) -> bool:
        return self.status == "success"


class RefundReceipt(BaseModel):
    """Gateway acknowledgement of a refund request."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    reference: str
    refund_id: int | str | None = Field(default=None, alias="id")
    status: str = "pending"
    amount: int | None = None
    currency: str | None = None


__all__ = [
    "CHARGE_EVENTS",
    "CHARGE_FAILED",
    "CHARGE_SUCCESS",
    "ChargeData",
    "PaymentMetadata",
    "PaymentSession",
    "RefundReceipt",
    "TransactionVerification",
    "WebhookEvent",
]
