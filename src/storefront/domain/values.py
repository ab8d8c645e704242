"""
Enumerations, value objects and money helpers shared by the aggregates.

Amounts are Decimals in major currency units rounded to two places; the
payment gateway works in minor units (kobo, cents), so conversions live
here and nowhere else.
"""

from __future__ import annotations

import re
import secrets
import time
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid5

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from storefront.types import MinorUnits, Money

# =============================================================================
# Statuses
# =============================================================================


class ProductType(str, Enum):
    SIMPLE = "simple"
    VARIABLE = "variable"


class PaymentStatus(str, Enum):
    PENDING = "Pending"
    PAID = "Paid"
    FAILED = "Failed"
    REFUNDED = "Refunded"


class CartStatus(str, Enum):
    PENDING = "Pending"
    COMPLETED = "Completed"


class OrderStatus(str, Enum):
    PROCESSING = "Processing"
    IN_TRANSIT = "In Transit"
    ARRIVED = "Arrived"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"
    REFUNDED = "Refunded"


class RefundStatus(str, Enum):
    NOT_REQUESTED = "Not Requested"
    REQUESTED = "Requested"
    COMPLETED = "Completed"
    FAILED = "Failed"


STATUS_COLORS: dict[OrderStatus, str] = {
    OrderStatus.PROCESSING: "#B0B0B0",
    OrderStatus.IN_TRANSIT: "#FFFF00",
    OrderStatus.ARRIVED: "#fff44f",
    OrderStatus.DELIVERED: "#32CD32",
    OrderStatus.CANCELLED: "#FF0000",
    OrderStatus.REFUNDED: "#808080",
}

# Targets accepted by a plain status update
UPDATABLE_STATUSES: tuple[OrderStatus, ...] = (
    OrderStatus.IN_TRANSIT,
    OrderStatus.ARRIVED,
    OrderStatus.DELIVERED,
    OrderStatus.CANCELLED,
)

TERMINAL_STATUSES: frozenset[OrderStatus] = frozenset(
    {OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.REFUNDED}
)

# Fulfillment only moves forward along this sequence
FULFILLMENT_SEQUENCE: tuple[OrderStatus, ...] = (
    OrderStatus.PROCESSING,
    OrderStatus.IN_TRANSIT,
    OrderStatus.ARRIVED,
    OrderStatus.DELIVERED,
)

REFUNDABLE_STATUSES: frozenset[OrderStatus] = frozenset(
    {OrderStatus.DELIVERED, OrderStatus.PROCESSING}
)


def status_color(status: OrderStatus) -> str:
    """Display color for an order status."""
    return STATUS_COLORS[status]


# =============================================================================
# Money
# =============================================================================

_CENT = Decimal("0.01")


def to_money(value: Any) -> Money:
    """Coerce a number or numeric string to a Decimal rounded to cents."""
    return Decimal(str(value)).quantize(_CENT, rounding=ROUND_HALF_UP)


def to_minor_units(amount: Money) -> MinorUnits:
    """Major units to the gateway's integer minor units (e.g. 10.50 -> 1050)."""
    return int((to_money(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))


def from_minor_units(amount: MinorUnits) -> Money:
    return to_money(Decimal(amount) / 100)


def percentage_of(amount: Money, percentage: Decimal) -> Money:
    """``amount * percentage / 100`` rounded to cents."""
    return to_money(to_money(amount) * Decimal(percentage) / 100)


# =============================================================================
# Identity
# =============================================================================

STOREFRONT_NAMESPACE = UUID("6f1c2a3e-93b4-4d5a-9c0e-8e2f4b7d1a55")


def cart_aggregate_id(cart_id: str) -> UUID:
    """Stream id of the cart with public id ``cart_id``."""
    return uuid5(STOREFRONT_NAMESPACE, f"cart:{cart_id}")


def coupon_aggregate_id(code: str) -> UUID:
    """Stream id of a coupon; one stream per normalized code."""
    return uuid5(STOREFRONT_NAMESPACE, f"coupon:{normalize_coupon_code(code)}")


def order_aggregate_id(cart_id: str, reference: str) -> UUID:
    """Stream id of the order created when ``reference`` paid for ``cart_id``."""
    return uuid5(STOREFRONT_NAMESPACE, f"order:{cart_id}:{reference}")


def normalize_coupon_code(code: str) -> str:
    return code.strip().upper()


def format_order_id(aggregate_id: UUID) -> str:
    return f"ORDER-{aggregate_id}"


def parse_order_id(order_id: str) -> UUID:
    """
    Stream id from a public order id.

    Raises:
        ValueError: If order_id is not of the form ORDER-<uuid>
    """
    prefix, _, raw = order_id.partition("-")
    if prefix != "ORDER" or not raw:
        raise ValueError(f"Malformed order id: {order_id!r}")
    return UUID(raw)


def generate_tracking_number(now: datetime | None = None) -> str:
    """TRK-<epoch milliseconds>-<5 random digits>."""
    millis = int(now.timestamp() * 1000) if now else time.time_ns() // 1_000_000
    return f"TRK-{millis}-{secrets.randbelow(100_000):05d}"


_SLUG_STRIP = re.compile(r"[^a-z0-9]+")


def slugify(name: str) -> str:
    return _SLUG_STRIP.sub("-", name.lower()).strip("-")


# =============================================================================
# Value objects
# =============================================================================


class Buyer(BaseModel):
    """The customer paying for a cart."""

    model_config = ConfigDict(frozen=True)

    user_id: str = Field(min_length=1)
    email: str = Field(min_length=3)
    first_name: str = ""
    last_name: str = ""

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip() or self.email


class VariationOption(BaseModel):
    """One purchasable variant of a variable product."""

    model_config = ConfigDict(frozen=True)

    variation_id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    price: Decimal = Field(ge=0)
    sale_price: Decimal | None = Field(default=None, ge=0)
    quantity: int = Field(default=0, ge=0)
    is_disabled: bool = False
    sku: str | None = None

    @field_validator("price", "sale_price")
    @classmethod
    def _round_money(cls, value: Decimal | None) -> Decimal | None:
        return None if value is None else to_money(value)

    @property
    def effective_price(self) -> Money:
        return self.sale_price if self.sale_price is not None else self.price


class LineItem(BaseModel):
    """A cart line, priced when the cart was created."""

    model_config = ConfigDict(frozen=True)

    product_id: UUID
    product_name: str
    variation_id: str | None = None
    variation_title: str | None = None
    price: Decimal = Field(ge=0)
    quantity: int = Field(ge=1)

    @field_validator("price")
    @classmethod
    def _round_price(cls, value: Decimal) -> Decimal:
        return to_money(value)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_price(self) -> Decimal:
        return to_money(self.price * self.quantity)

    @property
    def display_name(self) -> str:
        if self.variation_title:
            return f"{self.product_name} ({self.variation_title})"
        return self.product_name


class AppliedCoupon(BaseModel):
    """Coupon terms frozen onto a cart at checkout."""

    model_config = ConfigDict(frozen=True)

    code: str
    discount_percentage: Decimal
    applied_at: datetime


__all__ = [
    "FULFILLMENT_SEQUENCE",
    "REFUNDABLE_STATUSES",
    "STATUS_COLORS",
    "STOREFRONT_NAMESPACE",
    "TERMINAL_STATUSES",
    "UPDATABLE_STATUSES",
    "AppliedCoupon",
    "Buyer",
    "CartStatus",
    "LineItem",
    "OrderStatus",
    "PaymentStatus",
    "ProductType",
    "RefundStatus",
    "VariationOption",
    "cart_aggregate_id",
    "coupon_aggregate_id",
    "format_order_id",
    "from_minor_units",
    "generate_tracking_number",
    "normalize_coupon_code",
    "order_aggregate_id",
    "parse_order_id",
    "percentage_of",
    "slugify",
    "status_color",
    "to_minor_units",
    "to_money",
]
