"""
Cart aggregate.

One cart per checkout attempt. Line items are priced when the cart is
created and never re-read from the catalog. A cart is paid at most once
per checkout; order cancellation reopens it for a fresh attempt.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field

from storefront.aggregates.base import DeclarativeAggregate
from storefront.domain.values import (
    AppliedCoupon,
    Buyer,
    CartStatus,
    LineItem,
    PaymentStatus,
    percentage_of,
    to_minor_units,
    to_money,
)
from storefront.events import DomainEvent, register_event
from storefront.exceptions import (
    AlreadyProcessedError,
    InvalidStateTransitionError,
    ValidationError,
)
from storefront.handlers import handles

logger = logging.getLogger(__name__)

CART_AGGREGATE_TYPE = "Cart"


# =============================================================================
# Events
# =============================================================================


@register_event
class CartCreated(DomainEvent):
    aggregate_type: str = CART_AGGREGATE_TYPE

    cart_id: str
    buyer: Buyer
    items: list[LineItem]
    subtotal: Decimal
    discount_amount: Decimal
    total_cart_price: Decimal
    coupon: AppliedCoupon | None = None
    formatted_address: str
    currency: str


@register_event
class PaymentSessionStarted(DomainEvent):
    aggregate_type: str = CART_AGGREGATE_TYPE

    reference: str
    authorization_url: str
    access_code: str | None = None


@register_event
class CartPaid(DomainEvent):
    aggregate_type: str = CART_AGGREGATE_TYPE

    reference: str
    paid_at: datetime | None = None


@register_event
class CartPaymentFailed(DomainEvent):
    aggregate_type: str = CART_AGGREGATE_TYPE

    reference: str
    reason: str


@register_event
class CartReopened(DomainEvent):
    """The cart's order was cancelled; the cart can be checked out again."""

    aggregate_type: str = CART_AGGREGATE_TYPE

    reason: str
    order_id: str | None = None


# =============================================================================
# State
# =============================================================================


class CartState(BaseModel):
    """Current state of a cart."""

    aggregate_id: UUID
    cart_id: str = ""
    buyer: Buyer | None = None
    items: list[LineItem] = Field(default_factory=list)
    subtotal: Decimal = Decimal("0.00")
    discount_amount: Decimal = Decimal("0.00")
    total_cart_price: Decimal = Decimal("0.00")
    coupon: AppliedCoupon | None = None
    formatted_address: str = ""
    currency: str = ""
    payment_status: PaymentStatus = PaymentStatus.PENDING
    status: CartStatus = CartStatus.PENDING
    payment_reference: str | None = None
    authorization_url: str | None = None
    paid_references: list[str] = Field(default_factory=list)
    created_at: datetime | None = None
    paid_at: datetime | None = None

    @property
    def amount_minor(self) -> int:
        """Total in the gateway's minor units."""
        return to_minor_units(self.total_cart_price)


# =============================================================================
# Aggregate
# =============================================================================


class CartAggregate(DeclarativeAggregate[CartState]):
    """Event-sourced checkout cart."""

    aggregate_type = CART_AGGREGATE_TYPE

    def _get_initial_state(self) -> CartState:
        return CartState(aggregate_id=self.aggregate_id)

    @handles(CartCreated)
    def _on_created(self, event: CartCreated) -> None:
        self._state = CartState(
            aggregate_id=self.aggregate_id,
            cart_id=event.cart_id,
            buyer=event.buyer,
            items=list(event.items),
            subtotal=event.subtotal,
            discount_amount=event.discount_amount,
            total_cart_price=event.total_cart_price,
            coupon=event.coupon,
            formatted_address=event.formatted_address,
            currency=event.currency,
            created_at=event.occurred_at,
        )

    @handles(PaymentSessionStarted)
    def _on_payment_session_started(self, event: PaymentSessionStarted) -> None:
        self._state = self.require_state().model_copy(
            update={
                "payment_reference": event.reference,
                "authorization_url": event.authorization_url,
                "payment_status": PaymentStatus.PENDING,
            }
        )

    @handles(CartPaid)
    def _on_paid(self, event: CartPaid) -> None:
        state = self.require_state()
        self._state = state.model_copy(
            update={
                "payment_status": PaymentStatus.PAID,
                "status": CartStatus.COMPLETED,
                "payment_reference": event.reference,
                "paid_references": [*state.paid_references, event.reference],
                "paid_at": event.paid_at or event.occurred_at,
            }
        )

    @handles(CartPaymentFailed)
    def _on_payment_failed(self, event: CartPaymentFailed) -> None:
        self._state = self.require_state().model_copy(
            update={"payment_status": PaymentStatus.FAILED}
        )

    @handles(CartReopened)
    def _on_reopened(self, event: CartReopened) -> None:
        self._state = self.require_state().model_copy(
            update={
                "payment_status": PaymentStatus.PENDING,
                "status": CartStatus.PENDING,
                "payment_reference": None,
                "authorization_url": None,
                "paid_at": None,
            }
        )

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def create(
        self,
        cart_id: str,
        buyer: Buyer,
        items: list[LineItem],
        formatted_address: str,
        *,
        coupon: AppliedCoupon | None = None,
        currency: str = "NGN",
    ) -> None:
        """
        Open a cart with priced line items.

        The coupon discount is taken off the subtotal here; the total never
        changes afterwards.
        """
        if self.version > 0:
            raise InvalidStateTransitionError("Cart", cart_id, "already created", "create")
        if not items:
            raise ValidationError("A cart needs at least one item")
        if not formatted_address.strip():
            raise ValidationError("A delivery address is required")

        subtotal = to_money(sum((item.total_price for item in items), Decimal("0")))
        discount = percentage_of(subtotal, coupon.discount_percentage) if coupon else Decimal("0")
        discount = to_money(discount)

        self._raise_event(
            CartCreated(
                aggregate_id=self.aggregate_id,
                aggregate_version=self.get_next_version(),
                cart_id=cart_id,
                buyer=buyer,
                items=list(items),
                subtotal=subtotal,
                discount_amount=discount,
                total_cart_price=to_money(subtotal - discount),
                coupon=coupon,
                formatted_address=formatted_address.strip(),
                currency=currency,
            )
        )

    def record_payment_session(
        self,
        reference: str,
        authorization_url: str,
        access_code: str | None = None,
    ) -> None:
        """Remember the gateway session a buyer is paying through."""
        state = self._ensure_created()
        if state.payment_status == PaymentStatus.PAID:
            raise AlreadyProcessedError(state.cart_id, state.payment_reference)

        self._raise_event(
            PaymentSessionStarted(
                aggregate_id=self.aggregate_id,
                aggregate_version=self.get_next_version(),
                reference=reference,
                authorization_url=authorization_url,
                access_code=access_code,
            )
        )

    def is_processed(self, reference: str | None = None) -> bool:
        """True if the cart is paid, or ``reference`` already paid it once."""
        state = self._ensure_created()
        if state.payment_status == PaymentStatus.PAID:
            return True
        return reference is not None and reference in state.paid_references

    def mark_paid(self, reference: str, paid_at: datetime | None = None) -> None:
        """
        Record a verified payment.

        Raises:
            AlreadyProcessedError: If the cart is already paid, or this
                reference already paid it before a reopen
        """
        state = self._ensure_created()
        if self.is_processed(reference):
            raise AlreadyProcessedError(state.cart_id, reference)

        self._raise_event(
            CartPaid(
                aggregate_id=self.aggregate_id,
                aggregate_version=self.get_next_version(),
                reference=reference,
                paid_at=paid_at,
            )
        )

    def mark_payment_failed(self, reference: str, reason: str) -> None:
        state = self._ensure_created()
        if state.payment_status == PaymentStatus.PAID:
            raise InvalidStateTransitionError(
                "Cart", state.cart_id, state.payment_status.value, "mark payment failed for"
            )

        self._raise_event(
            CartPaymentFailed(
                aggregate_id=self.aggregate_id,
                aggregate_version=self.get_next_version(),
                reference=reference,
                reason=reason,
            )
        )

    def reopen(self, reason: str, order_id: str | None = None) -> None:
        """Return a paid cart to Pending so it can be checked out again."""
        state = self._ensure_created()
        if state.payment_status != PaymentStatus.PAID:
            raise InvalidStateTransitionError(
                "Cart", state.cart_id, state.payment_status.value, "reopen"
            )

        self._raise_event(
            CartReopened(
                aggregate_id=self.aggregate_id,
                aggregate_version=self.get_next_version(),
                reason=reason,
                order_id=order_id,
            )
        )

    def _ensure_created(self) -> CartState:
        state = self._state
        if state is None or not state.cart_id:
            raise InvalidStateTransitionError("Cart", str(self.aggregate_id), "not created", "use")
        return state


__all__ = [
    "CART_AGGREGATE_TYPE",
    "CartAggregate",
    "CartCreated",
    "CartPaid",
    "CartPaymentFailed",
    "CartReopened",
    "CartState",
    "PaymentSessionStarted",
]
