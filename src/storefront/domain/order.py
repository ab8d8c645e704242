"""
Order aggregate and its status state machine.

    Processing -> In Transit -> Arrived -> Delivered
         |            |           |
         +------------+-----------+--> Cancelled
    Processing | Delivered --(refund request)--> Refunded

Delivered, Cancelled and Refunded are terminal for status updates. A
refund request moves the order to Refunded with refund status Requested;
the refund is then completed, or fails and the previous status returns.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field

from storefront.aggregates.base import DeclarativeAggregate
from storefront.domain.cart import CartState
from storefront.domain.values import (
    FULFILLMENT_SEQUENCE,
    REFUNDABLE_STATUSES,
    TERMINAL_STATUSES,
    UPDATABLE_STATUSES,
    AppliedCoupon,
    Buyer,
    LineItem,
    OrderStatus,
    PaymentStatus,
    RefundStatus,
    format_order_id,
    generate_tracking_number,
    status_color,
    to_money,
)
from storefront.events import DomainEvent, register_event
from storefront.exceptions import (
    InvalidRefundAmountError,
    InvalidStateTransitionError,
    InvalidStatusError,
)
from storefront.handlers import handles

logger = logging.getLogger(__name__)

ORDER_AGGREGATE_TYPE = "Order"


# =============================================================================
# Events
# =============================================================================


@register_event
class OrderPlaced(DomainEvent):
    """A verified payment turned a cart into an order."""

    aggregate_type: str = ORDER_AGGREGATE_TYPE

    order_id: str
    tracking_number: str
    cart_id: str
    payment_reference: str
    buyer: Buyer
    items: list[LineItem]
    formatted_address: str
    subtotal: Decimal
    discount_amount: Decimal
    total: Decimal
    coupon: AppliedCoupon | None = None
    currency: str


@register_event
class OrderStatusChanged(DomainEvent):
    aggregate_type: str = ORDER_AGGREGATE_TYPE

    previous_status: OrderStatus
    new_status: OrderStatus


@register_event
class OrderCancelled(DomainEvent):
    """Cancelled with the payment refunded at the gateway."""

    aggregate_type: str = ORDER_AGGREGATE_TYPE

    previous_status: OrderStatus
    refunded_amount: Decimal
    refund_reference: str | None = None


@register_event
class RefundRequested(DomainEvent):
    aggregate_type: str = ORDER_AGGREGATE_TYPE

    amount: Decimal
    previous_status: OrderStatus


@register_event
class RefundCompleted(DomainEvent):
    aggregate_type: str = ORDER_AGGREGATE_TYPE


@register_event
class RefundFailed(DomainEvent):
    aggregate_type: str = ORDER_AGGREGATE_TYPE

    reason: str
    restored_status: OrderStatus


# =============================================================================
# State
# =============================================================================


class OrderState(BaseModel):
    """Current state of an order."""

    aggregate_id: UUID
    order_id: str = ""
    tracking_number: str = ""
    cart_id: str = ""
    payment_reference: str = ""
    buyer: Buyer | None = None
    items: list[LineItem] = Field(default_factory=list)
    formatted_address: str = ""
    subtotal: Decimal = Decimal("0.00")
    discount_amount: Decimal = Decimal("0.00")
    total: Decimal = Decimal("0.00")
    coupon: AppliedCoupon | None = None
    currency: str = ""
    payment_status: PaymentStatus = PaymentStatus.PAID
    status: OrderStatus = OrderStatus.PROCESSING
    status_color: str = status_color(OrderStatus.PROCESSING)
    refund_status: RefundStatus = RefundStatus.NOT_REQUESTED
    refunded_amount: Decimal = Decimal("0.00")
    status_before_refund: OrderStatus | None = None
    placed_at: datetime | None = None
    updated_at: datetime | None = None


# =============================================================================
# Aggregate
# =============================================================================


class OrderAggregate(DeclarativeAggregate[OrderState]):
    """Event-sourced order."""

    aggregate_type = ORDER_AGGREGATE_TYPE

    def _get_initial_state(self) -> OrderState:
        return OrderState(aggregate_id=self.aggregate_id)

    @handles(OrderPlaced)
    def _on_placed(self, event: OrderPlaced) -> None:
        self._state = OrderState(
            aggregate_id=self.aggregate_id,
            order_id=event.order_id,
            tracking_number=event.tracking_number,
            cart_id=event.cart_id,
            payment_reference=event.payment_reference,
            buyer=event.buyer,
            items=list(event.items),
            formatted_address=event.formatted_address,
            subtotal=event.subtotal,
            discount_amount=event.discount_amount,
            total=event.total,
            coupon=event.coupon,
            currency=event.currency,
            placed_at=event.occurred_at,
            updated_at=event.occurred_at,
        )

    @handles(OrderStatusChanged)
    def _on_status_changed(self, event: OrderStatusChanged) -> None:
        self._set_status(event.new_status, event.occurred_at)

    @handles(OrderCancelled)
    def _on_cancelled(self, event: OrderCancelled) -> None:
        self._set_status(
            OrderStatus.CANCELLED,
            event.occurred_at,
            payment_status=PaymentStatus.REFUNDED,
            refunded_amount=event.refunded_amount,
        )

    @handles(RefundRequested)
    def _on_refund_requested(self, event: RefundRequested) -> None:
        self._set_status(
            OrderStatus.REFUNDED,
            event.occurred_at,
            refund_status=RefundStatus.REQUESTED,
            refunded_amount=event.amount,
            status_before_refund=event.previous_status,
        )

    @handles(RefundCompleted)
    def _on_refund_completed(self, event: RefundCompleted) -> None:
        self._state = self.require_state().model_copy(
            update={
                "refund_status": RefundStatus.COMPLETED,
                "payment_status": PaymentStatus.REFUNDED,
                "updated_at": event.occurred_at,
            }
        )

    @handles(RefundFailed)
    def _on_refund_failed(self, event: RefundFailed) -> None:
        self._set_status(
            event.restored_status,
            event.occurred_at,
            refund_status=RefundStatus.FAILED,
            refunded_amount=Decimal("0.00"),
            status_before_refund=None,
        )

    def _set_status(self, status: OrderStatus, at: datetime, **changes: object) -> None:
        self._state = self.require_state().model_copy(
            update={
                "status": status,
                "status_color": status_color(status),
                "updated_at": at,
                **changes,
            }
        )

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def place(self, cart: CartState, reference: str, *, tracking_number: str | None = None) -> None:
        """Create the order from a frozen copy of a paid cart."""
        if self.version > 0:
            raise InvalidStateTransitionError(
                "Order", format_order_id(self.aggregate_id), "already placed", "place"
            )
        assert cart.buyer is not None

        self._raise_event(
            OrderPlaced(
                aggregate_id=self.aggregate_id,
                aggregate_version=self.get_next_version(),
                order_id=format_order_id(self.aggregate_id),
                tracking_number=tracking_number or generate_tracking_number(),
                cart_id=cart.cart_id,
                payment_reference=reference,
                buyer=cart.buyer,
                items=list(cart.items),
                formatted_address=cart.formatted_address,
                subtotal=cart.subtotal,
                discount_amount=cart.discount_amount,
                total=cart.total_cart_price,
                coupon=cart.coupon,
                currency=cart.currency,
            )
        )

    def update_status(self, new_status: OrderStatus | str) -> None:
        """
        Move the order along its fulfillment path, or cancel it without a refund.

        Raises:
            InvalidStatusError: If ``new_status`` is not an update target
            InvalidStateTransitionError: If the order is terminal or the move goes backwards
        """
        state = self._ensure_placed()
        target = _coerce_update_target(new_status)

        if state.status in TERMINAL_STATUSES:
            raise InvalidStateTransitionError(
                "Order", state.order_id, state.status.value, f"move to {target.value}"
            )
        if target != OrderStatus.CANCELLED and (
            FULFILLMENT_SEQUENCE.index(target) <= FULFILLMENT_SEQUENCE.index(state.status)
        ):
            raise InvalidStateTransitionError(
                "Order", state.order_id, state.status.value, f"move to {target.value}"
            )

        self._raise_event(
            OrderStatusChanged(
                aggregate_id=self.aggregate_id,
                aggregate_version=self.get_next_version(),
                previous_status=state.status,
                new_status=target,
            )
        )

    def ensure_cancellable(self) -> OrderState:
        """
        Raises:
            InvalidStateTransitionError: If the order is already Cancelled or Refunded
        """
        state = self._ensure_placed()
        if state.status in (OrderStatus.CANCELLED, OrderStatus.REFUNDED):
            raise InvalidStateTransitionError("Order", state.order_id, state.status.value, "cancel")
        return state

    def cancel(self, refunded_amount: Decimal, refund_reference: str | None = None) -> None:
        """Record cancellation after the gateway accepted the refund."""
        state = self.ensure_cancellable()

        self._raise_event(
            OrderCancelled(
                aggregate_id=self.aggregate_id,
                aggregate_version=self.get_next_version(),
                previous_status=state.status,
                refunded_amount=to_money(refunded_amount),
                refund_reference=refund_reference,
            )
        )

    def ensure_refundable(self, amount: Decimal) -> OrderState:
        """
        Raises:
            InvalidStateTransitionError: If the status or refund status forbids a refund
            InvalidRefundAmountError: If amount is not in (0, total]
        """
        state = self._ensure_placed()
        if state.status not in REFUNDABLE_STATUSES:
            raise InvalidStateTransitionError(
                "Order", state.order_id, state.status.value, "request a refund for"
            )
        if state.refund_status not in (RefundStatus.NOT_REQUESTED, RefundStatus.FAILED):
            raise InvalidStateTransitionError(
                "Order",
                state.order_id,
                f"refund {state.refund_status.value}",
                "request a refund for",
            )
        if not Decimal(0) < Decimal(amount) <= state.total:
            raise InvalidRefundAmountError(Decimal(amount), state.total)
        return state

    def request_refund(self, amount: Decimal) -> None:
        state = self.ensure_refundable(amount)

        self._raise_event(
            RefundRequested(
                aggregate_id=self.aggregate_id,
                aggregate_version=self.get_next_version(),
                amount=to_money(amount),
                previous_status=state.status,
            )
        )

    def complete_refund(self) -> None:
        state = self._ensure_refund_requested("complete the refund of")
        logger.debug("Completing refund for %s", state.order_id)

        self._raise_event(
            RefundCompleted(
                aggregate_id=self.aggregate_id,
                aggregate_version=self.get_next_version(),
            )
        )

    def fail_refund(self, reason: str) -> None:
        state = self._ensure_refund_requested("fail the refund of")

        self._raise_event(
            RefundFailed(
                aggregate_id=self.aggregate_id,
                aggregate_version=self.get_next_version(),
                reason=reason,
                restored_status=state.status_before_refund or OrderStatus.PROCESSING,
            )
        )

    def _ensure_refund_requested(self, operation: str) -> OrderState:
        state = self._ensure_placed()
        if state.refund_status != RefundStatus.REQUESTED:
            raise InvalidStateTransitionError(
                "Order", state.order_id, f"refund {state.refund_status.value}", operation
            )
        return state

    def _ensure_placed(self) -> OrderState:
        state = self._state
        if state is None or not state.order_id:
            raise InvalidStateTransitionError(
                "Order", format_order_id(self.aggregate_id), "not placed", "use"
            )
        return state


def _coerce_update_target(value: OrderStatus | str) -> OrderStatus:
    allowed = [status.value for status in UPDATABLE_STATUSES]
    try:
        status = OrderStatus(value)
    except ValueError:
        raise InvalidStatusError(str(value), allowed) from None
    if status not in UPDATABLE_STATUSES:
        raise InvalidStatusError(status.value, allowed)
    return status


__all__ = [
    "ORDER_AGGREGATE_TYPE",
    "OrderAggregate",
    "OrderCancelled",
    "OrderPlaced",
    "OrderState",
    "OrderStatusChanged",
    "RefundCompleted",
    "RefundFailed",
    "RefundRequested",
]
