"""
Buyer notifications.

Delivery is delegated to a Notifier; the default one only logs. The
dispatcher retries a failing notifier a fixed number of times and then
gives up without raising: a lost email never undoes a committed payment.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from storefront.domain.order import OrderState
from storefront.exceptions import NotificationFailureError
from storefront.observability import Tracer, create_tracer
from storefront.observability.attributes import ATTR_NOTIFICATION_KIND
from storefront.retry import RetryConfig, RetryError, retry_async

logger = logging.getLogger(__name__)


class NotificationKind(str, Enum):
    PAYMENT_SUCCEEDED = "payment_succeeded"
    PAYMENT_FAILED = "payment_failed"
    ORDER_STATUS_CHANGED = "order_status_changed"
    ORDER_CANCELLED = "order_cancelled"


class Notification(BaseModel):
    """A message to one buyer."""

    model_config = ConfigDict(frozen=True)

    kind: NotificationKind
    recipient: str
    subject: str
    body: str
    context: dict[str, Any] = Field(default_factory=dict)


@runtime_checkable
class Notifier(Protocol):
    async def send(self, notification: Notification) -> None:
        """
        Deliver a notification.

        Raises:
            NotificationFailureError: If the message could not be delivered
        """
        ...


class LoggingNotifier:
    """Writes notifications to the log instead of sending them."""

    async def send(self, notification: Notification) -> None:
        logger.info(
            "Notification %s to %s: %s",
            notification.kind.value,
            notification.recipient,
            notification.subject,
            extra={"kind": notification.kind.value, "recipient": notification.recipient},
        )


# =============================================================================
# Message builders
# =============================================================================


def _format_amount(amount: Decimal, currency: str) -> str:
    return f"{currency} {amount:,.2f}".strip()


def render_invoice(order: OrderState) -> str:
    """Plain-text invoice for a placed order."""
    currency = order.currency
    lines = [
        f"Invoice for order {order.order_id}",
        f"Tracking number: {order.tracking_number}",
        f"Payment reference: {order.payment_reference}",
        "",
        "Items:",
    ]
    for item in order.items:
        lines.append(
            f"  {item.display_name} x {item.quantity} @ "
            f"{_format_amount(item.price, currency)} = "
            f"{_format_amount(item.total_price, currency)}"
        )
    lines.append("")
    lines.append(f"Subtotal: {_format_amount(order.subtotal, currency)}")
    if order.coupon is not None:
        lines.append(
            f"Discount ({order.coupon.code}, {order.coupon.discount_percentage}%): "
            f"-{_format_amount(order.discount_amount, currency)}"
        )
    lines.append(f"Total: {_format_amount(order.total, currency)}")
    lines.append("")
    lines.append("Delivery address:")
    lines.append(f"  {order.formatted_address}")
    return "\n".join(lines)


def payment_succeeded(order: OrderState) -> Notification:
    assert order.buyer is not None
    return Notification(
        kind=NotificationKind.PAYMENT_SUCCEEDED,
        recipient=order.buyer.email,
        subject="Payment Successful",
        body=f"Hello {order.buyer.full_name},\n\n"
        f"Thank you for your order.\n\n{render_invoice(order)}",
        context={"order_id": order.order_id, "reference": order.payment_reference},
    )


def payment_failed(recipient: str, cart_id: str, reference: str, reason: str) -> Notification:
    return Notification(
        kind=NotificationKind.PAYMENT_FAILED,
        recipient=recipient,
        subject="Payment Failed",
        body=(
            f"We could not complete the payment {reference} for your cart {cart_id}.\n"
            f"Reason: {reason}\n\nNo order was placed. You can try again from your cart."
        ),
        context={"cart_id": cart_id, "reference": reference, "reason": reason},
    )


def order_status_changed(order: OrderState) -> Notification:
    assert order.buyer is not None
    return Notification(
        kind=NotificationKind.ORDER_STATUS_CHANGED,
        recipient=order.buyer.email,
        subject=f"Your order is {order.status.value}",
        body=(
            f"Order {order.order_id} (tracking {order.tracking_number}) "
            f"is now {order.status.value}."
        ),
        context={"order_id": order.order_id, "status": order.status.value},
    )


def order_cancelled(order: OrderState) -> Notification:
    assert order.buyer is not None
    return Notification(
        kind=NotificationKind.ORDER_CANCELLED,
        recipient=order.buyer.email,
        subject="Your order was cancelled",
        body=(
            f"Order {order.order_id} was cancelled. A refund of "
            f"{_format_amount(order.refunded_amount, order.currency)} has been issued "
            f"to your original payment method."
        ),
        context={"order_id": order.order_id, "refunded_amount": str(order.refunded_amount)},
    )


# =============================================================================
# Dispatch
# =============================================================================


class NotificationDispatcher:
    """
    Sends notifications with bounded retries.

    Args:
        notifier: Delivery backend
        attempts: Total attempts per notification (1 = no retry)
        retry_delay: Initial backoff between attempts in seconds
    """

    def __init__(
        self,
        notifier: Notifier,
        attempts: int = 3,
        retry_delay: float = 0.5,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        if attempts < 1:
            raise ValueError(f"attempts must be >= 1, got {attempts}")
        self._notifier = notifier
        self._retry_config = RetryConfig(
            max_retries=attempts - 1,
            initial_delay=retry_delay,
            max_delay=max(retry_delay, retry_delay * 8),
        )
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    @property
    def notifier(self) -> Notifier:
        return self._notifier

    async def dispatch(self, notification: Notification) -> bool:
        """
        Send ``notification``; True if it was delivered.

        Failures are logged, never raised.
        """
        with self._tracer.span(
            "storefront.notifications.dispatch",
            {ATTR_NOTIFICATION_KIND: notification.kind.value},
        ):
            try:
                await retry_async(
                    lambda: self._notifier.send(notification),
                    self._retry_config,
                    retryable_exceptions=(Exception,),
                    operation_name=f"notify:{notification.kind.value}",
                )
            except RetryError as e:
                error = e.last_error
                if not isinstance(error, NotificationFailureError):
                    error = NotificationFailureError(
                        notification.recipient, notification.kind.value, str(error)
                    )
                logger.error(
                    "Giving up on %s notification to %s after %d attempts: %s",
                    notification.kind.value,
                    notification.recipient,
                    e.attempts,
                    error,
                    extra={
                        "kind": notification.kind.value,
                        "recipient": notification.recipient,
                        "attempts": e.attempts,
                    },
                )
                return False
        return True


__all__ = [
    "LoggingNotifier",
    "Notification",
    "NotificationDispatcher",
    "NotificationKind",
    "Notifier",
    "order_cancelled",
    "order_status_changed",
    "payment_failed",
    "payment_succeeded",
    "render_invoice",
]
