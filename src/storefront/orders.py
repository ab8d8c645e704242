"""
Order management: status updates, cancellation and refunds.

Cancellation returns the money first and records the outcome second. The
order and its cart are staged under the cart lock, the gateway refund is
issued, and only then are both streams committed together. A refused
refund leaves both untouched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from storefront.checkout import cart_lock_key
from storefront.config import Settings
from storefront.domain.cart import CartAggregate
from storefront.domain.order import OrderAggregate, OrderPlaced, OrderState
from storefront.domain.values import (
    OrderStatus,
    PaymentStatus,
    cart_aggregate_id,
    parse_order_id,
    to_minor_units,
)
from storefront.exceptions import AggregateNotFoundError, OrderNotFoundError
from storefront.gateway.client import PaymentGateway
from storefront.gateway.models import RefundReceipt
from storefront.locks import InMemoryLockManager
from storefront.notifications import (
    NotificationDispatcher,
    order_cancelled,
    order_status_changed,
)
from storefront.repositories import Repositories

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RefundOutcome:
    """Result of an admin refund by payment reference."""

    receipt: RefundReceipt
    order: OrderState | None = None


class OrderService:
    """Reads and changes placed orders."""

    def __init__(
        self,
        repositories: Repositories,
        gateway: PaymentGateway,
        locks: InMemoryLockManager,
        notifications: NotificationDispatcher,
        settings: Settings,
    ) -> None:
        self._repos = repositories
        self._gateway = gateway
        self._locks = locks
        self._notifications = notifications
        self._settings = settings

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def get_order(self, order_id: str) -> OrderState:
        order = await self._load(order_id)
        return order.require_state()

    async def find_by_payment_reference(self, reference: str) -> OrderState | None:
        """The order placed for ``reference``, or None."""
        events = await self._repos.event_store.get_events_by_type(
            self._repos.orders.aggregate_type, OrderPlaced.default_event_type()
        )
        for event in events:
            if isinstance(event, OrderPlaced) and event.payment_reference == reference:
                return await self.get_order(event.order_id)
        return None

    async def list_order_ids(self) -> list[str]:
        events = await self._repos.event_store.get_events_by_type(
            self._repos.orders.aggregate_type, OrderPlaced.default_event_type()
        )
        return [event.order_id for event in events if isinstance(event, OrderPlaced)]

    async def list_orders(self) -> list[OrderState]:
        """Every order in placement order."""
        return [await self.get_order(order_id) for order_id in await self.list_order_ids()]

    # -------------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------------

    async def update_status(self, order_id: str, new_status: OrderStatus | str) -> OrderState:
        """
        Move an order to In Transit, Arrived, Delivered or Cancelled.

        Raises:
            OrderNotFoundError: If the order does not exist
            InvalidStatusError: If ``new_status`` is not an allowed target
            InvalidStateTransitionError: If the order is terminal or the move goes backwards
        """
        order = await self._load(order_id)
        order.update_status(new_status)
        await self._repos.orders.save(order)

        state = order.require_state()
        logger.info(
            "Order %s is now %s",
            state.order_id,
            state.status.value,
            extra={"order_id": state.order_id, "status": state.status.value},
        )
        await self._notifications.dispatch(order_status_changed(state))
        return state

    # -------------------------------------------------------------------------
    # Cancellation
    # -------------------------------------------------------------------------

    async def cancel(self, order_id: str) -> OrderState:
        """
        Refund the order total and cancel the order, reopening its cart.

        Raises:
            OrderNotFoundError: If the order does not exist
            InvalidStateTransitionError: If the order is already Cancelled or Refunded
            RefundFailedError: If the gateway refused the refund; nothing is changed
            LockAcquisitionError: If the cart stayed locked past the lock timeout
        """
        order = await self._load(order_id)
        state = order.ensure_cancellable()

        async with self._locks.acquire(
            cart_lock_key(state.cart_id), timeout=self._settings.lock_timeout
        ):
            # Reload under the lock; the status may have moved meanwhile.
            order = await self._load(order_id)
            state = order.ensure_cancellable()
            cart = await self._cart_to_reopen(state)

            receipt = await self._gateway.refund(
                state.payment_reference, to_minor_units(state.total)
            )

            uow = self._repos.unit_of_work(
                self._settings.transaction_timeout,
                enable_tracing=self._settings.enable_tracing,
            )
            order.cancel(state.total, receipt.reference)
            uow.register(self._repos.orders, order)
            if cart is not None:
                cart.reopen("order cancelled", state.order_id)
                uow.register(self._repos.carts, cart)

            try:
                await uow.commit()
            except Exception:
                logger.critical(
                    "Refund for %s succeeded but cancelling order %s failed",
                    state.payment_reference,
                    state.order_id,
                    extra={
                        "order_id": state.order_id,
                        "reference": state.payment_reference,
                        "cart_id": state.cart_id,
                    },
                    exc_info=True,
                )
                raise

        cancelled = order.require_state()
        logger.info(
            "Cancelled order %s and refunded %s",
            cancelled.order_id,
            cancelled.refunded_amount,
            extra={"order_id": cancelled.order_id, "cart_id": cancelled.cart_id},
        )
        await self._notifications.dispatch(order_cancelled(cancelled))
        return cancelled

    async def _cart_to_reopen(self, order: OrderState) -> CartAggregate | None:
        """The order's cart, if this order's payment is the one holding it Paid."""
        try:
            cart = await self._repos.carts.load(cart_aggregate_id(order.cart_id))
        except AggregateNotFoundError:
            logger.warning(
                "Cart %s for order %s is gone; cancelling the order only",
                order.cart_id,
                order.order_id,
                extra={"order_id": order.order_id, "cart_id": order.cart_id},
            )
            return None
        cart_state = cart.require_state()
        if (
            cart_state.payment_status != PaymentStatus.PAID
            or cart_state.payment_reference != order.payment_reference
        ):
            logger.warning(
                "Cart %s is no longer held by payment %s; leaving it as is",
                order.cart_id,
                order.payment_reference,
                extra={"order_id": order.order_id, "cart_id": order.cart_id},
            )
            return None
        return cart

    # -------------------------------------------------------------------------
    # Refunds
    # -------------------------------------------------------------------------

    async def request_refund(self, order_id: str, amount: Decimal) -> OrderState:
        """
        Record a refund request.

        Raises:
            OrderNotFoundError: If the order does not exist
            InvalidStateTransitionError: If the order is not Delivered or Processing,
                or a refund is already in progress or done
            InvalidRefundAmountError: If amount is not within (0, total]
        """
        order = await self._load(order_id)
        order.request_refund(amount)
        await self._repos.orders.save(order)
        state = order.require_state()
        logger.info(
            "Refund of %s requested for order %s",
            state.refunded_amount,
            state.order_id,
            extra={"order_id": state.order_id},
        )
        return state

    async def complete_refund(self, order_id: str) -> OrderState:
        order = await self._load(order_id)
        order.complete_refund()
        await self._repos.orders.save(order)
        state = order.require_state()
        logger.info("Refund completed for order %s", state.order_id)
        return state

    async def fail_refund(self, order_id: str, reason: str) -> OrderState:
        order = await self._load(order_id)
        order.fail_refund(reason)
        await self._repos.orders.save(order)
        state = order.require_state()
        logger.warning(
            "Refund failed for order %s: %s",
            state.order_id,
            reason,
            extra={"order_id": state.order_id},
        )
        return state

    async def refund_payment(self, reference: str, amount: Decimal) -> RefundOutcome:
        """
        Refund ``amount`` of a payment at the gateway.

        When an order was placed for the payment, the amount is validated
        against it before the gateway is called and the request is recorded
        on it afterwards.

        Raises:
            InvalidRefundAmountError, InvalidStateTransitionError: From the order checks
            RefundFailedError: If the gateway refused; nothing is recorded
        """
        placed = await self.find_by_payment_reference(reference)
        order: OrderAggregate | None = None
        if placed is not None:
            order = await self._load(placed.order_id)
            order.ensure_refundable(amount)
        else:
            logger.warning(
                "No order found for payment %s; refunding at the gateway only",
                reference,
                extra={"reference": reference},
            )

        receipt = await self._gateway.refund(reference, to_minor_units(amount))

        if order is None:
            return RefundOutcome(receipt=receipt)
        order.request_refund(amount)
        await self._repos.orders.save(order)
        return RefundOutcome(receipt=receipt, order=order.state)

    async def _load(self, order_id: str) -> OrderAggregate:
        try:
            aggregate_id = parse_order_id(order_id)
        except ValueError:
            raise OrderNotFoundError(order_id) from None
        try:
            return await self._repos.orders.load(aggregate_id)
        except AggregateNotFoundError:
            raise OrderNotFoundError(order_id) from None


__all__ = [
    "OrderService",
    "RefundOutcome",
]
