"""Tests for the Order aggregate state machine."""

from decimal import Decimal
from uuid import uuid4

import pytest

from storefront.domain.cart import CartAggregate, CartState
from storefront.domain.order import OrderAggregate, OrderStatusChanged
from storefront.domain.values import (
    Buyer,
    LineItem,
    OrderStatus,
    PaymentStatus,
    RefundStatus,
    format_order_id,
)
from storefront.exceptions import (
    InvalidRefundAmountError,
    InvalidStateTransitionError,
    InvalidStatusError,
)


@pytest.fixture
def paid_cart() -> CartState:
    cart = CartAggregate(uuid4())
    cart.create(
        "cart-1",
        Buyer(user_id="user-1", email="ada@example.com"),
        [
            LineItem(
                product_id=uuid4(), product_name="Kettle", price=Decimal("25.50"), quantity=2
            )
        ],
        "12 Marina Road",
    )
    cart.mark_paid("ref-1")
    assert cart.state is not None
    return cart.state


@pytest.fixture
def order(paid_cart: CartState) -> OrderAggregate:
    aggregate = OrderAggregate(uuid4())
    aggregate.place(paid_cart, "ref-1", tracking_number="TRK-1-00001")
    return aggregate


def in_status(order: OrderAggregate, *path: OrderStatus) -> OrderAggregate:
    for status in path:
        order.update_status(status)
    return order


class TestPlace:
    """Tests for placing an order from a paid cart."""

    def test_place_copies_cart(self, order: OrderAggregate) -> None:
        """Test the order is a frozen copy of the cart."""
        state = order.state
        assert state is not None
        assert state.order_id == format_order_id(order.aggregate_id)
        assert state.tracking_number == "TRK-1-00001"
        assert state.cart_id == "cart-1"
        assert state.payment_reference == "ref-1"
        assert state.total == Decimal("51.00")
        assert state.status == OrderStatus.PROCESSING
        assert state.status_color == "#B0B0B0"
        assert state.payment_status == PaymentStatus.PAID
        assert state.refund_status == RefundStatus.NOT_REQUESTED

    def test_place_generates_tracking_number(self) -> None:
        """Test a tracking number is generated when none is given."""
        cart = CartAggregate(uuid4())
        cart.create(
            "cart-2",
            Buyer(user_id="u", email="a@b.c"),
            [LineItem(product_id=uuid4(), product_name="Kettle", price=Decimal(1), quantity=1)],
            "Address",
        )
        assert cart.state is not None
        order = OrderAggregate(uuid4())

        order.place(cart.state, "ref-9")

        assert order.state is not None
        assert order.state.tracking_number.startswith("TRK-")

    def test_place_twice_rejected(self, order: OrderAggregate, paid_cart: CartState) -> None:
        """Test an order stream is placed once."""
        with pytest.raises(InvalidStateTransitionError):
            order.place(paid_cart, "ref-1")


class TestStatusUpdates:
    """Tests for forward-only fulfillment moves."""

    def test_forward_moves(self, order: OrderAggregate) -> None:
        """Test Processing -> In Transit -> Arrived -> Delivered."""
        in_status(order, OrderStatus.IN_TRANSIT, OrderStatus.ARRIVED, OrderStatus.DELIVERED)

        assert order.state is not None
        assert order.state.status == OrderStatus.DELIVERED
        assert order.state.status_color == "#32CD32"

    def test_skipping_ahead_allowed(self, order: OrderAggregate) -> None:
        """Test a move may skip intermediate statuses."""
        order.update_status("Delivered")

        event = order.uncommitted_events[-1]
        assert isinstance(event, OrderStatusChanged)
        assert event.previous_status == OrderStatus.PROCESSING
        assert event.new_status == OrderStatus.DELIVERED

    def test_backwards_move_rejected(self, order: OrderAggregate) -> None:
        """Test an order cannot go back to an earlier status."""
        in_status(order, OrderStatus.ARRIVED)

        with pytest.raises(InvalidStateTransitionError):
            order.update_status(OrderStatus.IN_TRANSIT)

    def test_same_status_rejected(self, order: OrderAggregate) -> None:
        """Test moving to the current status is not a transition."""
        in_status(order, OrderStatus.IN_TRANSIT)

        with pytest.raises(InvalidStateTransitionError):
            order.update_status(OrderStatus.IN_TRANSIT)

    @pytest.mark.parametrize("terminal", [OrderStatus.DELIVERED, OrderStatus.CANCELLED])
    def test_terminal_status_is_final(
        self, order: OrderAggregate, terminal: OrderStatus
    ) -> None:
        """Test nothing moves a Delivered or Cancelled order."""
        in_status(order, terminal)

        with pytest.raises(InvalidStateTransitionError):
            order.update_status(OrderStatus.CANCELLED)

    @pytest.mark.parametrize("status", ["Processing", "Refunded", "Shipped"])
    def test_invalid_update_target(self, order: OrderAggregate, status: str) -> None:
        """Test only In Transit, Arrived, Delivered and Cancelled are accepted."""
        with pytest.raises(InvalidStatusError):
            order.update_status(status)


class TestCancel:
    """Tests for cancellation with a gateway refund."""

    def test_cancel_records_refund(self, order: OrderAggregate) -> None:
        """Test cancel marks the order Cancelled and its payment Refunded."""
        order.cancel(Decimal("51"), "rf-1")

        assert order.state is not None
        assert order.state.status == OrderStatus.CANCELLED
        assert order.state.payment_status == PaymentStatus.REFUNDED
        assert order.state.refunded_amount == Decimal("51.00")

    def test_cancel_in_transit_allowed(self, order: OrderAggregate) -> None:
        """Test an order can be cancelled while moving."""
        in_status(order, OrderStatus.IN_TRANSIT)

        assert order.ensure_cancellable().status == OrderStatus.IN_TRANSIT

    def test_cancel_twice_rejected(self, order: OrderAggregate) -> None:
        """Test a cancelled order cannot be cancelled again."""
        order.cancel(Decimal("51"))

        with pytest.raises(InvalidStateTransitionError):
            order.cancel(Decimal("51"))


class TestRefunds:
    """Tests for the refund request lifecycle."""

    def test_request_refund(self, order: OrderAggregate) -> None:
        """Test a refund request moves the order to Refunded / Requested."""
        order.request_refund(Decimal("20"))

        assert order.state is not None
        assert order.state.status == OrderStatus.REFUNDED
        assert order.state.refund_status == RefundStatus.REQUESTED
        assert order.state.refunded_amount == Decimal("20.00")
        assert order.state.status_before_refund == OrderStatus.PROCESSING

    def test_refund_from_delivered(self, order: OrderAggregate) -> None:
        """Test a delivered order can be refunded."""
        in_status(order, OrderStatus.DELIVERED)

        order.request_refund(Decimal("51"))

        assert order.state is not None
        assert order.state.status_before_refund == OrderStatus.DELIVERED

    def test_refund_in_transit_rejected(self, order: OrderAggregate) -> None:
        """Test refunds are only allowed from Processing or Delivered."""
        in_status(order, OrderStatus.IN_TRANSIT)

        with pytest.raises(InvalidStateTransitionError):
            order.request_refund(Decimal("10"))

    @pytest.mark.parametrize("amount", ["0", "-1", "51.01"])
    def test_refund_amount_bounds(self, order: OrderAggregate, amount: str) -> None:
        """Test the amount must be positive and at most the order total."""
        with pytest.raises(InvalidRefundAmountError):
            order.request_refund(Decimal(amount))

    def test_second_request_rejected(self, order: OrderAggregate) -> None:
        """Test a pending refund blocks another request."""
        order.request_refund(Decimal("10"))

        with pytest.raises(InvalidStateTransitionError):
            order.request_refund(Decimal("10"))

    def test_complete_refund(self, order: OrderAggregate) -> None:
        """Test completing a refund marks the payment refunded."""
        order.request_refund(Decimal("51"))

        order.complete_refund()

        assert order.state is not None
        assert order.state.refund_status == RefundStatus.COMPLETED
        assert order.state.payment_status == PaymentStatus.REFUNDED
        assert order.state.status == OrderStatus.REFUNDED

    def test_fail_refund_restores_status(self, order: OrderAggregate) -> None:
        """Test a failed refund returns the order to its previous status."""
        in_status(order, OrderStatus.DELIVERED)
        order.request_refund(Decimal("51"))

        order.fail_refund("card closed")

        assert order.state is not None
        assert order.state.status == OrderStatus.DELIVERED
        assert order.state.refund_status == RefundStatus.FAILED
        assert order.state.refunded_amount == Decimal("0.00")

    def test_refund_can_be_retried_after_failure(self, order: OrderAggregate) -> None:
        """Test a new request is allowed once the previous one failed."""
        order.request_refund(Decimal("10"))
        order.fail_refund("timeout")

        order.request_refund(Decimal("10"))

        assert order.state is not None
        assert order.state.refund_status == RefundStatus.REQUESTED

    def test_complete_without_request_rejected(self, order: OrderAggregate) -> None:
        """Test a refund must be requested before it completes."""
        with pytest.raises(InvalidStateTransitionError):
            order.complete_refund()
