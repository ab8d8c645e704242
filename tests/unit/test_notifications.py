"""Tests for notification builders and the retrying dispatcher."""

import logging
from datetime import UTC, datetime
from decimal import Decimal
from uuid import uuid4

import pytest

from storefront.domain.order import OrderState
from storefront.domain.values import AppliedCoupon, Buyer, LineItem, OrderStatus
from storefront.notifications import (
    LoggingNotifier,
    NotificationDispatcher,
    NotificationKind,
    order_cancelled,
    order_status_changed,
    payment_failed,
    payment_succeeded,
    render_invoice,
)
from tests.fixtures import FailingNotifier, FlakyNotifier, RecordingNotifier


@pytest.fixture
def order_state() -> OrderState:
    return OrderState(
        aggregate_id=uuid4(),
        order_id="ORDER-1",
        tracking_number="TRK-1-00001",
        cart_id="cart-1",
        payment_reference="ref-1",
        buyer=Buyer(user_id="user-1", email="ada@example.com", first_name="Ada"),
        items=[
            LineItem(
                product_id=uuid4(),
                product_name="Bulb",
                variation_id="9w",
                variation_title="9w",
                price=Decimal("1500"),
                quantity=2,
            )
        ],
        formatted_address="12 Marina Road",
        subtotal=Decimal("3000.00"),
        discount_amount=Decimal("300.00"),
        total=Decimal("2700.00"),
        coupon=AppliedCoupon(
            code="SAVE10", discount_percentage=Decimal("10"), applied_at=datetime.now(UTC)
        ),
        currency="NGN",
    )


class TestMessages:
    """Tests for notification content."""

    def test_invoice_lists_items_and_totals(self, order_state: OrderState) -> None:
        """Test the invoice shows line items, discount and total."""
        invoice = render_invoice(order_state)

        assert "Bulb (9w) x 2 @ NGN 1,500.00 = NGN 3,000.00" in invoice
        assert "Discount (SAVE10, 10%): -NGN 300.00" in invoice
        assert "Total: NGN 2,700.00" in invoice
        assert "TRK-1-00001" in invoice

    def test_payment_succeeded(self, order_state: OrderState) -> None:
        """Test the success message goes to the buyer with the invoice."""
        notification = payment_succeeded(order_state)

        assert notification.kind == NotificationKind.PAYMENT_SUCCEEDED
        assert notification.recipient == "ada@example.com"
        assert notification.subject == "Payment Successful"
        assert "Hello Ada" in notification.body
        assert notification.context["order_id"] == "ORDER-1"

    def test_payment_failed(self) -> None:
        """Test the failure message carries the cart, reference and reason."""
        notification = payment_failed("ada@example.com", "cart-1", "ref-1", "Declined")

        assert notification.kind == NotificationKind.PAYMENT_FAILED
        assert "ref-1" in notification.body
        assert notification.context == {
            "cart_id": "cart-1",
            "reference": "ref-1",
            "reason": "Declined",
        }

    def test_status_and_cancel_messages(self, order_state: OrderState) -> None:
        """Test status and cancellation messages name the order."""
        moved = order_state.model_copy(update={"status": OrderStatus.IN_TRANSIT})
        cancelled = order_state.model_copy(update={"refunded_amount": Decimal("2700.00")})

        assert order_status_changed(moved).subject == "Your order is In Transit"
        assert "NGN 2,700.00" in order_cancelled(cancelled).body


class TestNotificationDispatcher:
    """Tests for bounded retries that never raise."""

    @pytest.mark.asyncio
    async def test_delivers(self, order_state: OrderState) -> None:
        """Test a working notifier receives the message once."""
        notifier = RecordingNotifier()
        dispatcher = NotificationDispatcher(notifier, retry_delay=0.001, enable_tracing=False)

        assert await dispatcher.dispatch(payment_succeeded(order_state)) is True
        assert notifier.kinds == [NotificationKind.PAYMENT_SUCCEEDED]

    @pytest.mark.asyncio
    async def test_retries_transient_failures(self, order_state: OrderState) -> None:
        """Test a notifier that fails twice then succeeds is retried."""
        notifier = FlakyNotifier(failures=2)
        dispatcher = NotificationDispatcher(notifier, 3, 0.001, enable_tracing=False)

        assert await dispatcher.dispatch(payment_succeeded(order_state)) is True
        assert notifier.attempts == 3
        assert len(notifier.sent) == 1

    @pytest.mark.asyncio
    async def test_gives_up_without_raising(
        self, order_state: OrderState, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test exhausted attempts return False and log an error."""
        notifier = FailingNotifier()
        dispatcher = NotificationDispatcher(notifier, 3, 0.001, enable_tracing=False)

        with caplog.at_level(logging.ERROR, logger="storefront.notifications"):
            delivered = await dispatcher.dispatch(payment_succeeded(order_state))

        assert delivered is False
        assert notifier.attempts == 3
        assert "Giving up on payment_succeeded notification" in caplog.text

    def test_attempts_must_be_positive(self) -> None:
        """Test at least one attempt is required."""
        with pytest.raises(ValueError):
            NotificationDispatcher(RecordingNotifier(), attempts=0)

    @pytest.mark.asyncio
    async def test_logging_notifier(
        self, order_state: OrderState, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test the default notifier logs the subject."""
        with caplog.at_level(logging.INFO, logger="storefront.notifications"):
            await LoggingNotifier().send(payment_succeeded(order_state))

        assert "Payment Successful" in caplog.text
