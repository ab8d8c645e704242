"""
Payment-to-order reconciliation.

A ``charge.success`` webhook turns a pending cart into an order:

1. The webhook signature is checked against the raw body.
2. A payment that already settled its cart is answered as a replay.
   Anything else is re-verified with the gateway (bounded by a timeout);
   the webhook body alone is never trusted. Any session opened for the
   cart may pay it, provided the verified amount matches the cart total.
3. Under the per-cart lock, the cart is reloaded. A cart that is already
   paid is a no-op.
4. Stock is decremented, the coupon is credited, the cart is marked paid
   and the order is placed. These changes are committed together with one
   multi-stream append, or not at all.
5. The buyer gets an invoice. Notification failures are logged only.

A commit that loses an optimistic-concurrency race is re-run from fresh
state; the re-run sees the winner's changes and usually ends in
``already_processed``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from storefront.catalog import CatalogService
from storefront.checkout import cart_lock_key
from storefront.config import Settings
from storefront.domain.cart import CartAggregate, CartState
from storefront.domain.order import OrderState
from storefront.domain.product import ProductAggregate
from storefront.domain.values import (
    LineItem,
    PaymentStatus,
    cart_aggregate_id,
    coupon_aggregate_id,
    format_order_id,
    order_aggregate_id,
)
from storefront.exceptions import (
    AggregateNotFoundError,
    CartNotFoundError,
    GatewayError,
    GatewayTimeoutError,
    InsufficientStockError,
    OptimisticLockError,
    SignatureInvalidError,
    VerificationFailedError,
)
from storefront.gateway.client import PaymentGateway
from storefront.gateway.models import (
    CHARGE_FAILED,
    CHARGE_SUCCESS,
    ChargeData,
    TransactionVerification,
)
from storefront.gateway.webhook import WebhookVerifier, parse_charge, parse_webhook_event
from storefront.locks import InMemoryLockManager
from storefront.notifications import NotificationDispatcher, payment_failed, payment_succeeded
from storefront.observability import Tracer, create_tracer
from storefront.observability.attributes import (
    ATTR_CART_ID,
    ATTR_ORDER_ID,
    ATTR_OUTCOME,
    ATTR_PAYMENT_REFERENCE,
    ATTR_WEBHOOK_EVENT,
)
from storefront.repositories import Repositories
from storefront.retry import RetryConfig, RetryError, retry_async

logger = logging.getLogger(__name__)


class ReconciliationOutcome(str, Enum):
    FULFILLED = "fulfilled"
    ALREADY_PROCESSED = "already_processed"
    PAYMENT_FAILED = "payment_failed"
    IGNORED = "ignored"


@dataclass(frozen=True)
class ReconciliationResult:
    outcome: ReconciliationOutcome
    event: str = CHARGE_SUCCESS
    cart_id: str | None = None
    reference: str | None = None
    order_id: str | None = None


@dataclass(frozen=True)
class PaymentCheck:
    """What a buyer returning from the gateway is told about a payment."""

    reference: str
    gateway_status: str
    cart: CartState | None = None
    order_id: str | None = None

    @property
    def settled(self) -> bool:
        return self.order_id is not None


class ReconciliationPipeline:
    """
    Applies gateway webhooks to carts, products, coupons and orders.

    Args:
        repositories: Aggregate repositories over one event store
        catalog: Resolves products by name when an id no longer matches
        gateway: Used to re-verify transactions
        verifier: Checks webhook signatures
        notifications: Sends buyer notifications
        locks: Serializes work per cart
        settings: Timeouts and retry limits
    """

    def __init__(
        self,
        repositories: Repositories,
        catalog: CatalogService,
        gateway: PaymentGateway,
        verifier: WebhookVerifier,
        notifications: NotificationDispatcher,
        locks: InMemoryLockManager,
        settings: Settings,
        *,
        tracer: Tracer | None = None,
    ) -> None:
        self._repos = repositories
        self._catalog = catalog
        self._gateway = gateway
        self._verifier = verifier
        self._notifications = notifications
        self._locks = locks
        self._settings = settings
        self._tracer = tracer or create_tracer(__name__, settings.enable_tracing)
        self._conflict_retry = RetryConfig(
            max_retries=settings.conflict_retries,
            initial_delay=0.01,
            max_delay=0.2,
        )

    # -------------------------------------------------------------------------
    # Webhook entry point
    # -------------------------------------------------------------------------

    async def handle_webhook(self, raw_body: bytes, signature: str | None) -> ReconciliationResult:
        """
        Authenticate, parse and dispatch one webhook delivery.

        Raises:
            SignatureInvalidError: If the signature does not match the body
            ValidationError: If the payload is malformed
            VerificationFailedError, InsufficientStockError, ...: From reconcile()
        """
        if not self._verifier.verify(raw_body, signature):
            logger.error("Rejected webhook with invalid signature")
            reason = "missing signature" if not signature else "signature mismatch"
            raise SignatureInvalidError(reason)

        event = parse_webhook_event(raw_body)
        with self._tracer.span(
            "storefront.reconciliation.handle_webhook",
            {ATTR_WEBHOOK_EVENT: event.event},
        ):
            if event.event == CHARGE_SUCCESS:
                return await self.reconcile(parse_charge(event))
            if event.event == CHARGE_FAILED:
                return await self.record_failed_charge(parse_charge(event))

            logger.info(
                "Acknowledging webhook event %s without action",
                event.event,
                extra={"webhook_event": event.event},
            )
            return ReconciliationResult(ReconciliationOutcome.IGNORED, event=event.event)

    # -------------------------------------------------------------------------
    # charge.success
    # -------------------------------------------------------------------------

    async def reconcile(self, charge: ChargeData) -> ReconciliationResult:
        """
        Settle a successful charge.

        Returns:
            ``fulfilled`` with the new order id, or ``already_processed``

        Raises:
            VerificationFailedError: Gateway did not confirm the payment or the amount
            CartNotFoundError: Metadata names an unknown cart
            InsufficientStockError: An item sold out; nothing was changed
            LockAcquisitionError: Another delivery held the cart too long
            TransactionTimeoutError: The commit did not finish in time
            OptimisticLockError: Conflicts persisted past the retry limit
        """
        cart_id = charge.metadata.cart_id
        reference = charge.reference
        log_context = {"cart_id": cart_id, "reference": reference}

        with self._tracer.span(
            "storefront.reconciliation.reconcile",
            {ATTR_CART_ID: cart_id, ATTR_PAYMENT_REFERENCE: reference},
        ) as span:
            order: OrderState | None = None
            try:
                cart = await self._load_cart(cart_id)
                if reference in cart.require_state().paid_references:
                    # Settled replays need neither the gateway nor the lock.
                    result = self._replay(cart, reference)
                else:
                    verification = await self._verify(reference)
                    async with self._locks.acquire(
                        cart_lock_key(cart_id), timeout=self._settings.lock_timeout
                    ):
                        result, order = await self._settle_with_retry(charge, verification)
            except Exception as e:
                self._log_failure(e, log_context)
                if not await self._paid_by(cart_id, reference):
                    await self._notifications.dispatch(
                        payment_failed(charge.metadata.buyer_email, cart_id, reference, str(e))
                    )
                raise

            if span:
                span.set_attribute(ATTR_OUTCOME, result.outcome.value)
                if result.order_id:
                    span.set_attribute(ATTR_ORDER_ID, result.order_id)

        if order is not None:
            await self._notifications.dispatch(payment_succeeded(order))
        return result

    async def _fetch_verification(self, reference: str) -> TransactionVerification:
        timeout = self._settings.gateway_timeout
        try:
            return await asyncio.wait_for(
                self._gateway.verify_transaction(reference), timeout=timeout
            )
        except TimeoutError:
            raise GatewayTimeoutError("verify", timeout) from None

    async def _verify(self, reference: str) -> TransactionVerification:
        try:
            verification = await self._fetch_verification(reference)
        except GatewayTimeoutError as e:
            raise VerificationFailedError(
                reference, f"verification timed out after {e.timeout}s"
            ) from e
        except GatewayError as e:
            raise VerificationFailedError(reference, str(e)) from e

        if not verification.is_successful:
            raise VerificationFailedError(
                reference, f"gateway reports status {verification.status!r}"
            )
        if verification.reference != reference:
            raise VerificationFailedError(
                reference, f"gateway returned reference {verification.reference!r}"
            )
        return verification

    async def _settle_with_retry(
        self, charge: ChargeData, verification: TransactionVerification
    ) -> tuple[ReconciliationResult, OrderState | None]:
        try:
            return await retry_async(
                lambda: self._settle(charge, verification),
                self._conflict_retry,
                retryable_exceptions=(OptimisticLockError,),
                operation_name=f"reconcile:{charge.reference}",
            )
        except RetryError as e:
            raise e.last_error from e

    async def _settle(
        self, charge: ChargeData, verification: TransactionVerification
    ) -> tuple[ReconciliationResult, OrderState | None]:
        """One attempt at the atomic settlement, against freshly loaded state."""
        cart_id = charge.metadata.cart_id
        reference = charge.reference
        log_context = {"cart_id": cart_id, "reference": reference}

        cart = await self._load_cart(cart_id)
        state = cart.require_state()

        if cart.is_processed(reference):
            return self._replay(cart, reference), None

        self._check_against_cart(state, reference, verification)

        uow = self._repos.unit_of_work(
            self._settings.transaction_timeout,
            enable_tracing=self._settings.enable_tracing,
        )

        products: dict[UUID, ProductAggregate] = {}
        for item in state.items:
            product = await self._product_for(item, products)
            product.decrement_stock(item.quantity, item.variation_id, reference=reference)
            uow.register(self._repos.products, product)

        if state.coupon is not None:
            try:
                coupon = await self._repos.coupons.load(coupon_aggregate_id(state.coupon.code))
            except AggregateNotFoundError:
                logger.warning(
                    "Coupon %s on cart %s no longer exists; settling without it",
                    state.coupon.code,
                    cart_id,
                    extra=log_context,
                )
            else:
                coupon.redeem(state.discount_amount, cart_id=cart_id, reference=reference)
                uow.register(self._repos.coupons, coupon)

        cart.mark_paid(reference, verification.paid_at)
        uow.register(self._repos.carts, cart)

        paid_state = cart.require_state()
        order = self._repos.orders.create_new(order_aggregate_id(cart_id, reference))
        order.place(paid_state, reference)
        uow.register(self._repos.orders, order)

        await uow.commit()

        order_state = order.require_state()
        logger.info(
            "Reconciled payment %s for cart %s into order %s",
            reference,
            cart_id,
            order_state.order_id,
            extra={**log_context, "order_id": order_state.order_id},
        )
        return (
            ReconciliationResult(
                ReconciliationOutcome.FULFILLED,
                cart_id=cart_id,
                reference=reference,
                order_id=order_state.order_id,
            ),
            order_state,
        )

    @staticmethod
    def _replay(cart: CartAggregate, reference: str) -> ReconciliationResult:
        """Result for a payment that finds its cart already settled."""
        state = cart.require_state()
        log_context = {"cart_id": state.cart_id, "reference": reference}
        order_id = None
        if reference in state.paid_references:
            order_id = format_order_id(order_aggregate_id(state.cart_id, reference))
            logger.warning(
                "Payment %s for cart %s was already processed; ignoring replay",
                reference,
                state.cart_id,
                extra=log_context,
            )
        else:
            logger.critical(
                "Cart %s was already paid by %s; payment %s needs a manual refund",
                state.cart_id,
                state.payment_reference,
                reference,
                extra=log_context,
            )
        return ReconciliationResult(
            ReconciliationOutcome.ALREADY_PROCESSED,
            cart_id=state.cart_id,
            reference=reference,
            order_id=order_id,
        )

    @staticmethod
    def _check_against_cart(
        state: CartState, reference: str, verification: TransactionVerification
    ) -> None:
        """
        Match a verified payment to the cart it pays for.

        Any session opened for the cart may settle it, not only the latest
        one; the verified amount and the gateway's record of the cart decide.
        """
        verified_cart = (verification.metadata or {}).get("cartId")
        if verified_cart is not None and verified_cart != state.cart_id:
            raise VerificationFailedError(
                reference, f"gateway records payment for cart {verified_cart!r}"
            )
        if state.payment_reference != reference:
            logger.info(
                "Settling cart %s with payment %s from an earlier session (latest %s)",
                state.cart_id,
                reference,
                state.payment_reference,
                extra={"cart_id": state.cart_id, "reference": reference},
            )
        if verification.amount != state.amount_minor:
            raise VerificationFailedError(
                reference,
                f"paid amount {verification.amount} does not match cart total "
                f"{state.amount_minor}",
            )

    async def _product_for(
        self, item: LineItem, cache: dict[UUID, ProductAggregate]
    ) -> ProductAggregate:
        product = cache.get(item.product_id)
        if product is not None:
            return product
        try:
            product = await self._repos.products.load(item.product_id)
        except AggregateNotFoundError:
            product = await self._catalog.find_by_name(item.product_name)
            logger.warning(
                "Product %s not found by id; matched %s by name",
                item.product_id,
                product.aggregate_id,
                extra={"product_id": str(item.product_id)},
            )
            existing = cache.get(product.aggregate_id)
            if existing is not None:
                product = existing
        cache[item.product_id] = product
        cache[product.aggregate_id] = product
        return product

    # -------------------------------------------------------------------------
    # Buyer callback
    # -------------------------------------------------------------------------

    async def check_payment(self, reference: str) -> PaymentCheck:
        """
        Re-verify a payment and report its cart, without settling anything.

        Settlement belongs to the webhook; a buyer redirected back before it
        arrives sees the gateway's status and a cart still pending.

        Raises:
            GatewayError: If the gateway refused or did not answer in time
            CartNotFoundError: If the gateway names a cart that does not exist
        """
        verification = await self._fetch_verification(reference)
        cart_id = (verification.metadata or {}).get("cartId")
        if not cart_id:
            logger.warning(
                "Payment %s carries no cart id",
                reference,
                extra={"reference": reference},
            )
            return PaymentCheck(reference, verification.status)

        cart = (await self._load_cart(cart_id)).require_state()
        order_id = None
        if reference in cart.paid_references:
            order_id = format_order_id(order_aggregate_id(cart_id, reference))
        logger.info(
            "Payment %s for cart %s is %s at the gateway; cart is %s",
            reference,
            cart_id,
            verification.status,
            cart.payment_status.value,
            extra={"cart_id": cart_id, "reference": reference},
        )
        return PaymentCheck(reference, verification.status, cart, order_id)

    # -------------------------------------------------------------------------
    # charge.failed
    # -------------------------------------------------------------------------

    async def record_failed_charge(self, charge: ChargeData) -> ReconciliationResult:
        """Mark a pending cart's payment as failed and tell the buyer."""
        cart_id = charge.metadata.cart_id
        reference = charge.reference
        log_context = {"cart_id": cart_id, "reference": reference}

        async with self._locks.acquire(cart_lock_key(cart_id), timeout=self._settings.lock_timeout):
            cart = await self._load_cart(cart_id)
            state = cart.require_state()
            if state.payment_status == PaymentStatus.PAID:
                logger.warning(
                    "Ignoring failed charge %s for already paid cart %s",
                    reference,
                    cart_id,
                    extra=log_context,
                )
                return ReconciliationResult(
                    ReconciliationOutcome.IGNORED,
                    event=CHARGE_FAILED,
                    cart_id=cart_id,
                    reference=reference,
                )

            reason = charge.gateway_response or charge.status or "charge failed"
            cart.mark_payment_failed(reference, reason)
            await self._repos.carts.save(cart)

        logger.info(
            "Recorded failed payment %s for cart %s: %s",
            reference,
            cart_id,
            reason,
            extra=log_context,
        )
        await self._notifications.dispatch(
            payment_failed(charge.metadata.buyer_email, cart_id, reference, reason)
        )
        return ReconciliationResult(
            ReconciliationOutcome.PAYMENT_FAILED,
            event=CHARGE_FAILED,
            cart_id=cart_id,
            reference=reference,
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _load_cart(self, cart_id: str) -> CartAggregate:
        try:
            return await self._repos.carts.load(cart_aggregate_id(cart_id))
        except AggregateNotFoundError:
            raise CartNotFoundError(cart_id) from None

    async def _paid_by(self, cart_id: str, reference: str) -> bool:
        """True if ``reference`` has settled the cart; read without the lock."""
        try:
            cart = await self._load_cart(cart_id)
        except CartNotFoundError:
            return False
        return reference in cart.require_state().paid_references

    @staticmethod
    def _log_failure(error: Exception, context: dict[str, str]) -> None:
        if isinstance(error, InsufficientStockError):
            logger.critical(
                "Oversold during reconciliation of %s for cart %s: %s",
                context["reference"],
                context["cart_id"],
                error,
                extra={**context, "product_id": str(error.product_id)},
            )
        else:
            logger.error(
                "Reconciliation of %s for cart %s failed: %s",
                context["reference"],
                context["cart_id"],
                error,
                extra={**context, "error_type": type(error).__name__},
            )


__all__ = [
    "PaymentCheck",
    "ReconciliationOutcome",
    "ReconciliationPipeline",
    "ReconciliationResult",
]
