"""
Cart creation and payment initialization.

A cart is priced and persisted first, then a gateway session is opened
for its total. If the gateway is down the cart stays Pending without a
session and ``initiate_payment`` can be retried.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID, uuid4

from storefront.catalog import CatalogService, CouponService
from storefront.config import Settings
from storefront.domain.cart import CartAggregate, CartState
from storefront.domain.values import AppliedCoupon, Buyer, LineItem, cart_aggregate_id
from storefront.exceptions import (
    AggregateNotFoundError,
    AlreadyProcessedError,
    CartNotFoundError,
    CouponExpiredError,
    GatewayError,
    ValidationError,
)
from storefront.gateway.client import PaymentGateway
from storefront.gateway.models import PaymentMetadata
from storefront.locks import InMemoryLockManager
from storefront.repositories import Repositories

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LineRequest:
    """
    One requested cart line.

    Attributes:
        product: Product id, name, or legacy "Name-Variation" string
        quantity: Units wanted, at least 1
        variation: Variation id or title for variable products
    """

    product: UUID | str
    quantity: int
    variation: str | None = None


@dataclass(frozen=True)
class CheckoutResult:
    cart: CartState
    payment_url: str
    reference: str


def cart_lock_key(cart_id: str) -> str:
    return f"cart:{cart_id}"


class CheckoutService:
    """Creates carts and opens payment sessions for them."""

    def __init__(
        self,
        repositories: Repositories,
        catalog: CatalogService,
        coupons: CouponService,
        gateway: PaymentGateway,
        locks: InMemoryLockManager,
        settings: Settings,
    ) -> None:
        self._repos = repositories
        self._catalog = catalog
        self._coupons = coupons
        self._gateway = gateway
        self._locks = locks
        self._settings = settings

    async def create_cart(
        self,
        buyer: Buyer,
        items: list[LineRequest],
        formatted_address: str,
        coupon_code: str | None = None,
    ) -> CheckoutResult:
        """
        Price a cart against the catalog, persist it and start payment.

        Raises:
            ValidationError: If items are empty, a quantity is below 1, or the coupon expired
            ProductNotFoundError: If a product cannot be resolved
            VariationNotFoundError: If a variation is unknown or disabled
            CouponNotFoundError: If the coupon code does not exist
            GatewayError: If the payment session could not be opened (the cart is kept)
        """
        if not items:
            raise ValidationError("Cart must contain at least one item")
        for item in items:
            if item.quantity < 1:
                raise ValidationError(f"Quantity for {item.product} must be at least 1")

        line_items: list[LineItem] = []
        for item in items:
            resolved = await self._catalog.resolve_line(item.product, item.variation)
            line_items.append(resolved.to_line_item(item.quantity))

        coupon = await self._apply_coupon(coupon_code) if coupon_code else None

        cart_id = str(uuid4())
        cart = self._repos.carts.create_new(cart_aggregate_id(cart_id))
        cart.create(
            cart_id,
            buyer,
            line_items,
            formatted_address,
            coupon=coupon,
            currency=self._settings.currency,
        )
        state = cart.require_state()
        if state.total_cart_price <= 0:
            raise ValidationError("Cart total must be greater than zero")

        await self._repos.carts.save(cart)
        logger.info(
            "Created cart %s for %s: %d line(s), total %s",
            cart_id,
            buyer.user_id,
            len(line_items),
            state.total_cart_price,
            extra={"cart_id": cart_id, "user_id": buyer.user_id},
        )

        async with self._locks.acquire(
            cart_lock_key(cart_id), timeout=self._settings.lock_timeout
        ):
            return await self._start_payment(cart)

    async def initiate_payment(self, cart_id: str) -> CheckoutResult:
        """
        Open a new payment session for a pending cart.

        Raises:
            CartNotFoundError: If the cart does not exist
            AlreadyProcessedError: If the cart is already paid
            GatewayError: If the gateway refused or timed out
        """
        async with self._locks.acquire(
            cart_lock_key(cart_id), timeout=self._settings.lock_timeout
        ):
            cart = await self._load(cart_id)
            if cart.is_processed():
                raise AlreadyProcessedError(cart_id, cart.require_state().payment_reference)
            return await self._start_payment(cart)

    async def get_cart(self, cart_id: str) -> CartState:
        cart = await self._load(cart_id)
        return cart.require_state()

    async def _start_payment(self, cart: CartAggregate) -> CheckoutResult:
        state = cart.require_state()
        assert state.buyer is not None
        metadata = PaymentMetadata(
            cart_id=state.cart_id,
            user_id=state.buyer.user_id,
            buyer_email=state.buyer.email,
            formatted_address=state.formatted_address,
        )
        try:
            session = await self._gateway.initialize_transaction(
                email=state.buyer.email,
                amount_minor=state.amount_minor,
                metadata=metadata,
            )
        except GatewayError:
            logger.error(
                "Could not open a payment session for cart %s",
                state.cart_id,
                extra={"cart_id": state.cart_id},
                exc_info=True,
            )
            raise

        cart.record_payment_session(
            session.reference, session.authorization_url, session.access_code
        )
        await self._repos.carts.save(cart)
        updated = cart.require_state()
        return CheckoutResult(
            cart=updated,
            payment_url=session.authorization_url,
            reference=session.reference,
        )

    async def _apply_coupon(self, code: str) -> AppliedCoupon:
        coupon = await self._coupons.get_coupon(code)
        now = datetime.now(UTC)
        state = coupon.require_state()
        if coupon.is_expired(now):
            raise CouponExpiredError(state.code)
        return AppliedCoupon(
            code=state.code,
            discount_percentage=state.discount_percentage,
            applied_at=now,
        )

    async def _load(self, cart_id: str) -> CartAggregate:
        try:
            return await self._repos.carts.load(cart_aggregate_id(cart_id))
        except AggregateNotFoundError:
            raise CartNotFoundError(cart_id) from None


__all__ = [
    "CheckoutResult",
    "CheckoutService",
    "LineRequest",
    "cart_lock_key",
]
