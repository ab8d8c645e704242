"""
Catalog and coupon services.

Products are found by id or, for compatibility with older clients, by
name. Checkout also accepts the legacy "Name-Variation" spelling, where
the variation title is appended to the product name.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

from storefront.domain.coupon import CouponAggregate, CouponIssued, CouponState
from storefront.domain.product import ProductAggregate, ProductCreated
from storefront.domain.values import (
    LineItem,
    ProductType,
    VariationOption,
    coupon_aggregate_id,
    normalize_coupon_code,
)
from storefront.exceptions import (
    AggregateNotFoundError,
    CouponNotFoundError,
    OptimisticLockError,
    ProductNotFoundError,
    ValidationError,
    VariationNotFoundError,
)
from storefront.repositories import Repositories

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedLine:
    """A requested cart line matched against the catalog."""

    product: ProductAggregate
    variation: VariationOption | None
    unit_price: Decimal

    def to_line_item(self, quantity: int) -> LineItem:
        state = self.product.require_state()
        return LineItem(
            product_id=self.product.aggregate_id,
            product_name=state.name,
            variation_id=self.variation.variation_id if self.variation else None,
            variation_title=self.variation.title if self.variation else None,
            price=self.unit_price,
            quantity=quantity,
        )


class CatalogService:
    """Adds, changes and looks up products."""

    def __init__(self, repositories: Repositories) -> None:
        self._repos = repositories

    async def add_simple_product(
        self,
        name: str,
        price: Decimal,
        quantity: int,
        *,
        sale_price: Decimal | None = None,
        product_id: UUID | None = None,
    ) -> ProductAggregate:
        await self._ensure_unique_name(name)
        product = self._repos.products.create_new(product_id or uuid4())
        product.create_simple(name, price, quantity, sale_price=sale_price)
        await self._repos.products.save(product)
        logger.info(
            "Added product %s (%s)",
            name,
            product.aggregate_id,
            extra={"product_id": str(product.aggregate_id)},
        )
        return product

    async def add_variable_product(
        self,
        name: str,
        variation_options: list[VariationOption],
        *,
        product_id: UUID | None = None,
    ) -> ProductAggregate:
        await self._ensure_unique_name(name)
        product = self._repos.products.create_new(product_id or uuid4())
        product.create_variable(name, variation_options)
        await self._repos.products.save(product)
        logger.info(
            "Added variable product %s (%s) with %d variations",
            name,
            product.aggregate_id,
            len(variation_options),
            extra={"product_id": str(product.aggregate_id)},
        )
        return product

    async def change_variation_options(
        self, product_id: UUID, variation_options: list[VariationOption]
    ) -> ProductAggregate:
        product = await self.get_product(product_id)
        product.change_variation_options(variation_options)
        await self._repos.products.save(product)
        return product

    async def restock(
        self, product_id: UUID, quantity: int, variation_id: str | None = None
    ) -> ProductAggregate:
        product = await self.get_product(product_id)
        product.restock(quantity, variation_id)
        await self._repos.products.save(product)
        logger.info(
            "Restocked %s by %d",
            product_id,
            quantity,
            extra={"product_id": str(product_id), "variation_id": variation_id},
        )
        return product

    async def get_product(self, product_id: UUID) -> ProductAggregate:
        try:
            return await self._repos.products.load(product_id)
        except AggregateNotFoundError:
            raise ProductNotFoundError(str(product_id)) from None

    async def find_by_name(self, name: str) -> ProductAggregate:
        """
        Product whose name matches case-insensitively.

        Raises:
            ProductNotFoundError: If no product has that name
        """
        product_id = await self._find_id_by_name(name)
        if product_id is None:
            raise ProductNotFoundError(name)
        return await self.get_product(product_id)

    async def resolve_product(self, product: UUID | str) -> ProductAggregate:
        """Product by id, or by name when ``product`` is not a UUID."""
        if isinstance(product, UUID):
            return await self.get_product(product)
        try:
            product_id = UUID(product)
        except ValueError:
            return await self.find_by_name(product)
        return await self.get_product(product_id)

    async def list_products(self) -> list[ProductAggregate]:
        return [await self.get_product(pid) for pid in await self._repos.products.list_ids()]

    async def resolve_line(
        self,
        product: UUID | str,
        variation: str | None = None,
    ) -> ResolvedLine:
        """
        Match a requested line against the catalog.

        Args:
            product: Product id, product name, or legacy "Name-Variation" string
            variation: Variation id or title, for variable products

        Raises:
            ProductNotFoundError: If the product cannot be found
            VariationNotFoundError: If the variation is unknown or disabled
        """
        aggregate, variation = await self._lookup(product, variation)
        state = aggregate.require_state()

        if state.product_type == ProductType.VARIABLE:
            option = aggregate.resolve_variation(variation, purchasable=True)
            return ResolvedLine(aggregate, option, option.effective_price)
        if variation is not None:
            raise VariationNotFoundError(aggregate.aggregate_id, variation, "on a simple product")
        return ResolvedLine(aggregate, None, aggregate.unit_price())

    async def _lookup(
        self, product: UUID | str, variation: str | None
    ) -> tuple[ProductAggregate, str | None]:
        if isinstance(product, UUID):
            return await self.get_product(product), variation
        try:
            return await self.get_product(UUID(product)), variation
        except ValueError:
            pass

        product_id = await self._find_id_by_name(product)
        if product_id is not None:
            return await self.get_product(product_id), variation

        # Legacy "Name-Variation" spelling
        if variation is None and "-" in product:
            name, _, title = product.rpartition("-")
            product_id = await self._find_id_by_name(name)
            if product_id is not None:
                return await self.get_product(product_id), title.strip()
        raise ProductNotFoundError(product)

    async def _find_id_by_name(self, name: str) -> UUID | None:
        wanted = name.strip().lower()
        events = await self._repos.event_store.get_events_by_type(
            self._repos.products.aggregate_type, ProductCreated.default_event_type()
        )
        for event in events:
            if isinstance(event, ProductCreated) and event.name.lower() == wanted:
                return event.aggregate_id
        return None

    async def _ensure_unique_name(self, name: str) -> None:
        if await self._find_id_by_name(name) is not None:
            raise ValidationError(f"A product named {name.strip()!r} already exists")


class CouponService:
    """Issues and looks up coupons."""

    def __init__(self, repositories: Repositories, default_discount: Decimal) -> None:
        self._repos = repositories
        self._default_discount = default_discount

    async def issue_coupon(
        self,
        code: str,
        *,
        discount_percentage: Decimal | None = None,
        expiration_date: datetime | None = None,
    ) -> CouponAggregate:
        """
        Create a coupon; the code is unique.

        Raises:
            ValidationError: If the code is taken or the terms are invalid
        """
        coupon = self._repos.coupons.create_new(coupon_aggregate_id(code))
        coupon.issue(
            code,
            discount_percentage if discount_percentage is not None else self._default_discount,
            expiration_date,
        )
        try:
            await self._repos.coupons.save(coupon)
        except OptimisticLockError:
            raise ValidationError(
                f"Coupon {normalize_coupon_code(code)} already exists"
            ) from None
        logger.info("Issued coupon %s", normalize_coupon_code(code))
        return coupon

    async def get_coupon(self, code: str) -> CouponAggregate:
        try:
            return await self._repos.coupons.load(coupon_aggregate_id(code))
        except AggregateNotFoundError:
            raise CouponNotFoundError(normalize_coupon_code(code)) from None

    async def list_codes(self) -> list[str]:
        events = await self._repos.event_store.get_events_by_type(
            self._repos.coupons.aggregate_type, CouponIssued.default_event_type()
        )
        return [event.code for event in events if isinstance(event, CouponIssued)]

    async def list_coupons(self) -> list[CouponState]:
        """Every coupon with its balance and usage count, in issue order."""
        return [(await self.get_coupon(code)).require_state() for code in await self.list_codes()]


__all__ = [
    "CatalogService",
    "CouponService",
    "ResolvedLine",
]
