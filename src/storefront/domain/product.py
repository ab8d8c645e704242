"""
Product aggregate (the catalog store).

A product is either simple, with one price and one stock counter, or
variable, with a list of variation options that each carry their own
price and stock. Stock counters never go negative.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field

from storefront.aggregates.base import DeclarativeAggregate
from storefront.domain.values import ProductType, VariationOption, slugify, to_money
from storefront.events import DomainEvent, register_event
from storefront.exceptions import (
    InsufficientStockError,
    InvalidStateTransitionError,
    ValidationError,
    VariationNotFoundError,
)
from storefront.handlers import handles

logger = logging.getLogger(__name__)

PRODUCT_AGGREGATE_TYPE = "Product"


# =============================================================================
# Events
# =============================================================================


@register_event
class ProductCreated(DomainEvent):
    aggregate_type: str = PRODUCT_AGGREGATE_TYPE

    name: str
    slug: str
    product_type: ProductType
    price: Decimal | None = None
    sale_price: Decimal | None = None
    quantity: int = 0
    variation_options: list[VariationOption] = Field(default_factory=list)


@register_event
class VariationOptionsChanged(DomainEvent):
    aggregate_type: str = PRODUCT_AGGREGATE_TYPE

    variation_options: list[VariationOption]


@register_event
class StockDecremented(DomainEvent):
    """Units sold; ``remaining`` is the counter after the sale."""

    aggregate_type: str = PRODUCT_AGGREGATE_TYPE

    quantity: int
    variation_id: str | None = None
    remaining: int
    reference: str | None = None


@register_event
class ProductRestocked(DomainEvent):
    aggregate_type: str = PRODUCT_AGGREGATE_TYPE

    quantity: int
    variation_id: str | None = None
    remaining: int


# =============================================================================
# State
# =============================================================================


class ProductState(BaseModel):
    """Current state of a product."""

    product_id: UUID
    name: str = ""
    slug: str = ""
    product_type: ProductType = ProductType.SIMPLE
    price: Decimal | None = None
    sale_price: Decimal | None = None
    quantity: int = 0
    variation_options: list[VariationOption] = Field(default_factory=list)
    min_price: Decimal | None = None
    max_price: Decimal | None = None
    created: bool = False

    def find_variation(self, key: str) -> VariationOption | None:
        """Variation by id, falling back to a case-insensitive title match."""
        for option in self.variation_options:
            if option.variation_id == key:
                return option
        lowered = key.lower()
        for option in self.variation_options:
            if option.title.lower() == lowered:
                return option
        return None

    @property
    def total_stock(self) -> int:
        if self.product_type == ProductType.VARIABLE:
            return sum(option.quantity for option in self.variation_options)
        return self.quantity


def _price_range(options: list[VariationOption]) -> tuple[Decimal | None, Decimal | None]:
    if not options:
        return None, None
    prices = [option.effective_price for option in options]
    return min(prices), max(prices)


def _replace_option_quantity(
    options: list[VariationOption], variation_id: str, quantity: int
) -> list[VariationOption]:
    return [
        option.model_copy(update={"quantity": quantity})
        if option.variation_id == variation_id
        else option
        for option in options
    ]


# =============================================================================
# Aggregate
# =============================================================================


class ProductAggregate(DeclarativeAggregate[ProductState]):
    """Event-sourced catalog entry."""

    aggregate_type = PRODUCT_AGGREGATE_TYPE

    def _get_initial_state(self) -> ProductState:
        return ProductState(product_id=self.aggregate_id)

    @handles(ProductCreated)
    def _on_created(self, event: ProductCreated) -> None:
        min_price, max_price = _price_range(event.variation_options)
        if event.product_type == ProductType.SIMPLE:
            effective = event.sale_price if event.sale_price is not None else event.price
            min_price = max_price = effective
        self._state = ProductState(
            product_id=self.aggregate_id,
            name=event.name,
            slug=event.slug,
            product_type=event.product_type,
            price=event.price,
            sale_price=event.sale_price,
            quantity=event.quantity,
            variation_options=list(event.variation_options),
            min_price=min_price,
            max_price=max_price,
            created=True,
        )

    @handles(VariationOptionsChanged)
    def _on_variation_options_changed(self, event: VariationOptionsChanged) -> None:
        min_price, max_price = _price_range(event.variation_options)
        self._state = self.require_state().model_copy(
            update={
                "variation_options": list(event.variation_options),
                "min_price": min_price,
                "max_price": max_price,
            }
        )

    @handles(StockDecremented)
    def _on_stock_decremented(self, event: StockDecremented) -> None:
        self._set_quantity(event.variation_id, event.remaining)

    @handles(ProductRestocked)
    def _on_restocked(self, event: ProductRestocked) -> None:
        self._set_quantity(event.variation_id, event.remaining)

    def _set_quantity(self, variation_id: str | None, remaining: int) -> None:
        state = self.require_state()
        if variation_id is None:
            self._state = state.model_copy(update={"quantity": remaining})
        else:
            self._state = state.model_copy(
                update={
                    "variation_options": _replace_option_quantity(
                        state.variation_options, variation_id, remaining
                    )
                }
            )

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def create_simple(
        self,
        name: str,
        price: Decimal,
        quantity: int,
        *,
        sale_price: Decimal | None = None,
        slug: str | None = None,
    ) -> None:
        """Add a single-SKU product to the catalog."""
        self._ensure_new()
        name = name.strip()
        if not name:
            raise ValidationError("Product name is required")
        if Decimal(price) < 0 or (sale_price is not None and Decimal(sale_price) < 0):
            raise ValidationError("Product prices must not be negative")
        if quantity < 0:
            raise ValidationError("Product quantity must not be negative")

        self._raise_event(
            ProductCreated(
                aggregate_id=self.aggregate_id,
                aggregate_version=self.get_next_version(),
                name=name,
                slug=slug or slugify(name),
                product_type=ProductType.SIMPLE,
                price=to_money(price),
                sale_price=to_money(sale_price) if sale_price is not None else None,
                quantity=quantity,
            )
        )

    def create_variable(
        self,
        name: str,
        variation_options: list[VariationOption],
        *,
        slug: str | None = None,
    ) -> None:
        """Add a product whose price and stock live on its variation options."""
        self._ensure_new()
        name = name.strip()
        if not name:
            raise ValidationError("Product name is required")
        _validate_options(variation_options)

        self._raise_event(
            ProductCreated(
                aggregate_id=self.aggregate_id,
                aggregate_version=self.get_next_version(),
                name=name,
                slug=slug or slugify(name),
                product_type=ProductType.VARIABLE,
                variation_options=list(variation_options),
            )
        )

    def change_variation_options(self, variation_options: list[VariationOption]) -> None:
        """Replace the variation list; min and max price follow."""
        state = self._ensure_created()
        if state.product_type != ProductType.VARIABLE:
            raise InvalidStateTransitionError(
                "Product", str(self.aggregate_id), "a simple product", "change variations of"
            )
        _validate_options(variation_options)

        self._raise_event(
            VariationOptionsChanged(
                aggregate_id=self.aggregate_id,
                aggregate_version=self.get_next_version(),
                variation_options=list(variation_options),
            )
        )

    def decrement_stock(
        self,
        quantity: int,
        variation_id: str | None = None,
        *,
        reference: str | None = None,
    ) -> None:
        """
        Remove sold units from stock.

        Raises:
            InsufficientStockError: If fewer than ``quantity`` units are in stock
            VariationNotFoundError: If a variable product's variation is unknown
        """
        if quantity < 1:
            raise ValidationError(f"Quantity to decrement must be positive, got {quantity}")
        option_id, available = self._stock_counter(variation_id)
        if quantity > available:
            raise InsufficientStockError(
                product_id=self.aggregate_id,
                requested=quantity,
                available=available,
                variation_id=option_id,
            )

        self._raise_event(
            StockDecremented(
                aggregate_id=self.aggregate_id,
                aggregate_version=self.get_next_version(),
                quantity=quantity,
                variation_id=option_id,
                remaining=available - quantity,
                reference=reference,
            )
        )

    def restock(self, quantity: int, variation_id: str | None = None) -> None:
        """Add units to stock."""
        if quantity < 1:
            raise ValidationError(f"Quantity to restock must be positive, got {quantity}")
        option_id, available = self._stock_counter(variation_id)

        self._raise_event(
            ProductRestocked(
                aggregate_id=self.aggregate_id,
                aggregate_version=self.get_next_version(),
                quantity=quantity,
                variation_id=option_id,
                remaining=available + quantity,
            )
        )

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def resolve_variation(self, key: str | None, *, purchasable: bool = False) -> VariationOption:
        """
        Variation of a variable product by id or title.

        Args:
            key: Variation id or title
            purchasable: Reject disabled variations

        Raises:
            VariationNotFoundError: If the product has no such (enabled) variation
        """
        state = self._ensure_created()
        if key is None:
            raise VariationNotFoundError(self.aggregate_id, key, "is required")
        option = state.find_variation(key)
        if option is None:
            raise VariationNotFoundError(self.aggregate_id, key)
        if purchasable and option.is_disabled:
            raise VariationNotFoundError(self.aggregate_id, key, "is disabled")
        return option

    def unit_price(self, variation_id: str | None = None) -> Decimal:
        """Effective price (sale price when set) of the product or one variation."""
        state = self._ensure_created()
        if state.product_type == ProductType.VARIABLE:
            return self.resolve_variation(variation_id).effective_price
        if state.sale_price is not None:
            return state.sale_price
        assert state.price is not None
        return state.price

    def stock_of(self, variation_id: str | None = None) -> int:
        return self._stock_counter(variation_id)[1]

    def _stock_counter(self, variation_id: str | None) -> tuple[str | None, int]:
        state = self._ensure_created()
        if state.product_type == ProductType.VARIABLE:
            option = self.resolve_variation(variation_id)
            return option.variation_id, option.quantity
        return None, state.quantity

    def _ensure_new(self) -> None:
        if self.version > 0:
            raise InvalidStateTransitionError(
                "Product", str(self.aggregate_id), "already created", "create"
            )

    def _ensure_created(self) -> ProductState:
        state = self._state
        if state is None or not state.created:
            raise InvalidStateTransitionError(
                "Product", str(self.aggregate_id), "not created", "use"
            )
        return state


def _validate_options(options: list[VariationOption]) -> None:
    if not options:
        raise ValidationError("A variable product needs at least one variation option")
    ids = [option.variation_id for option in options]
    if len(set(ids)) != len(ids):
        raise ValidationError("Variation ids must be unique within a product")


__all__ = [
    "PRODUCT_AGGREGATE_TYPE",
    "ProductAggregate",
    "ProductCreated",
    "ProductRestocked",
    "ProductState",
    "StockDecremented",
    "VariationOptionsChanged",
]
