"""Tests for the Product aggregate."""

from decimal import Decimal
from uuid import uuid4

import pytest

from storefront.domain.product import ProductAggregate, StockDecremented
from storefront.domain.values import ProductType, VariationOption
from storefront.exceptions import (
    InsufficientStockError,
    InvalidStateTransitionError,
    ValidationError,
    VariationNotFoundError,
)


def bulb_options(quantity: int = 5) -> list[VariationOption]:
    return [
        VariationOption(variation_id="9w", title="9w", price=Decimal("1500"), quantity=quantity),
        VariationOption(
            variation_id="12w", title="12w", price=Decimal("2000"), quantity=quantity
        ),
        VariationOption(
            variation_id="15w",
            title="15w",
            price=Decimal("2500"),
            quantity=quantity,
            is_disabled=True,
        ),
    ]


@pytest.fixture
def kettle() -> ProductAggregate:
    product = ProductAggregate(uuid4())
    product.create_simple("Kettle", Decimal("25.50"), 3, sale_price=Decimal("20"))
    return product


@pytest.fixture
def bulb() -> ProductAggregate:
    product = ProductAggregate(uuid4())
    product.create_variable("Bulb", bulb_options())
    return product


class TestProductCreation:
    """Tests for creating simple and variable products."""

    def test_simple_product_state(self, kettle: ProductAggregate) -> None:
        """Test a simple product carries its own price and stock."""
        state = kettle.state
        assert state is not None
        assert state.product_type == ProductType.SIMPLE
        assert state.slug == "kettle"
        assert state.quantity == 3
        assert state.min_price == state.max_price == Decimal("20.00")

    def test_variable_product_price_range(self, bulb: ProductAggregate) -> None:
        """Test min and max price come from the variation options."""
        state = bulb.state
        assert state is not None
        assert state.product_type == ProductType.VARIABLE
        assert state.min_price == Decimal("1500.00")
        assert state.max_price == Decimal("2500.00")
        assert state.total_stock == 15

    def test_blank_name_rejected(self) -> None:
        """Test a product needs a name."""
        with pytest.raises(ValidationError):
            ProductAggregate(uuid4()).create_simple("  ", Decimal("1"), 1)

    def test_variable_product_needs_options(self) -> None:
        """Test a variable product without variations is rejected."""
        with pytest.raises(ValidationError):
            ProductAggregate(uuid4()).create_variable("Bulb", [])

    def test_duplicate_variation_ids_rejected(self) -> None:
        """Test variation ids must be unique."""
        option = VariationOption(variation_id="9w", title="9w", price=Decimal("1"))

        with pytest.raises(ValidationError):
            ProductAggregate(uuid4()).create_variable("Bulb", [option, option])

    def test_create_twice_rejected(self, kettle: ProductAggregate) -> None:
        """Test a product stream is created exactly once."""
        with pytest.raises(InvalidStateTransitionError):
            kettle.create_simple("Kettle", Decimal("1"), 1)


class TestVariations:
    """Tests for resolving and replacing variations."""

    def test_resolve_by_id_or_title(self, bulb: ProductAggregate) -> None:
        """Test variations resolve by id, or case-insensitively by title."""
        assert bulb.resolve_variation("12w").price == Decimal("2000.00")
        assert bulb.resolve_variation("9W").variation_id == "9w"

    def test_resolve_unknown_variation(self, bulb: ProductAggregate) -> None:
        """Test an unknown variation raises VariationNotFoundError."""
        with pytest.raises(VariationNotFoundError):
            bulb.resolve_variation("40w")

    def test_resolve_requires_key(self, bulb: ProductAggregate) -> None:
        """Test a variable product needs a variation key."""
        with pytest.raises(VariationNotFoundError):
            bulb.resolve_variation(None)

    def test_disabled_variation_not_purchasable(self, bulb: ProductAggregate) -> None:
        """Test disabled variations resolve for display but not for purchase."""
        assert bulb.resolve_variation("15w").is_disabled is True

        with pytest.raises(VariationNotFoundError):
            bulb.resolve_variation("15w", purchasable=True)

    def test_change_variation_options(self, bulb: ProductAggregate) -> None:
        """Test replacing the options updates the price range."""
        bulb.change_variation_options(
            [VariationOption(variation_id="5w", title="5w", price=Decimal("900"), quantity=2)]
        )

        assert bulb.state is not None
        assert bulb.state.min_price == bulb.state.max_price == Decimal("900.00")

    def test_simple_product_has_no_variations(self, kettle: ProductAggregate) -> None:
        """Test variations cannot be set on a simple product."""
        with pytest.raises(InvalidStateTransitionError):
            kettle.change_variation_options(bulb_options())

    def test_unit_price(self, kettle: ProductAggregate, bulb: ProductAggregate) -> None:
        """Test unit price uses the sale price or the chosen variation."""
        assert kettle.unit_price() == Decimal("20.00")
        assert bulb.unit_price("12w") == Decimal("2000.00")


class TestStock:
    """Tests for decrementing and restocking."""

    def test_decrement_variation(self, bulb: ProductAggregate) -> None:
        """Test selling two 9w bulbs leaves three."""
        bulb.decrement_stock(2, "9w", reference="ref-1")

        assert bulb.stock_of("9w") == 3
        assert bulb.stock_of("12w") == 5
        event = bulb.uncommitted_events[-1]
        assert isinstance(event, StockDecremented)
        assert event.remaining == 3
        assert event.reference == "ref-1"

    def test_decrement_simple(self, kettle: ProductAggregate) -> None:
        """Test a simple product's counter goes down."""
        kettle.decrement_stock(3)

        assert kettle.stock_of() == 0

    def test_decrement_beyond_stock(self, kettle: ProductAggregate) -> None:
        """Test stock never goes negative and nothing is raised as an event."""
        version = kettle.version

        with pytest.raises(InsufficientStockError) as exc_info:
            kettle.decrement_stock(4)

        assert exc_info.value.requested == 4
        assert exc_info.value.available == 3
        assert kettle.version == version
        assert kettle.stock_of() == 3

    def test_decrement_reports_variation(self, bulb: ProductAggregate) -> None:
        """Test the insufficient variation is named in the error."""
        with pytest.raises(InsufficientStockError) as exc_info:
            bulb.decrement_stock(6, "12w")

        assert exc_info.value.variation_id == "12w"

    def test_decrement_requires_positive_quantity(self, kettle: ProductAggregate) -> None:
        """Test zero units cannot be sold."""
        with pytest.raises(ValidationError):
            kettle.decrement_stock(0)

    def test_restock(self, bulb: ProductAggregate) -> None:
        """Test restocking adds to the chosen variation."""
        bulb.restock(4, "9w")

        assert bulb.stock_of("9w") == 9

    def test_uncreated_product_rejects_commands(self) -> None:
        """Test stock operations need a created product."""
        with pytest.raises(InvalidStateTransitionError):
            ProductAggregate(uuid4()).decrement_stock(1)
