"""Tests for CatalogService and CouponService."""

from datetime import UTC, datetime
from decimal import Decimal
from uuid import uuid4

import pytest

from storefront.app import Storefront
from storefront.domain.values import VariationOption
from storefront.exceptions import (
    CouponNotFoundError,
    InvalidStateTransitionError,
    ProductNotFoundError,
    ValidationError,
    VariationNotFoundError,
)
from tests.fixtures import add_bulb, add_kettle


class TestCatalogService:
    """Tests for adding and finding products."""

    @pytest.mark.asyncio
    async def test_add_and_get(self, storefront: Storefront) -> None:
        """Test a product can be loaded by id after it is added."""
        kettle = await add_kettle(storefront)

        loaded = await storefront.catalog.get_product(kettle.aggregate_id)

        assert loaded.state is not None
        assert loaded.state.name == "Kettle"

    @pytest.mark.asyncio
    async def test_unknown_id(self, storefront: Storefront) -> None:
        """Test an unknown id raises ProductNotFoundError."""
        with pytest.raises(ProductNotFoundError):
            await storefront.catalog.get_product(uuid4())

    @pytest.mark.asyncio
    async def test_names_are_unique(self, storefront: Storefront) -> None:
        """Test a second product with the same name (any case) is rejected."""
        await add_kettle(storefront)

        with pytest.raises(ValidationError):
            await storefront.catalog.add_simple_product("KETTLE", Decimal("1"), 1)

    @pytest.mark.asyncio
    async def test_resolve_product_by_id_string_or_name(self, storefront: Storefront) -> None:
        """Test a product resolves from a UUID, its string form, or its name."""
        bulb = await add_bulb(storefront)

        by_id = await storefront.catalog.resolve_product(bulb.aggregate_id)
        by_str = await storefront.catalog.resolve_product(str(bulb.aggregate_id))
        by_name = await storefront.catalog.resolve_product("bulb")

        assert by_id.aggregate_id == by_str.aggregate_id == by_name.aggregate_id

    @pytest.mark.asyncio
    async def test_list_products(self, storefront: Storefront) -> None:
        """Test every product is listed in creation order."""
        await add_bulb(storefront)
        await add_kettle(storefront)

        products = await storefront.catalog.list_products()

        assert [p.state.name for p in products if p.state] == ["Bulb", "Kettle"]

    @pytest.mark.asyncio
    async def test_restock_and_change_variations(self, storefront: Storefront) -> None:
        """Test restock and variation changes are persisted."""
        bulb = await add_bulb(storefront, quantity=1)

        await storefront.catalog.restock(bulb.aggregate_id, 4, "9w")
        await storefront.catalog.change_variation_options(
            bulb.aggregate_id,
            [VariationOption(variation_id="9w", title="9w", price=Decimal("1400"), quantity=5)],
        )

        reloaded = await storefront.catalog.get_product(bulb.aggregate_id)
        assert reloaded.stock_of("9w") == 5
        assert reloaded.unit_price("9w") == Decimal("1400.00")

    @pytest.mark.asyncio
    async def test_variations_on_simple_product_rejected(self, storefront: Storefront) -> None:
        """Test a simple product cannot take variation options."""
        kettle = await add_kettle(storefront)

        with pytest.raises(InvalidStateTransitionError):
            await storefront.catalog.change_variation_options(
                kettle.aggregate_id,
                [VariationOption(variation_id="a", title="a", price=Decimal("1"))],
            )


class TestResolveLine:
    """Tests for matching requested cart lines against the catalog."""

    @pytest.mark.asyncio
    async def test_variable_by_name_and_variation(self, storefront: Storefront) -> None:
        """Test a variation is priced from the option."""
        await add_bulb(storefront)

        line = await storefront.catalog.resolve_line("Bulb", "12w")

        assert line.unit_price == Decimal("2000.00")
        assert line.to_line_item(2).display_name == "Bulb (12w)"

    @pytest.mark.asyncio
    async def test_legacy_name_variation_spelling(self, storefront: Storefront) -> None:
        """Test "Name-Variation" resolves when no variation is given."""
        await add_bulb(storefront)

        line = await storefront.catalog.resolve_line("Bulb-9w")

        assert line.variation is not None
        assert line.variation.variation_id == "9w"

    @pytest.mark.asyncio
    async def test_variable_without_variation(self, storefront: Storefront) -> None:
        """Test a variable product needs a variation."""
        await add_bulb(storefront)

        with pytest.raises(VariationNotFoundError):
            await storefront.catalog.resolve_line("Bulb")

    @pytest.mark.asyncio
    async def test_simple_with_variation(self, storefront: Storefront) -> None:
        """Test a simple product rejects a variation."""
        await add_kettle(storefront)

        with pytest.raises(VariationNotFoundError):
            await storefront.catalog.resolve_line("Kettle", "large")

    @pytest.mark.asyncio
    async def test_unknown_product(self, storefront: Storefront) -> None:
        """Test an unknown name raises ProductNotFoundError."""
        with pytest.raises(ProductNotFoundError):
            await storefront.catalog.resolve_line("Toaster")


class TestCouponService:
    """Tests for issuing and loading coupons."""

    @pytest.mark.asyncio
    async def test_issue_and_get(self, storefront: Storefront) -> None:
        """Test a coupon is found by any casing of its code."""
        await storefront.coupons.issue_coupon("save10", discount_percentage=Decimal("10"))

        coupon = await storefront.coupons.get_coupon("Save10")

        assert coupon.state is not None
        assert coupon.state.code == "SAVE10"
        assert await storefront.coupons.list_codes() == ["SAVE10"]

    @pytest.mark.asyncio
    async def test_default_discount(self, storefront: Storefront) -> None:
        """Test a coupon without a percentage uses the configured default."""
        coupon = await storefront.coupons.issue_coupon(
            "WELCOME", expiration_date=datetime(2030, 1, 1, tzinfo=UTC)
        )

        assert coupon.state is not None
        assert coupon.state.discount_percentage == storefront.settings.default_coupon_discount

    @pytest.mark.asyncio
    async def test_duplicate_code(self, storefront: Storefront) -> None:
        """Test codes are unique."""
        await storefront.coupons.issue_coupon("SAVE10", discount_percentage=Decimal("10"))

        with pytest.raises(ValidationError, match="already exists"):
            await storefront.coupons.issue_coupon("save10", discount_percentage=Decimal("5"))

    @pytest.mark.asyncio
    async def test_unknown_code(self, storefront: Storefront) -> None:
        """Test an unknown code raises CouponNotFoundError."""
        with pytest.raises(CouponNotFoundError):
            await storefront.coupons.get_coupon("NOPE")

    @pytest.mark.asyncio
    async def test_list_coupons(self, storefront: Storefront) -> None:
        """Test every coupon is listed with its balance, oldest first."""
        assert await storefront.coupons.list_coupons() == []
        await storefront.coupons.issue_coupon("SAVE10", discount_percentage=Decimal("10"))
        await storefront.coupons.issue_coupon("FIVE", discount_percentage=Decimal("5"))

        coupons = await storefront.coupons.list_coupons()

        assert [c.code for c in coupons] == ["SAVE10", "FIVE"]
        assert [c.usage_count for c in coupons] == [0, 0]
        assert coupons[0].balance == Decimal("0")
