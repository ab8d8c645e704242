"""Catalog seeding and webhook helpers shared by service and API tests."""

from __future__ import annotations

import json
from decimal import Decimal
from typing import Any

from storefront.app import Storefront
from storefront.checkout import CheckoutResult, LineRequest
from storefront.domain.cart import CartState
from storefront.domain.product import ProductAggregate
from storefront.domain.values import Buyer, VariationOption
from storefront.gateway.models import CHARGE_SUCCESS
from storefront.reconciliation import ReconciliationResult

BUYER = Buyer(user_id="user-1", email="ada@example.com", first_name="Ada", last_name="Obi")
ADDRESS = "12 Marina Road, Lagos"


async def add_bulb(storefront: Storefront, quantity: int = 5) -> ProductAggregate:
    """Variable product "Bulb" with a 9w (1500.00) and a 12w (2000.00) variation."""
    return await storefront.catalog.add_variable_product(
        "Bulb",
        [
            VariationOption(
                variation_id="9w", title="9w", price=Decimal("1500"), quantity=quantity
            ),
            VariationOption(
                variation_id="12w", title="12w", price=Decimal("2000"), quantity=quantity
            ),
        ],
    )


async def add_kettle(
    storefront: Storefront, quantity: int = 3, price: Decimal = Decimal("25.50")
) -> ProductAggregate:
    """Simple product "Kettle"."""
    return await storefront.catalog.add_simple_product("Kettle", price, quantity)


async def checkout(
    storefront: Storefront,
    *lines: LineRequest,
    coupon_code: str | None = None,
) -> CheckoutResult:
    return await storefront.checkout.create_cart(BUYER, list(lines), ADDRESS, coupon_code)


def charge_body(
    cart: CartState,
    reference: str | None = None,
    *,
    event: str = CHARGE_SUCCESS,
    amount: int | None = None,
    gateway_response: str = "Approved",
) -> bytes:
    """Raw webhook body for a charge event on ``cart``."""
    assert cart.buyer is not None
    payload: dict[str, Any] = {
        "event": event,
        "data": {
            "reference": reference or cart.payment_reference,
            "amount": cart.amount_minor if amount is None else amount,
            "status": "success" if event == CHARGE_SUCCESS else "failed",
            "currency": cart.currency,
            "gateway_response": gateway_response,
            "metadata": {
                "cartId": cart.cart_id,
                "userId": cart.buyer.user_id,
                "buyerEmail": cart.buyer.email,
                "formattedAddress": cart.formatted_address,
            },
        },
    }
    return json.dumps(payload).encode()


async def deliver(storefront: Storefront, body: bytes) -> ReconciliationResult:
    """Hand a correctly signed webhook to the reconciliation pipeline."""
    return await storefront.reconciliation.handle_webhook(body, storefront.verifier.sign(body))
