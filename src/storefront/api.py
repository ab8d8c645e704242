"""FastAPI REST API for the storefront."""

from __future__ import annotations

import hmac
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any

from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from storefront.app import Storefront
from storefront.checkout import CheckoutResult, LineRequest
from storefront.config import Settings
from storefront.domain.order import OrderState
from storefront.domain.product import ProductAggregate
from storefront.domain.values import Buyer, VariationOption
from storefront.exceptions import (
    AggregateNotFoundError,
    AlreadyProcessedError,
    AuthenticationError,
    CartNotFoundError,
    CouponNotFoundError,
    ForbiddenError,
    GatewayError,
    InsufficientStockError,
    InvalidStateTransitionError,
    LockAcquisitionError,
    OptimisticLockError,
    OrderNotFoundError,
    ProductNotFoundError,
    SignatureInvalidError,
    StorefrontError,
    TransactionTimeoutError,
    ValidationError,
    VariationNotFoundError,
)
from storefront.gateway.webhook import SIGNATURE_HEADER
from storefront.reconciliation import PaymentCheck

logger = logging.getLogger(__name__)


# --- Pydantic Schemas ---


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class BuyerSchema(_CamelModel):
    user_id: str = Field(..., alias="userId", min_length=1)
    email: str = Field(..., min_length=3)
    first_name: str = Field(default="", alias="firstName")
    last_name: str = Field(default="", alias="lastName")


class CartItemSchema(_CamelModel):
    product: str = Field(..., description="Product id or name", min_length=1)
    quantity: int
    variation: str | None = Field(default=None, description="Variation id or title")


class CartCreateRequest(_CamelModel):
    buyer: BuyerSchema
    items: list[CartItemSchema]
    formatted_address: str = Field(..., alias="formattedAddress", min_length=1)
    coupon_code: str | None = Field(default=None, alias="couponCode")


class VariationOptionSchema(_CamelModel):
    variation_id: str = Field(..., alias="variationId", min_length=1)
    title: str = Field(..., min_length=1)
    price: Decimal = Field(..., ge=0)
    sale_price: Decimal | None = Field(default=None, alias="salePrice", ge=0)
    quantity: int = Field(default=0, ge=0)
    is_disabled: bool = Field(default=False, alias="isDisabled")
    sku: str | None = None

    def to_option(self) -> VariationOption:
        return VariationOption(**self.model_dump())


class ProductCreateRequest(_CamelModel):
    """Simple products need price and quantity; variable ones need variation options."""

    name: str = Field(..., min_length=1)
    price: Decimal | None = Field(default=None, ge=0)
    sale_price: Decimal | None = Field(default=None, alias="salePrice", ge=0)
    quantity: int | None = Field(default=None, ge=0)
    variation_options: list[VariationOptionSchema] | None = Field(
        default=None, alias="variationOptions"
    )


class VariationOptionsUpdateRequest(_CamelModel):
    variation_options: list[VariationOptionSchema] = Field(..., alias="variationOptions")


class RestockRequest(_CamelModel):
    quantity: int = Field(..., ge=1)
    variation_id: str | None = Field(default=None, alias="variationId")


class CouponCreateRequest(_CamelModel):
    code: str = Field(..., min_length=1)
    discount_percentage: Decimal | None = Field(default=None, alias="discountPercentage")
    expiration_date: datetime | None = Field(default=None, alias="expirationDate")


class StatusUpdateRequest(_CamelModel):
    status: str


class RefundRequest(_CamelModel):
    amount: Decimal


class PaymentRefundRequest(_CamelModel):
    payment_reference: str = Field(..., alias="paymentReference", min_length=1)
    amount: Decimal


class RefundFailureRequest(_CamelModel):
    reason: str = Field(..., min_length=1)


# --- Error mapping ---


# Looked up along the exception's MRO, so subclasses inherit their parent's code.
ERROR_STATUS_CODES: dict[type[StorefrontError], int] = {
    SignatureInvalidError: 401,
    ForbiddenError: 403,
    AuthenticationError: 401,
    ValidationError: 400,
    ProductNotFoundError: 404,
    VariationNotFoundError: 404,
    CouponNotFoundError: 404,
    CartNotFoundError: 404,
    OrderNotFoundError: 404,
    AggregateNotFoundError: 404,
    AlreadyProcessedError: 409,
    InsufficientStockError: 409,
    InvalidStateTransitionError: 409,
    OptimisticLockError: 409,
    GatewayError: 502,
    LockAcquisitionError: 503,
    TransactionTimeoutError: 504,
}


def status_code_for(exc: StorefrontError) -> int:
    for cls in type(exc).__mro__:
        code = ERROR_STATUS_CODES.get(cls)
        if code is not None:
            return code
    return 500


# --- Dependencies ---


def get_storefront(request: Request) -> Storefront:
    storefront: Storefront = request.app.state.storefront
    return storefront


StorefrontDep = Annotated[Storefront, Depends(get_storefront)]


def require_admin(request: Request, storefront: StorefrontDep) -> None:
    """Accept only ``Authorization: Bearer <admin token>``."""
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise AuthenticationError("Admin bearer token required")
    if not hmac.compare_digest(
        token.strip().encode(), storefront.settings.admin_token.encode()
    ):
        raise ForbiddenError("Admin access denied")


AdminDep = Depends(require_admin)


# --- Serialization ---


def _checkout_payload(result: CheckoutResult) -> dict[str, Any]:
    return {
        "cart": result.cart.model_dump(mode="json"),
        "paymentUrl": result.payment_url,
        "reference": result.reference,
    }


def _payment_check_payload(check: PaymentCheck) -> dict[str, Any]:
    return {
        "reference": check.reference,
        "gatewayStatus": check.gateway_status,
        "settled": check.settled,
        "orderId": check.order_id,
        "paymentStatus": check.cart.payment_status.value if check.cart else None,
        "cart": check.cart.model_dump(mode="json") if check.cart else None,
    }


def _order_payload(order: OrderState) -> dict[str, Any]:
    return order.model_dump(mode="json")


def _product_payload(product: ProductAggregate) -> dict[str, Any]:
    return product.require_state().model_dump(mode="json")


# --- Application ---


def create_app(
    storefront: Storefront | None = None,
    *,
    settings: Settings | None = None,
) -> FastAPI:
    """
    Build the API.

    Args:
        storefront: Services to serve; built from ``settings`` (or the
            environment) on startup and closed on shutdown if omitted
        settings: Used only when ``storefront`` is omitted
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if getattr(app.state, "storefront", None) is not None:
            yield
            return
        built = await Storefront.from_settings(settings or Settings.from_env())
        app.state.storefront = built
        try:
            yield
        finally:
            await built.aclose()

    app = FastAPI(
        title="storefront API",
        description="Checkout, payment reconciliation and order management",
        lifespan=lifespan,
    )
    if storefront is not None:
        app.state.storefront = storefront

    @app.exception_handler(StorefrontError)
    async def storefront_error_handler(request: Request, exc: StorefrontError) -> JSONResponse:
        """Map StorefrontError subclasses to HTTP responses."""
        status_code = status_code_for(exc)
        if status_code >= 500:
            logger.error(
                "%s %s failed: %s",
                request.method,
                request.url.path,
                exc,
                extra={"error_type": type(exc).__name__},
            )
        return JSONResponse(
            status_code=status_code,
            content={"detail": str(exc), "error_type": type(exc).__name__},
        )

    _register_routes(app)
    return app


def _register_routes(app: FastAPI) -> None:
    # --- Health ---

    @app.get("/health")
    async def health_check(storefront: StorefrontDep) -> dict[str, Any]:
        return {
            "status": "ok",
            "event_store": type(storefront.event_store).__name__,
            "currency": storefront.settings.currency,
        }

    # --- Cart ---

    @app.post("/cart", status_code=201)
    async def create_cart(body: CartCreateRequest, storefront: StorefrontDep) -> dict[str, Any]:
        buyer = Buyer(**body.buyer.model_dump())
        items = [
            LineRequest(product=item.product, quantity=item.quantity, variation=item.variation)
            for item in body.items
        ]
        result = await storefront.checkout.create_cart(
            buyer, items, body.formatted_address, body.coupon_code
        )
        return _checkout_payload(result)

    @app.get("/cart/{cart_id}")
    async def get_cart(cart_id: str, storefront: StorefrontDep) -> dict[str, Any]:
        state = await storefront.checkout.get_cart(cart_id)
        return state.model_dump(mode="json")

    @app.post("/cart/{cart_id}/payment")
    async def initiate_payment(cart_id: str, storefront: StorefrontDep) -> dict[str, Any]:
        result = await storefront.checkout.initiate_payment(cart_id)
        return _checkout_payload(result)

    # --- Payment ---

    @app.post("/payment/webhook")
    async def payment_webhook(request: Request, storefront: StorefrontDep) -> JSONResponse:
        """
        Gateway webhook.

        Answers with the status code only: 200 processed or safely ignored,
        401 bad signature, 400 malformed payload, 500 anything else (the
        gateway redelivers).
        """
        raw_body = await request.body()
        signature = request.headers.get(SIGNATURE_HEADER)
        try:
            result = await storefront.reconciliation.handle_webhook(raw_body, signature)
        except SignatureInvalidError:
            return JSONResponse(status_code=401, content={"status": "rejected"})
        except ValidationError:
            return JSONResponse(status_code=400, content={"status": "rejected"})
        except Exception:
            logger.exception("Webhook processing failed")
            return JSONResponse(status_code=500, content={"status": "error"})
        return JSONResponse(status_code=200, content={"status": result.outcome.value})

    @app.get("/payment/callback")
    async def payment_callback(
        storefront: StorefrontDep, reference: str = Query(..., min_length=1)
    ) -> dict[str, Any]:
        """Where the gateway sends the buyer back; reports without settling."""
        return _payment_check_payload(await storefront.reconciliation.check_payment(reference))

    @app.post("/payment/refund", dependencies=[AdminDep])
    async def refund_payment(
        body: PaymentRefundRequest, storefront: StorefrontDep
    ) -> dict[str, Any]:
        outcome = await storefront.orders.refund_payment(body.payment_reference, body.amount)
        return {
            "refund": outcome.receipt.model_dump(mode="json"),
            "order": _order_payload(outcome.order) if outcome.order else None,
        }

    # --- Orders ---

    @app.get("/orders", dependencies=[AdminDep])
    async def list_orders(storefront: StorefrontDep) -> list[dict[str, Any]]:
        return [_order_payload(order) for order in await storefront.orders.list_orders()]

    @app.get("/orders/{order_id}", dependencies=[AdminDep])
    async def get_order(order_id: str, storefront: StorefrontDep) -> dict[str, Any]:
        return _order_payload(await storefront.orders.get_order(order_id))

    @app.patch("/orders/{order_id}/status", dependencies=[AdminDep])
    async def update_order_status(
        order_id: str, body: StatusUpdateRequest, storefront: StorefrontDep
    ) -> dict[str, Any]:
        return _order_payload(await storefront.orders.update_status(order_id, body.status))

    @app.post("/orders/{order_id}/cancel", dependencies=[AdminDep])
    async def cancel_order(order_id: str, storefront: StorefrontDep) -> dict[str, Any]:
        return _order_payload(await storefront.orders.cancel(order_id))

    @app.post("/orders/{order_id}/refund", dependencies=[AdminDep])
    async def request_refund(
        order_id: str, body: RefundRequest, storefront: StorefrontDep
    ) -> dict[str, Any]:
        return _order_payload(await storefront.orders.request_refund(order_id, body.amount))

    @app.post("/orders/{order_id}/refund/complete", dependencies=[AdminDep])
    async def complete_refund(order_id: str, storefront: StorefrontDep) -> dict[str, Any]:
        return _order_payload(await storefront.orders.complete_refund(order_id))

    @app.post("/orders/{order_id}/refund/fail", dependencies=[AdminDep])
    async def fail_refund(
        order_id: str, body: RefundFailureRequest, storefront: StorefrontDep
    ) -> dict[str, Any]:
        return _order_payload(await storefront.orders.fail_refund(order_id, body.reason))

    # --- Catalog ---

    @app.get("/products")
    async def list_products(storefront: StorefrontDep) -> list[dict[str, Any]]:
        return [_product_payload(p) for p in await storefront.catalog.list_products()]

    @app.get("/products/{product}")
    async def get_product(product: str, storefront: StorefrontDep) -> dict[str, Any]:
        resolved = await storefront.catalog.resolve_product(product)
        return _product_payload(resolved)

    @app.post("/products", status_code=201, dependencies=[AdminDep])
    async def create_product(
        body: ProductCreateRequest, storefront: StorefrontDep
    ) -> dict[str, Any]:
        if body.variation_options:
            product = await storefront.catalog.add_variable_product(
                body.name, [option.to_option() for option in body.variation_options]
            )
        else:
            if body.price is None or body.quantity is None:
                raise ValidationError("Simple products need a price and a quantity")
            product = await storefront.catalog.add_simple_product(
                body.name, body.price, body.quantity, sale_price=body.sale_price
            )
        return _product_payload(product)

    @app.put("/products/{product}/variations", dependencies=[AdminDep])
    async def change_variation_options(
        product: str, body: VariationOptionsUpdateRequest, storefront: StorefrontDep
    ) -> dict[str, Any]:
        resolved = await storefront.catalog.resolve_product(product)
        updated = await storefront.catalog.change_variation_options(
            resolved.aggregate_id, [option.to_option() for option in body.variation_options]
        )
        return _product_payload(updated)

    @app.post("/products/{product}/restock", dependencies=[AdminDep])
    async def restock_product(
        product: str, body: RestockRequest, storefront: StorefrontDep
    ) -> dict[str, Any]:
        resolved = await storefront.catalog.resolve_product(product)
        updated = await storefront.catalog.restock(
            resolved.aggregate_id, body.quantity, body.variation_id
        )
        return _product_payload(updated)

    # --- Coupons ---

    @app.post("/coupons", status_code=201, dependencies=[AdminDep])
    async def create_coupon(body: CouponCreateRequest, storefront: StorefrontDep) -> dict[str, Any]:
        coupon = await storefront.coupons.issue_coupon(
            body.code,
            discount_percentage=body.discount_percentage,
            expiration_date=body.expiration_date,
        )
        return coupon.require_state().model_dump(mode="json")

    @app.get("/coupons", dependencies=[AdminDep])
    async def list_coupons(storefront: StorefrontDep) -> list[dict[str, Any]]:
        """Codes with their accumulated balance and usage count."""
        coupons = await storefront.coupons.list_coupons()
        return [coupon.model_dump(mode="json") for coupon in coupons]

    @app.get("/coupons/{code}", dependencies=[AdminDep])
    async def get_coupon(code: str, storefront: StorefrontDep) -> dict[str, Any]:
        coupon = await storefront.coupons.get_coupon(code)
        return coupon.require_state().model_dump(mode="json")


__all__ = [
    "ERROR_STATUS_CODES",
    "create_app",
    "status_code_for",
]
