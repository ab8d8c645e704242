"""Domain aggregates: products, coupons, carts and orders."""

from storefront.domain.cart import (
    CART_AGGREGATE_TYPE,
    CartAggregate,
    CartCreated,
    CartPaid,
    CartPaymentFailed,
    CartReopened,
    CartState,
    PaymentSessionStarted,
)
from storefront.domain.coupon import (
    COUPON_AGGREGATE_TYPE,
    CouponAggregate,
    CouponIssued,
    CouponRedeemed,
    CouponState,
)
from storefront.domain.order import (
    ORDER_AGGREGATE_TYPE,
    OrderAggregate,
    OrderCancelled,
    OrderPlaced,
    OrderState,
    OrderStatusChanged,
    RefundCompleted,
    RefundFailed,
    RefundRequested,
)
from storefront.domain.product import (
    PRODUCT_AGGREGATE_TYPE,
    ProductAggregate,
    ProductCreated,
    ProductRestocked,
    ProductState,
    StockDecremented,
    VariationOptionsChanged,
)
from storefront.domain.values import (
    AppliedCoupon,
    Buyer,
    CartStatus,
    LineItem,
    OrderStatus,
    PaymentStatus,
    ProductType,
    RefundStatus,
    VariationOption,
)

__all__ = [
    "CART_AGGREGATE_TYPE",
    "COUPON_AGGREGATE_TYPE",
    "ORDER_AGGREGATE_TYPE",
    "PRODUCT_AGGREGATE_TYPE",
    "AppliedCoupon",
    "Buyer",
    "CartAggregate",
    "CartCreated",
    "CartPaid",
    "CartPaymentFailed",
    "CartReopened",
    "CartState",
    "CartStatus",
    "CouponAggregate",
    "CouponIssued",
    "CouponRedeemed",
    "CouponState",
    "LineItem",
    "OrderAggregate",
    "OrderCancelled",
    "OrderPlaced",
    "OrderState",
    "OrderStatus",
    "OrderStatusChanged",
    "PaymentSessionStarted",
    "PaymentStatus",
    "ProductAggregate",
    "ProductCreated",
    "ProductRestocked",
    "ProductState",
    "ProductType",
    "RefundCompleted",
    "RefundFailed",
    "RefundRequested",
    "RefundStatus",
    "StockDecremented",
    "VariationOption",
    "VariationOptionsChanged",
]
