"""
Standard span attributes for storefront.

Attribute names used across stores, repositories, the payment gateway
client and the reconciliation pipeline, so that spans from one webhook
delivery can be filtered by cart, reference or order.
"""

# =============================================================================
# Aggregate and event store
# =============================================================================

ATTR_AGGREGATE_ID = "storefront.aggregate.id"
"""Unique identifier for the aggregate instance (UUID string)."""

ATTR_AGGREGATE_TYPE = "storefront.aggregate.type"
"""Type name of the aggregate (e.g., 'Cart', 'Order')."""

ATTR_EVENT_COUNT = "storefront.event.count"
"""Number of events in a batch operation."""

ATTR_STREAM_COUNT = "storefront.stream.count"
"""Number of streams written by one atomic append."""

ATTR_VERSION = "storefront.version"
"""Aggregate version after an operation."""

ATTR_DB_SYSTEM = "db.system"
"""Database system identifier (OTEL semantic convention)."""

ATTR_DB_NAME = "db.name"
"""Database name (OTEL semantic convention)."""

# =============================================================================
# Checkout, payment and orders
# =============================================================================

ATTR_CART_ID = "storefront.cart.id"
"""Checkout cart identifier (the cartId echoed by the gateway)."""

ATTR_PAYMENT_REFERENCE = "storefront.payment.reference"
"""Gateway transaction reference."""

ATTR_ORDER_ID = "storefront.order.id"
"""Order identifier (ORDER-...)."""

ATTR_WEBHOOK_EVENT = "storefront.webhook.event"
"""Gateway webhook event name (e.g., 'charge.success')."""

ATTR_OUTCOME = "storefront.outcome"
"""Result of a reconciliation or webhook dispatch."""

ATTR_LOCK_KEY = "storefront.lock.key"
"""Key of a mutual-exclusion lock."""

ATTR_LOCK_TIMEOUT = "storefront.lock.timeout"
"""Seconds a caller waits for a lock (-1 for no limit)."""

ATTR_NOTIFICATION_KIND = "storefront.notification.kind"
"""Kind of buyer notification."""

# =============================================================================
# HTTP client (OTEL semantic conventions)
# =============================================================================

ATTR_HTTP_METHOD = "http.request.method"
ATTR_HTTP_URL = "url.full"
ATTR_HTTP_STATUS_CODE = "http.response.status_code"

# =============================================================================
# Errors and retries
# =============================================================================

ATTR_RETRY_COUNT = "storefront.retry.count"
ATTR_ERROR_TYPE = "storefront.error.type"

__all__ = [
    "ATTR_AGGREGATE_ID",
    "ATTR_AGGREGATE_TYPE",
    "ATTR_CART_ID",
    "ATTR_DB_NAME",
    "ATTR_DB_SYSTEM",
    "ATTR_ERROR_TYPE",
    "ATTR_EVENT_COUNT",
    "ATTR_HTTP_METHOD",
    "ATTR_HTTP_STATUS_CODE",
    "ATTR_HTTP_URL",
    "ATTR_LOCK_KEY",
    "ATTR_LOCK_TIMEOUT",
    "ATTR_NOTIFICATION_KIND",
    "ATTR_ORDER_ID",
    "ATTR_OUTCOME",
    "ATTR_PAYMENT_REFERENCE",
    "ATTR_RETRY_COUNT",
    "ATTR_STREAM_COUNT",
    "ATTR_VERSION",
    "ATTR_WEBHOOK_EVENT",
]
