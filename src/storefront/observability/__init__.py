"""Tracing utilities and standard span attributes."""

from storefront.observability.attributes import (
    ATTR_AGGREGATE_ID,
    ATTR_AGGREGATE_TYPE,
    ATTR_CART_ID,
    ATTR_DB_NAME,
    ATTR_DB_SYSTEM,
    ATTR_ERROR_TYPE,
    ATTR_EVENT_COUNT,
    ATTR_HTTP_METHOD,
    ATTR_HTTP_STATUS_CODE,
    ATTR_HTTP_URL,
    ATTR_LOCK_KEY,
    ATTR_LOCK_TIMEOUT,
    ATTR_NOTIFICATION_KIND,
    ATTR_ORDER_ID,
    ATTR_OUTCOME,
    ATTR_PAYMENT_REFERENCE,
    ATTR_RETRY_COUNT,
    ATTR_STREAM_COUNT,
    ATTR_VERSION,
    ATTR_WEBHOOK_EVENT,
)
from storefront.observability.tracer import (
    NullTracer,
    OpenTelemetryTracer,
    Tracer,
    create_tracer,
)

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
    "NullTracer",
    "OpenTelemetryTracer",
    "Tracer",
    "create_tracer",
]
