"""Exceptions for the storefront package.

Errors fall into two families. Infrastructure errors come from the event
store, locks, retries and the payment gateway. Domain errors reject a
checkout, reconciliation or order-management operation. Every error
derives from StorefrontError so the HTTP layer can map the whole taxonomy
to status codes in one place.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID


class StorefrontError(Exception):
    """Base exception for the storefront package."""

    pass


# ---------------------------------------------------------------------------
# Event store and aggregate infrastructure
# ---------------------------------------------------------------------------


class OptimisticLockError(StorefrontError):
    """Raised when there's a version conflict during event append."""

    def __init__(self, aggregate_id: UUID, expected_version: int, actual_version: int) -> None:
        self.aggregate_id = aggregate_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Optimistic lock error for aggregate {aggregate_id}: "
            f"expected version {expected_version}, but current version is {actual_version}"
        )


class AggregateNotFoundError(StorefrontError):
    """Raised when an aggregate has no events in the store."""

    def __init__(self, aggregate_id: UUID, aggregate_type: str | None = None) -> None:
        self.aggregate_id = aggregate_id
        self.aggregate_type = aggregate_type
        type_info = f" of type {aggregate_type}" if aggregate_type else ""
        super().__init__(f"Aggregate{type_info} not found: {aggregate_id}")


class SerializationError(StorefrontError):
    """Raised when event serialization or deserialization fails."""

    def __init__(self, event_type: str, message: str) -> None:
        self.event_type = event_type
        super().__init__(f"Serialization error for {event_type}: {message}")


class EventVersionError(StorefrontError):
    """
    Raised when a new event does not carry the next aggregate version.

    Attributes:
        expected_version: The version that was expected (current version + 1)
        actual_version: The version found in the event
        event_id: ID of the event with invalid version
        aggregate_id: ID of the aggregate being updated
    """

    def __init__(
        self,
        expected_version: int,
        actual_version: int,
        event_id: UUID,
        aggregate_id: UUID,
    ) -> None:
        self.expected_version = expected_version
        self.actual_version = actual_version
        self.event_id = event_id
        self.aggregate_id = aggregate_id
        super().__init__(
            f"Event version mismatch for aggregate {aggregate_id}: "
            f"expected version {expected_version}, got {actual_version} "
            f"(event_id: {event_id})"
        )


class UnhandledEventError(StorefrontError):
    """Raised when a strict aggregate receives an event it has no handler for."""

    def __init__(
        self,
        event_type: str,
        event_id: UUID,
        handler_class: str,
        available_handlers: list[str],
    ) -> None:
        self.event_type = event_type
        self.event_id = event_id
        self.handler_class = handler_class
        self.available_handlers = available_handlers
        handlers_str = ", ".join(available_handlers) if available_handlers else "none"
        super().__init__(
            f"No handler registered for event type '{event_type}' "
            f"in {handler_class}. Available handlers: {handlers_str}."
        )


class TransactionTimeoutError(StorefrontError):
    """Raised when an atomic commit does not finish within its time budget."""

    def __init__(self, timeout: float, stream_count: int) -> None:
        self.timeout = timeout
        self.stream_count = stream_count
        super().__init__(
            f"Transaction over {stream_count} stream(s) did not commit within {timeout}s"
        )


class LockAcquisitionError(StorefrontError):
    """
    Raised when a lock cannot be acquired.

    Attributes:
        key: The lock key that could not be acquired
        reason: Description of why acquisition failed
        timeout: The timeout value if timeout was the cause
    """

    def __init__(self, key: str, reason: str, timeout: float | None = None) -> None:
        self.key = key
        self.reason = reason
        self.timeout = timeout
        super().__init__(f"Failed to acquire lock '{key}': {reason}")


class ConfigurationError(StorefrontError):
    """Raised when settings are missing or invalid at startup."""

    def __init__(self, setting: str, message: str) -> None:
        self.setting = setting
        super().__init__(f"Invalid configuration for {setting}: {message}")


# ---------------------------------------------------------------------------
# Payment gateway
# ---------------------------------------------------------------------------


class GatewayError(StorefrontError):
    """Raised when the payment gateway rejects a call or cannot be reached."""

    def __init__(self, operation: str, message: str, status_code: int | None = None) -> None:
        self.operation = operation
        self.status_code = status_code
        super().__init__(f"Payment gateway {operation} failed: {message}")


class GatewayTimeoutError(GatewayError):
    """Raised when the payment gateway does not answer in time."""

    def __init__(self, operation: str, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(operation, f"no response within {timeout}s")


class RefundFailedError(GatewayError):
    """Raised when the gateway refuses or fails a refund."""

    def __init__(self, reference: str, message: str, status_code: int | None = None) -> None:
        self.reference = reference
        super().__init__("refund", f"{message} (reference {reference})", status_code)


# ---------------------------------------------------------------------------
# Webhook and reconciliation
# ---------------------------------------------------------------------------


class AuthenticationError(StorefrontError):
    """Raised when a caller cannot be authenticated."""

    pass


class SignatureInvalidError(AuthenticationError):
    """Raised when a webhook signature is missing or does not match the body."""

    def __init__(self, reason: str = "signature mismatch") -> None:
        self.reason = reason
        super().__init__(f"Webhook signature rejected: {reason}")


class ForbiddenError(AuthenticationError):
    """Raised when an authenticated caller lacks the admin role."""

    pass


class ValidationError(StorefrontError):
    """Raised when a request or payload is malformed. Nothing is mutated."""

    pass


class AlreadyProcessedError(StorefrontError):
    """Raised when a payment for a cart has already been applied."""

    def __init__(self, cart_id: str, reference: str | None = None) -> None:
        self.cart_id = cart_id
        self.reference = reference
        ref_info = f" (reference {reference})" if reference else ""
        super().__init__(f"Payment for cart {cart_id} was already processed{ref_info}")


class VerificationFailedError(StorefrontError):
    """Raised when server-side transaction verification does not confirm the payment."""

    def __init__(self, reference: str, reason: str) -> None:
        self.reference = reference
        self.reason = reason
        super().__init__(f"Verification failed for transaction {reference}: {reason}")


class InsufficientStockError(StorefrontError):
    """
    Raised when a stock counter would go negative.

    During reconciliation this means an item was sold that cannot be
    fulfilled, so it is logged at critical level for operator attention.

    Attributes:
        product_id: The product whose stock was insufficient
        variation_id: The variation, for variable products
        requested: Units the operation needed
        available: Units in stock
    """

    def __init__(
        self,
        product_id: UUID,
        requested: int,
        available: int,
        variation_id: str | None = None,
    ) -> None:
        self.product_id = product_id
        self.variation_id = variation_id
        self.requested = requested
        self.available = available
        target = f"{product_id}/{variation_id}" if variation_id else str(product_id)
        super().__init__(
            f"Insufficient stock for {target}: requested {requested}, available {available}"
        )


class NotificationFailureError(StorefrontError):
    """Raised by notifiers when a message cannot be delivered."""

    def __init__(self, recipient: str, kind: str, message: str) -> None:
        self.recipient = recipient
        self.kind = kind
        super().__init__(f"Could not deliver {kind} notification to {recipient}: {message}")


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------


class InvalidStatusError(ValidationError):
    """Raised when an order status value is not an allowed update target."""

    def __init__(self, status: str, allowed: list[str]) -> None:
        self.status = status
        self.allowed = allowed
        super().__init__(f"Invalid order status '{status}'. Allowed: {', '.join(allowed)}")


class InvalidStateTransitionError(StorefrontError):
    """Raised when an aggregate cannot perform an operation from its current state."""

    def __init__(self, entity: str, entity_id: str, current: str, operation: str) -> None:
        self.entity = entity
        self.entity_id = entity_id
        self.current = current
        self.operation = operation
        super().__init__(f"Cannot {operation} {entity} {entity_id} while it is {current}")


class ProductNotFoundError(StorefrontError):
    """Raised when a product cannot be resolved by id or name."""

    def __init__(self, identifier: str) -> None:
        self.identifier = identifier
        super().__init__(f"Product not found: {identifier}")


class VariationNotFoundError(StorefrontError):
    """Raised when a variable product has no matching (enabled) variation."""

    def __init__(self, product_id: UUID, variation: str | None, reason: str = "not found") -> None:
        self.product_id = product_id
        self.variation = variation
        super().__init__(f"Variation {variation!r} of product {product_id} {reason}")


class CouponNotFoundError(StorefrontError):
    """Raised when a coupon code does not exist."""

    def __init__(self, code: str) -> None:
        self.code = code
        super().__init__(f"Coupon not found: {code}")


class CouponExpiredError(ValidationError):
    """Raised when an expired coupon is applied at checkout."""

    def __init__(self, code: str) -> None:
        self.code = code
        super().__init__(f"Coupon {code} has expired")


class CartNotFoundError(StorefrontError):
    """Raised when a cart id does not exist."""

    def __init__(self, cart_id: str) -> None:
        self.cart_id = cart_id
        super().__init__(f"Cart not found: {cart_id}")


class OrderNotFoundError(StorefrontError):
    """Raised when an order id or payment reference does not match any order."""

    def __init__(self, identifier: str) -> None:
        self.identifier = identifier
        super().__init__(f"Order not found: {identifier}")


class InvalidRefundAmountError(ValidationError):
    """Raised when a refund amount is not positive or exceeds the order total."""

    def __init__(self, amount: Decimal, total: Decimal) -> None:
        self.amount = amount
        self.total = total
        super().__init__(f"Refund amount {amount} must be greater than 0 and at most {total}")


__all__ = [
    "AggregateNotFoundError",
    "AlreadyProcessedError",
    "AuthenticationError",
    "CartNotFoundError",
    "ConfigurationError",
    "CouponExpiredError",
    "CouponNotFoundError",
    "EventVersionError",
    "ForbiddenError",
    "GatewayError",
    "GatewayTimeoutError",
    "InsufficientStockError",
    "InvalidRefundAmountError",
    "InvalidStateTransitionError",
    "InvalidStatusError",
    "LockAcquisitionError",
    "NotificationFailureError",
    "OptimisticLockError",
    "OrderNotFoundError",
    "ProductNotFoundError",
    "RefundFailedError",
    "SerializationError",
    "SignatureInvalidError",
    "StorefrontError",
    "TransactionTimeoutError",
    "UnhandledEventError",
    "ValidationError",
    "VariationNotFoundError",
    "VerificationFailedError",
]
