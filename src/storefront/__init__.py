"""
storefront - Checkout and payment reconciliation for an online store.

This package provides:
- Event-sourced Product, Coupon, Cart and Order aggregates
- In-memory and SQLite event stores with atomic multi-stream appends
- A Paystack gateway client and webhook signature verification
- The reconciliation pipeline that turns verified payments into orders
- Order management (status updates, cancellation, refunds)
- A FastAPI application exposing all of the above
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("storefront")
except PackageNotFoundError:
    # Package not installed (running from source without install)
    __version__ = "0.0.0.dev0"

from storefront.aggregates import AggregateRepository, AggregateRoot, DeclarativeAggregate
from storefront.app import Storefront
from storefront.config import Settings
from storefront.events import DomainEvent, register_event
from storefront.exceptions import StorefrontError
from storefront.reconciliation import (
    ReconciliationOutcome,
    ReconciliationPipeline,
    ReconciliationResult,
)
from storefront.stores import EventStore, InMemoryEventStore, SQLiteEventStore

__all__ = [
    "AggregateRepository",
    "AggregateRoot",
    "DeclarativeAggregate",
    "DomainEvent",
    "EventStore",
    "InMemoryEventStore",
    "ReconciliationOutcome",
    "ReconciliationPipeline",
    "ReconciliationResult",
    "SQLiteEventStore",
    "Settings",
    "Storefront",
    "StorefrontError",
    "__version__",
    "register_event",
]
