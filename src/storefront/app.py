"""
Application wiring.

``Storefront`` builds every service from one ``Settings`` over a single
event store, so the API, the CLI and tests all share the same object
graph.

Example:
    >>> storefront = await Storefront.from_settings(Settings.from_env())
    >>> try:
    ...     result = await storefront.checkout.create_cart(buyer, items, address)
    ... finally:
    ...     await storefront.aclose()
"""

from __future__ import annotations

import logging

from storefront.catalog import CatalogService, CouponService
from storefront.checkout import CheckoutService
from storefront.config import Settings
from storefront.gateway.client import PaymentGateway, PaystackClient
from storefront.gateway.webhook import WebhookVerifier
from storefront.locks import InMemoryLockManager
from storefront.notifications import LoggingNotifier, NotificationDispatcher, Notifier
from storefront.observability import Tracer
from storefront.orders import OrderService
from storefront.reconciliation import ReconciliationPipeline
from storefront.repositories import Repositories
from storefront.stores import EventStore, InMemoryEventStore, SQLiteEventStore

logger = logging.getLogger(__name__)


class Storefront:
    """
    Container for the storefront services.

    Args:
        settings: Application settings
        event_store: Store every aggregate is persisted in
        gateway: Payment gateway client
        notifier: Notification backend (logs only if omitted)
        tracer: Optional Tracer shared by all components
    """

    def __init__(
        self,
        settings: Settings,
        event_store: EventStore,
        gateway: PaymentGateway,
        notifier: Notifier | None = None,
        *,
        tracer: Tracer | None = None,
    ) -> None:
        self.settings = settings
        self.event_store = event_store
        self.gateway = gateway
        self.repositories = Repositories.from_event_store(
            event_store, tracer=tracer, enable_tracing=settings.enable_tracing
        )
        self.locks = InMemoryLockManager(tracer=tracer, enable_tracing=settings.enable_tracing)
        self.notifications = NotificationDispatcher(
            notifier or LoggingNotifier(),
            attempts=settings.notification_attempts,
            retry_delay=settings.notification_retry_delay,
            tracer=tracer,
            enable_tracing=settings.enable_tracing,
        )
        self.verifier = WebhookVerifier(settings.paystack_webhook_secret)

        self.catalog = CatalogService(self.repositories)
        self.coupons = CouponService(self.repositories, settings.default_coupon_discount)
        self.checkout = CheckoutService(
            self.repositories, self.catalog, self.coupons, gateway, self.locks, settings
        )
        self.orders = OrderService(
            self.repositories, gateway, self.locks, self.notifications, settings
        )
        self.reconciliation = ReconciliationPipeline(
            self.repositories,
            self.catalog,
            gateway,
            self.verifier,
            self.notifications,
            self.locks,
            settings,
            tracer=tracer,
        )
        self._owned_gateway: PaystackClient | None = None

    @classmethod
    async def from_settings(
        cls,
        settings: Settings,
        *,
        gateway: PaymentGateway | None = None,
        notifier: Notifier | None = None,
        tracer: Tracer | None = None,
    ) -> Storefront:
        """
        Build a storefront, opening its event store.

        ``settings.database`` selects the store: ``":memory:"`` for the
        in-memory store, any other value is a SQLite file. A Paystack client
        is created when no gateway is given and closed by ``aclose()``.
        """
        event_store: EventStore
        if settings.uses_in_memory_store:
            event_store = InMemoryEventStore(
                tracer=tracer, enable_tracing=settings.enable_tracing
            )
        else:
            sqlite_store = SQLiteEventStore(
                settings.database, tracer=tracer, enable_tracing=settings.enable_tracing
            )
            await sqlite_store.initialize()
            event_store = sqlite_store

        owned: PaystackClient | None = None
        if gateway is None:
            owned = PaystackClient(settings, tracer=tracer)
            gateway = owned

        storefront = cls(settings, event_store, gateway, notifier, tracer=tracer)
        storefront._owned_gateway = owned
        logger.info(
            "Storefront ready (store=%s, currency=%s)",
            type(event_store).__name__,
            settings.currency,
        )
        return storefront

    async def aclose(self) -> None:
        """Release the gateway client and database connection this instance opened."""
        if self._owned_gateway is not None:
            await self._owned_gateway.aclose()
            self._owned_gateway = None
        if isinstance(self.event_store, SQLiteEventStore):
            await self.event_store.close()


__all__ = ["Storefront"]
