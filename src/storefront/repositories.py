"""One AggregateRepository per aggregate type, all over the same event store."""

from __future__ import annotations

from dataclasses import dataclass

from storefront.aggregates.repository import AggregateRepository
from storefront.aggregates.unit_of_work import UnitOfWork
from storefront.domain.cart import CART_AGGREGATE_TYPE, CartAggregate
from storefront.domain.coupon import COUPON_AGGREGATE_TYPE, CouponAggregate
from storefront.domain.order import ORDER_AGGREGATE_TYPE, OrderAggregate
from storefront.domain.product import PRODUCT_AGGREGATE_TYPE, ProductAggregate
from storefront.observability import Tracer
from storefront.stores.interface import EventStore


@dataclass(frozen=True)
class Repositories:
    event_store: EventStore
    products: AggregateRepository[ProductAggregate]
    coupons: AggregateRepository[CouponAggregate]
    carts: AggregateRepository[CartAggregate]
    orders: AggregateRepository[OrderAggregate]

    @classmethod
    def from_event_store(
        cls,
        event_store: EventStore,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> Repositories:
        def repository(factory: type, aggregate_type: str) -> AggregateRepository:
            return AggregateRepository(
                event_store,
                factory,
                aggregate_type,
                tracer=tracer,
                enable_tracing=enable_tracing,
            )

        return cls(
            event_store=event_store,
            products=repository(ProductAggregate, PRODUCT_AGGREGATE_TYPE),
            coupons=repository(CouponAggregate, COUPON_AGGREGATE_TYPE),
            carts=repository(CartAggregate, CART_AGGREGATE_TYPE),
            orders=repository(OrderAggregate, ORDER_AGGREGATE_TYPE),
        )

    def unit_of_work(
        self,
        transaction_timeout: float | None = None,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> UnitOfWork:
        return UnitOfWork(
            self.event_store,
            transaction_timeout,
            tracer=tracer,
            enable_tracing=enable_tracing,
        )


__all__ = ["Repositories"]
