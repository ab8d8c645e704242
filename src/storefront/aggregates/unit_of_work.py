"""
Atomic commits spanning several aggregates.

Reconciling a payment touches products, a coupon, the cart and a new
order. A UnitOfWork collects those aggregates and persists all of their
uncommitted events with one multi-stream append: either every stream
advances or none does.

Example:
    >>> uow = UnitOfWork(store, transaction_timeout=10.0)
    >>> uow.register(repos.products, product)
    >>> uow.register(repos.carts, cart)
    >>> uow.register(repos.orders, order)
    >>> await uow.commit()
"""

import asyncio
import logging
from typing import Any

from storefront.aggregates.base import AggregateRoot
from storefront.aggregates.repository import AggregateRepository
from storefront.exceptions import TransactionTimeoutError
from storefront.observability import Tracer, create_tracer
from storefront.observability.attributes import ATTR_EVENT_COUNT, ATTR_STREAM_COUNT
from storefront.stores.interface import AppendResult, EventStore, StreamAppend

logger = logging.getLogger(__name__)


class UnitOfWork:
    """
    Collects changed aggregates and commits them in one transaction.

    Aggregates are keyed by (type, id): registering the same aggregate
    twice is harmless, registering a different instance of the same
    stream is an error.

    Args:
        event_store: Store every registered repository writes to
        transaction_timeout: Seconds allowed for the commit, None for no limit
        tracer: Optional custom Tracer instance
        enable_tracing: Emit OpenTelemetry spans (ignored if tracer is given)
    """

    def __init__(
        self,
        event_store: EventStore,
        transaction_timeout: float | None = None,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._event_store = event_store
        self._transaction_timeout = transaction_timeout
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._entries: dict[
            tuple[str, Any], tuple[AggregateRepository[Any], AggregateRoot[Any]]
        ] = {}
        self._committed = False

    def register(
        self,
        repository: AggregateRepository[Any],
        aggregate: AggregateRoot[Any],
    ) -> None:
        """Track an aggregate so its uncommitted events are part of the commit."""
        if repository.event_store is not self._event_store:
            raise ValueError(
                f"Repository for {repository.aggregate_type} uses a different event store"
            )
        key = (repository.aggregate_type, aggregate.aggregate_id)
        existing = self._entries.get(key)
        if existing is not None and existing[1] is not aggregate:
            raise ValueError(
                f"Another instance of {repository.aggregate_type} "
                f"{aggregate.aggregate_id} is already registered"
            )
        self._entries[key] = (repository, aggregate)

    @property
    def committed(self) -> bool:
        return self._committed

    def pending_appends(self) -> list[StreamAppend]:
        """StreamAppends for every registered aggregate with uncommitted events."""
        appends = []
        for repository, aggregate in self._entries.values():
            append = repository.pending_append(aggregate)
            if append is not None:
                appends.append(append)
        return appends

    async def commit(self) -> list[AppendResult]:
        """
        Persist every registered aggregate atomically.

        Returns:
            One AppendResult per stream written

        Raises:
            OptimisticLockError: If any stream moved since it was loaded
            TransactionTimeoutError: If the store did not finish in time
        """
        if self._committed:
            raise RuntimeError("UnitOfWork has already been committed")

        appends = self.pending_appends()
        if not appends:
            self._committed = True
            return []

        event_count = sum(len(append.events) for append in appends)
        with self._tracer.span(
            "storefront.unit_of_work.commit",
            {
                ATTR_STREAM_COUNT: len(appends),
                ATTR_EVENT_COUNT: event_count,
            },
        ):
            try:
                results = await asyncio.wait_for(
                    self._event_store.append_streams(appends),
                    timeout=self._transaction_timeout,
                )
            except TimeoutError:
                logger.error(
                    "Commit of %d stream(s) timed out after %ss",
                    len(appends),
                    self._transaction_timeout,
                    extra={"stream_count": len(appends), "event_count": event_count},
                )
                raise TransactionTimeoutError(
                    self._transaction_timeout or 0.0, len(appends)
                ) from None

        for _, aggregate in self._entries.values():
            aggregate.mark_events_as_committed()
        self._committed = True

        logger.debug(
            "Committed %d event(s) across %d stream(s)",
            event_count,
            len(appends),
            extra={"stream_count": len(appends), "event_count": event_count},
        )
        return results


__all__ = ["UnitOfWork"]
