"""
Repository pattern for event-sourced aggregates.

Repositories provide a clean interface for loading and saving aggregates,
abstracting away the details of event store operations.
"""

import logging
from typing import Any, Generic, TypeVar
from uuid import UUID

from storefront.aggregates.base import AggregateRoot
from storefront.exceptions import AggregateNotFoundError
from storefront.observability import Tracer, create_tracer
from storefront.observability.attributes import (
    ATTR_AGGREGATE_ID,
    ATTR_AGGREGATE_TYPE,
    ATTR_EVENT_COUNT,
    ATTR_VERSION,
)
from storefront.stores.interface import EventStore, StreamAppend

logger = logging.getLogger(__name__)

TAggregate = TypeVar("TAggregate", bound="AggregateRoot[Any]")


class AggregateRepository(Generic[TAggregate]):
    """
    Repository for event-sourced aggregates.

    Loads aggregates by replaying their stream and saves them by appending
    their uncommitted events with the version they were loaded at, so a
    concurrent writer surfaces as OptimisticLockError.

    Example:
        >>> carts = AggregateRepository(store, CartAggregate, "Cart")
        >>> cart = carts.create_new(cart_uuid("c-1"))
        >>> cart.create(...)
        >>> await carts.save(cart)
        >>> loaded = await carts.load(cart.aggregate_id)
        >>> assert loaded.version == cart.version
    """

    def __init__(
        self,
        event_store: EventStore,
        aggregate_factory: type[TAggregate],
        aggregate_type: str,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the repository.

        Args:
            event_store: Event store for persistence and retrieval
            aggregate_factory: Class to instantiate when loading aggregates
            aggregate_type: Type name of the aggregate (e.g., 'Order')
            tracer: Optional custom Tracer instance
            enable_tracing: Emit OpenTelemetry spans (ignored if tracer is given)
        """
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._event_store = event_store
        self._aggregate_factory = aggregate_factory
        self._aggregate_type = aggregate_type

    @property
    def aggregate_type(self) -> str:
        """Get the aggregate type this repository manages."""
        return self._aggregate_type

    @property
    def event_store(self) -> EventStore:
        """Get the event store used by this repository."""
        return self._event_store

    async def load(self, aggregate_id: UUID) -> TAggregate:
        """
        Load an aggregate from its event history.

        Args:
            aggregate_id: ID of the aggregate to load

        Returns:
            The reconstituted aggregate with current state

        Raises:
            AggregateNotFoundError: If no events exist for the aggregate
        """
        with self._tracer.span(
            "storefront.repository.load",
            {
                ATTR_AGGREGATE_ID: str(aggregate_id),
                ATTR_AGGREGATE_TYPE: self._aggregate_type,
            },
        ) as span:
            event_stream = await self._event_store.get_events(
                aggregate_id,
                aggregate_type=self._aggregate_type,
            )
            if not event_stream.events:
                raise AggregateNotFoundError(aggregate_id, self._aggregate_type)

            aggregate = self._aggregate_factory(aggregate_id)
            aggregate.load_from_history(event_stream.events)

            if span:
                span.set_attribute("events.replayed", len(event_stream.events))
                span.set_attribute(ATTR_VERSION, aggregate.version)

            logger.debug(
                "Loaded %s/%s at version %d",
                self._aggregate_type,
                aggregate_id,
                aggregate.version,
            )
            return aggregate

    async def save(self, aggregate: TAggregate) -> None:
        """
        Save an aggregate by persisting its uncommitted events.

        No-op when there is nothing to persist.

        Raises:
            OptimisticLockError: If the stream moved since the aggregate was loaded
        """
        uncommitted_events = aggregate.uncommitted_events
        if not uncommitted_events:
            return

        with self._tracer.span(
            "storefront.repository.save",
            {
                ATTR_AGGREGATE_ID: str(aggregate.aggregate_id),
                ATTR_AGGREGATE_TYPE: self._aggregate_type,
                ATTR_EVENT_COUNT: len(uncommitted_events),
                ATTR_VERSION: aggregate.version,
            },
        ):
            result = await self._event_store.append_events(
                aggregate_id=aggregate.aggregate_id,
                aggregate_type=self._aggregate_type,
                events=uncommitted_events,
                expected_version=aggregate.committed_version,
            )
            if result.success:
                aggregate.mark_events_as_committed()

    def pending_append(self, aggregate: TAggregate) -> StreamAppend | None:
        """The StreamAppend that would persist this aggregate, None if unchanged."""
        uncommitted_events = aggregate.uncommitted_events
        if not uncommitted_events:
            return None
        return StreamAppend(
            aggregate_id=aggregate.aggregate_id,
            aggregate_type=self._aggregate_type,
            events=uncommitted_events,
            expected_version=aggregate.committed_version,
        )

    async def list_ids(self) -> list[UUID]:
        """IDs of every aggregate of this type, in order of first appearance."""
        events = await self._event_store.get_events_by_type(self._aggregate_type)
        return list(dict.fromkeys(event.aggregate_id for event in events))

    def create_new(self, aggregate_id: UUID) -> TAggregate:
        """
        Create a new, empty aggregate instance.

        This does not persist anything; apply commands, then save.
        """
        return self._aggregate_factory(aggregate_id)


__all__ = [
    "AggregateRepository",
    "TAggregate",
]
