"""
Event store interface and core data structures.

The event store is the source of truth: products, coupons, carts and
orders are all rebuilt from the events persisted here.

This module provides:
- EventStream: A container for events belonging to an aggregate
- AppendResult: Result of appending events to the store
- StreamAppend: One stream's share of a multi-stream atomic append
- ExpectedVersion: Special expected-version values
- EventStore: Abstract base class for event store implementations
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from uuid import UUID

from storefront.events.base import DomainEvent
from storefront.exceptions import OptimisticLockError


@dataclass(frozen=True)
class EventStream:
    """
    Represents a stream of events for a single aggregate.

    Attributes:
        aggregate_id: Unique identifier of the aggregate
        aggregate_type: Type name of the aggregate (e.g., 'Cart')
        events: List of events in chronological order (oldest first)
        version: Current version of the aggregate (number of events applied)
    """

    aggregate_id: UUID
    aggregate_type: str
    events: list[DomainEvent] = field(default_factory=list)
    version: int = 0


@dataclass(frozen=True)
class AppendResult:
    """
    Result of appending events to the event store.

    Attributes:
        success: Whether the append was successful
        new_version: The version after appending (aggregate version)
    """

    success: bool
    new_version: int

    @classmethod
    def successful(cls, new_version: int) -> "AppendResult":
        return cls(success=True, new_version=new_version)


@dataclass(frozen=True)
class StreamAppend:
    """
    Events for one stream inside an atomic multi-stream append.

    Attributes:
        aggregate_id: ID of the aggregate
        aggregate_type: Type of aggregate
        events: Events to append, in order
        expected_version: Version the stream must be at, or an ExpectedVersion constant
    """

    aggregate_id: UUID
    aggregate_type: str
    events: list[DomainEvent]
    expected_version: int

    @property
    def stream_id(self) -> str:
        return f"{self.aggregate_id}:{self.aggregate_type}"


class ExpectedVersion:
    """
    Constants for expected version in append operations.

    - ANY: Don't check version
    - NO_STREAM: Expect the stream to not exist (creating an aggregate)
    - STREAM_EXISTS: Expect the stream to exist
    """

    ANY: int = -1
    NO_STREAM: int = 0
    STREAM_EXISTS: int = -2


def check_expected_version(aggregate_id: UUID, expected_version: int, current_version: int) -> None:
    """
    Enforce optimistic concurrency for one stream.

    Raises:
        OptimisticLockError: If current_version does not satisfy expected_version
    """
    if expected_version == ExpectedVersion.ANY:
        return
    if expected_version == ExpectedVersion.STREAM_EXISTS:
        if current_version == 0:
            raise OptimisticLockError(aggregate_id, expected_version, current_version)
        return
    if current_version != expected_version:
        raise OptimisticLockError(aggregate_id, expected_version, current_version)


def ensure_unique_streams(appends: list[StreamAppend]) -> None:
    """Reject a multi-stream append that names the same stream twice."""
    seen: set[tuple[UUID, str]] = set()
    for append in appends:
        key = (append.aggregate_id, append.aggregate_type)
        if key in seen:
            raise ValueError(f"Stream {append.stream_id} appears more than once in one append")
        seen.add(key)


class EventStore(ABC):
    """
    Abstract base class for event stores.

    Implementations must handle:
    - Atomic event appending with optimistic locking
    - Atomic appends spanning several streams (all or nothing)
    - Event retrieval by aggregate ID and by aggregate type

    Concrete implementations:
    - InMemoryEventStore: For testing and development
    - SQLiteEventStore: Durable single-node storage
    """

    async def append_events(
        self,
        aggregate_id: UUID,
        aggregate_type: str,
        events: list[DomainEvent],
        expected_version: int,
    ) -> AppendResult:
        """
        Append events to a single aggregate stream.

        Args:
            aggregate_id: ID of the aggregate
            aggregate_type: Type of aggregate (e.g., 'Order')
            events: Events to append
            expected_version: Expected current version (0 for new aggregates)

        Returns:
            AppendResult with success status and new version

        Raises:
            OptimisticLockError: If expected version doesn't match current version
        """
        if not events:
            return AppendResult.successful(expected_version)
        results = await self.append_streams(
            [StreamAppend(aggregate_id, aggregate_type, events, expected_version)]
        )
        return results[0]

    @abstractmethod
    async def append_streams(self, appends: list[StreamAppend]) -> list[AppendResult]:
        """
        Append to several streams in one transaction.

        Every expected version is checked before anything is written; a
        conflict on any stream writes nothing to any stream.

        Args:
            appends: One StreamAppend per stream; a stream may appear at most once

        Returns:
            One AppendResult per StreamAppend, in the same order

        Raises:
            OptimisticLockError: If any stream's expected version doesn't match
        """

    @abstractmethod
    async def get_events(
        self,
        aggregate_id: UUID,
        aggregate_type: str,
    ) -> EventStream:
        """
        Get the events of one aggregate stream.

        Args:
            aggregate_id: ID of the aggregate
            aggregate_type: Type of aggregate (e.g., 'Cart')

        Returns:
            EventStream with the events and the stream version
        """

    @abstractmethod
    async def get_events_by_type(
        self,
        aggregate_type: str,
        event_type: str | None = None,
    ) -> list[DomainEvent]:
        """
        Get all events of an aggregate type in global order.

        Used for lookups that are not keyed by aggregate id, such as
        products by name or orders by payment reference.

        Args:
            aggregate_type: Type of aggregate (e.g., 'Product')
            event_type: Only return events of this type (optional)
        """


__all__ = [
    "AppendResult",
    "EventStore",
    "EventStream",
    "ExpectedVersion",
    "StreamAppend",
    "check_expected_version",
    "ensure_unique_streams",
]
