"""
In-memory event store implementation.

Useful for testing and development. All events are lost when the process
terminates.
"""

import asyncio
import logging
from collections import defaultdict
from uuid import UUID

from storefront.events.base import DomainEvent
from storefront.observability import (
    ATTR_AGGREGATE_ID,
    ATTR_AGGREGATE_TYPE,
    ATTR_EVENT_COUNT,
    ATTR_STREAM_COUNT,
    Tracer,
    create_tracer,
)
from storefront.stores.interface import (
    AppendResult,
    EventStore,
    EventStream,
    StreamAppend,
    check_expected_version,
    ensure_unique_streams,
)

logger = logging.getLogger(__name__)


class InMemoryEventStore(EventStore):
    """
    In-memory implementation of the event store.

    Streams are keyed by (aggregate_id, aggregate_type). A single asyncio
    lock serializes appends, so a multi-stream append checks every
    expected version and writes every stream without another coroutine
    observing a partial result.

    Example:
        >>> store = InMemoryEventStore()
        >>> await store.append_events(cart_id, "Cart", [CartCreated(...)], 0)
    """

    def __init__(
        self,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

        self._streams: dict[tuple[UUID, str], list[DomainEvent]] = defaultdict(list)
        self._event_ids: set[UUID] = set()
        # every stored event in append order
        self._log: list[DomainEvent] = []
        self._lock: asyncio.Lock = asyncio.Lock()

    async def append_streams(self, appends: list[StreamAppend]) -> list[AppendResult]:
        """
        Append to several streams atomically.

        Raises:
            OptimisticLockError: If any stream's expected version doesn't match
            ValueError: If a stream appears more than once
        """
        ensure_unique_streams(appends)
        with self._tracer.span(
            "inmemory_event_store.append_streams",
            {
                ATTR_STREAM_COUNT: len(appends),
                ATTR_EVENT_COUNT: sum(len(a.events) for a in appends),
            },
        ):
            async with self._lock:
                for append in appends:
                    key = (append.aggregate_id, append.aggregate_type)
                    current = len(self._streams.get(key, []))
                    check_expected_version(append.aggregate_id, append.expected_version, current)

                return [self._write(append) for append in appends]

    def _write(self, append: StreamAppend) -> AppendResult:
        stream = self._streams[(append.aggregate_id, append.aggregate_type)]
        for event in append.events:
            if event.event_id in self._event_ids:
                # Already stored, skip (idempotent)
                continue
            stream.append(event)
            self._event_ids.add(event.event_id)
            self._log.append(event)

        logger.debug(
            "Appended %d events to %s, new version: %d",
            len(append.events),
            append.stream_id,
            len(stream),
        )
        return AppendResult.successful(len(stream))

    async def get_events(self, aggregate_id: UUID, aggregate_type: str) -> EventStream:
        with self._tracer.span(
            "inmemory_event_store.get_events",
            {
                ATTR_AGGREGATE_ID: str(aggregate_id),
                ATTR_AGGREGATE_TYPE: aggregate_type,
            },
        ):
            async with self._lock:
                events = list(self._streams.get((aggregate_id, aggregate_type), []))
            return EventStream(
                aggregate_id=aggregate_id,
                aggregate_type=aggregate_type,
                events=events,
                version=len(events),
            )

    async def get_events_by_type(
        self,
        aggregate_type: str,
        event_type: str | None = None,
    ) -> list[DomainEvent]:
        async with self._lock:
            return [
                event
                for event in self._log
                if event.aggregate_type == aggregate_type
                and (event_type is None or event.event_type == event_type)
            ]


__all__ = ["InMemoryEventStore"]
