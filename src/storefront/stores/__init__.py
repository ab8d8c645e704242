"""Event store interface and backends."""

from storefront.stores.in_memory import InMemoryEventStore
from storefront.stores.interface import (
    AppendResult,
    EventStore,
    EventStream,
    ExpectedVersion,
    StreamAppend,
)
from storefront.stores.sqlite import SQLiteEventStore

__all__ = [
    "AppendResult",
    "EventStore",
    "EventStream",
    "ExpectedVersion",
    "InMemoryEventStore",
    "SQLiteEventStore",
    "StreamAppend",
]
