"""
Base classes for event-sourced aggregates.

Products, coupons, carts and orders are aggregates: consistency boundaries
that validate commands against their current state, then record the
outcome as events. State is never assigned directly; it only changes by
applying an event, whether freshly raised or replayed from the store.
"""

import logging
from abc import ABC, abstractmethod
from typing import Generic, Literal
from uuid import UUID

from storefront.events.base import DomainEvent
from storefront.exceptions import EventVersionError, UnhandledEventError
from storefront.handlers import get_handled_event_type
from storefront.types import TState

logger = logging.getLogger(__name__)

UnregisteredEventHandling = Literal["ignore", "warn", "error"]


class AggregateRoot(Generic[TState], ABC):
    """
    Base class for event-sourced aggregate roots.

    Subclasses implement `_apply(event)` to fold an event into state and
    `_get_initial_state()` to provide the state before the first event.
    Command methods validate, build an event with `get_next_version()`
    and hand it to `_raise_event`.

    Attributes:
        aggregate_type: Stream type name, overridden by subclasses
        validate_versions: Reject new events whose version is not current + 1
    """

    aggregate_type: str = "Unknown"

    validate_versions: bool = True

    def __init__(self, aggregate_id: UUID) -> None:
        self._aggregate_id = aggregate_id
        self._version = 0
        self._uncommitted_events: list[DomainEvent] = []
        self._state: TState | None = None

    @property
    def aggregate_id(self) -> UUID:
        """Get the unique identifier for this aggregate."""
        return self._aggregate_id

    @property
    def version(self) -> int:
        """Get the current version (number of events applied)."""
        return self._version

    @property
    def state(self) -> TState | None:
        """
        Get the current state of the aggregate.

        Returns None for new aggregates that haven't had any events applied.
        """
        return self._state

    @property
    def uncommitted_events(self) -> list[DomainEvent]:
        """Events raised since the last commit (a copy)."""
        return self._uncommitted_events.copy()

    @property
    def committed_version(self) -> int:
        """Version of the stream as last read from or written to the store."""
        return self._version - len(self._uncommitted_events)

    def apply_event(self, event: DomainEvent, is_new: bool = True) -> None:
        """
        Apply an event to the aggregate.

        Args:
            event: The domain event to apply
            is_new: Whether this is a new event (True) or replayed from history (False)

        Raises:
            EventVersionError: If validation is enabled, is_new=True, and the
                event version is not current version + 1
        """
        if is_new:
            expected_version = self._version + 1
            if event.aggregate_version != expected_version:
                if self.validate_versions:
                    raise EventVersionError(
                        expected_version=expected_version,
                        actual_version=event.aggregate_version,
                        event_id=event.event_id,
                        aggregate_id=self._aggregate_id,
                    )
                logger.warning(
                    "Version mismatch (validation disabled): expected %d, got %d "
                    "for aggregate %s, event %s",
                    expected_version,
                    event.aggregate_version,
                    self._aggregate_id,
                    event.event_id,
                    extra={
                        "aggregate_id": str(self._aggregate_id),
                        "expected_version": expected_version,
                        "actual_version": event.aggregate_version,
                        "event_id": str(event.event_id),
                    },
                )

        self._version = event.aggregate_version
        self._apply(event)

        if is_new:
            self._uncommitted_events.append(event)

    @abstractmethod
    def _apply(self, event: DomainEvent) -> None:
        """Update state for one event."""
        pass

    @abstractmethod
    def _get_initial_state(self) -> TState:
        """State of the aggregate before its first event."""
        pass

    def mark_events_as_committed(self) -> None:
        """Called by repositories and units of work after a successful append."""
        self._uncommitted_events.clear()

    def load_from_history(self, events: list[DomainEvent]) -> None:
        """
        Reconstitute aggregate state from event history.

        Args:
            events: Historical events in stream order
        """
        for event in events:
            self.apply_event(event, is_new=False)

    def get_next_version(self) -> int:
        """Version number for the next event (current version + 1)."""
        return self._version + 1

    def _raise_event(self, event: DomainEvent) -> None:
        """Apply a newly raised event and queue it for persistence."""
        self.apply_event(event, is_new=True)

    def require_state(self) -> TState:
        """Current state, or the initial state for an aggregate with no events."""
        if self._state is None:
            self._state = self._get_initial_state()
        return self._state

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"id={self._aggregate_id}, "
            f"version={self._version}, "
            f"uncommitted={len(self._uncommitted_events)})"
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AggregateRoot):
            return NotImplemented
        return self._aggregate_id == other._aggregate_id

    def __hash__(self) -> int:
        return hash(self._aggregate_id)


class DeclarativeAggregate(AggregateRoot[TState], ABC):
    """
    Aggregate that routes events to methods decorated with @handles.

    Attributes:
        unregistered_event_handling: What to do with an event that has no
            handler: "ignore", "warn" or "error" (raise UnhandledEventError).

    Example:
        >>> class CouponAggregate(DeclarativeAggregate[CouponState]):
        ...     aggregate_type = "Coupon"
        ...
        ...     @handles(CouponRedeemed)
        ...     def _on_redeemed(self, event: CouponRedeemed) -> None:
        ...         ...
    """

    unregistered_event_handling: UnregisteredEventHandling = "error"

    _event_handlers: dict[type[DomainEvent], str] = {}

    def __init_subclass__(cls, **kwargs: object) -> None:
        """Collect @handles methods into a per-subclass registry."""
        super().__init_subclass__(**kwargs)
        cls._event_handlers = {}
        for name in dir(cls):
            event_type = get_handled_event_type(getattr(cls, name, None))
            if event_type is not None:
                cls._event_handlers[event_type] = name

    def _apply(self, event: DomainEvent) -> None:
        handler_name = self._event_handlers.get(type(event))
        if handler_name:
            getattr(self, handler_name)(event)
        else:
            self._handle_unregistered_event(event)

    def _handle_unregistered_event(self, event: DomainEvent) -> None:
        event_type = type(event)
        available_handlers = [et.__name__ for et in self._event_handlers]

        if self.unregistered_event_handling == "error":
            raise UnhandledEventError(
                event_type=event_type.__name__,
                event_id=event.event_id,
                handler_class=self.__class__.__name__,
                available_handlers=available_handlers,
            )
        elif self.unregistered_event_handling == "warn":
            logger.warning(
                "No handler registered for event type %s in %s. Available handlers: %s.",
                event_type.__name__,
                self.__class__.__name__,
                ", ".join(available_handlers) if available_handlers else "none",
                extra={
                    "event_type": event_type.__name__,
                    "event_id": str(event.event_id),
                    "handler_class": self.__class__.__name__,
                },
            )


__all__ = [
    "AggregateRoot",
    "DeclarativeAggregate",
    "UnregisteredEventHandling",
]
