"""
Event type registry.

Stores persist the event_type string next to the JSON payload; the
registry maps that string back to the event class on read. Every domain
event module registers its classes at import time with ``@register_event``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from storefront.events.base import DomainEvent

logger = logging.getLogger(__name__)

TEvent = TypeVar("TEvent", bound="DomainEvent")


class EventTypeNotFoundError(KeyError):
    """A stored event names a type no module has registered."""

    def __init__(self, event_type: str, available_types: list[str]) -> None:
        self.event_type = event_type
        self.available_types = available_types
        super().__init__(f"Unknown event type {event_type!r}")


class DuplicateEventTypeError(ValueError):
    """Two different classes claim the same event type name."""

    def __init__(self, event_type: str, existing: type[DomainEvent], new: type[DomainEvent]):
        self.event_type = event_type
        super().__init__(
            f"Event type {event_type!r} already belongs to {existing.__name__}, "
            f"not {new.__name__}"
        )


class EventRegistry:
    """Maps event type names to event classes."""

    def __init__(self) -> None:
        self._classes: dict[str, type[DomainEvent]] = {}

    def register(self, event_class: type[TEvent]) -> type[TEvent]:
        """
        Add ``event_class`` under its event type. Registering a class twice is a no-op.

        Raises:
            DuplicateEventTypeError: If the name belongs to a different class
        """
        event_type = event_class.default_event_type()
        existing = self._classes.get(event_type)
        if existing is not None and existing is not event_class:
            raise DuplicateEventTypeError(event_type, existing, event_class)
        self._classes[event_type] = event_class
        logger.debug("Registered event type %s", event_type)
        return event_class

    def get(self, event_type: str) -> type[DomainEvent]:
        try:
            return self._classes[event_type]
        except KeyError:
            raise EventTypeNotFoundError(event_type, sorted(self._classes)) from None

    def __contains__(self, event_type: object) -> bool:
        return event_type in self._classes


default_registry = EventRegistry()


def register_event(event_class: type[TEvent]) -> type[TEvent]:
    """Class decorator adding an event to the default registry."""
    return default_registry.register(event_class)


__all__ = [
    "DuplicateEventTypeError",
    "EventRegistry",
    "EventTypeNotFoundError",
    "default_registry",
    "register_event",
]
