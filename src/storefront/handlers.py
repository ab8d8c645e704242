"""
The @handles decorator for declarative aggregates.

Example:
    >>> class CartAggregate(DeclarativeAggregate[CartState]):
    ...     @handles(CartPaid)
    ...     def _on_paid(self, event: CartPaid) -> None:
    ...         ...
"""

from collections.abc import Callable
from typing import Any, TypeVar

from storefront.events.base import DomainEvent

F = TypeVar("F", bound=Callable[..., Any])


def handles(event_type: type[DomainEvent]) -> Callable[[F], F]:
    """
    Mark a method as the state handler for one event type.

    DeclarativeAggregate discovers decorated methods when the subclass is
    defined and routes replayed and newly raised events to them.

    Args:
        event_type: The DomainEvent subclass this handler applies
    """

    def decorator(func: F) -> F:
        func._handles_event_type = event_type  # type: ignore[attr-defined]
        return func

    return decorator


def get_handled_event_type(func: Callable[..., Any]) -> type[DomainEvent] | None:
    """Return the event type a function was decorated for, or None."""
    return getattr(func, "_handles_event_type", None)


__all__ = ["get_handled_event_type", "handles"]
