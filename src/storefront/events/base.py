"""
Base class for domain events.

Every state change of a product, coupon, cart or order is recorded as an
immutable event. Aggregates rebuild their state by replaying them.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator


class DomainEvent(BaseModel):
    """
    Base class for storefront events.

    ``event_type`` defaults to the class name; the event registry uses it to
    pick the class when a stored payload is read back.

    Attributes:
        event_id: Unique identifier, also the store's de-duplication key
        event_type: Type name of the event
        occurred_at: When the event was raised (UTC)
        aggregate_id: Stream the event belongs to
        aggregate_type: Kind of aggregate (e.g., 'Cart')
        aggregate_version: Version of the aggregate after this event

    Example:
        >>> class CartPaid(DomainEvent):
        ...     aggregate_type: str = "Cart"
        ...     reference: str
        ...
        >>> CartPaid(aggregate_id=uuid4(), reference="ref-1").event_type
        'CartPaid'
    """

    model_config = ConfigDict(frozen=True)

    event_id: UUID = Field(default_factory=uuid4)
    event_type: str = ""
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    aggregate_id: UUID
    aggregate_type: str
    aggregate_version: int = Field(default=1, ge=1)

    @classmethod
    def default_event_type(cls) -> str:
        """The declared event_type default, or the class name when none is declared."""
        field_info = cls.model_fields.get("event_type")
        if field_info is not None and isinstance(field_info.default, str) and field_info.default:
            return field_info.default
        return cls.__name__

    @model_validator(mode="before")
    @classmethod
    def _ensure_event_type(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("event_type"):
            data = dict(data)
            data["event_type"] = cls.default_event_type()
        return data

    def __str__(self) -> str:
        return (
            f"{self.event_type}(event_id={self.event_id}, "
            f"aggregate_id={self.aggregate_id}, "
            f"version={self.aggregate_version})"
        )

    def to_dict(self) -> dict[str, Any]:
        """JSON-compatible form, as written to durable stores."""
        return self.model_dump(mode="json")


__all__ = ["DomainEvent"]
