"""Aggregate base classes, repositories and atomic units of work."""

from storefront.aggregates.base import (
    AggregateRoot,
    DeclarativeAggregate,
    UnregisteredEventHandling,
)
from storefront.aggregates.repository import AggregateRepository, TAggregate
from storefront.aggregates.unit_of_work import UnitOfWork

__all__ = [
    "AggregateRepository",
    "AggregateRoot",
    "DeclarativeAggregate",
    "TAggregate",
    "UnitOfWork",
    "UnregisteredEventHandling",
]
