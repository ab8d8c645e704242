"""Common type definitions for the storefront package."""

from decimal import Decimal
from typing import TypeVar
from uuid import UUID

from pydantic import BaseModel

# Type variable for aggregate state
TState = TypeVar("TState", bound=BaseModel)

AggregateId = UUID
EventId = UUID

# Version type for optimistic locking
Version = int
GlobalPosition = int

# Amounts in major currency units; the gateway speaks minor units (int)
Money = Decimal
MinorUnits = int
