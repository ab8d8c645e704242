"""
Shared test fixtures for the storefront tests.

This module provides:
- FakeGateway: in-process payment gateway with controllable verification
- Notifier doubles (RecordingNotifier, FailingNotifier, FlakyNotifier)
- RecordingTracer: keeps span names for assertions
- Catalog seeding and webhook helpers

Usage:
    from tests.fixtures import BUYER, FakeGateway, add_bulb, charge_body, deliver
"""

from tests.fixtures.gateway import FakeGateway, FakeTransaction
from tests.fixtures.notifiers import FailingNotifier, FlakyNotifier, RecordingNotifier
from tests.fixtures.storefront import (
    ADDRESS,
    BUYER,
    add_bulb,
    add_kettle,
    charge_body,
    checkout,
    deliver,
)
from tests.fixtures.tracing import RecordingTracer

__all__ = [
    "ADDRESS",
    "BUYER",
    "FailingNotifier",
    "FakeGateway",
    "FakeTransaction",
    "FlakyNotifier",
    "RecordingNotifier",
    "RecordingTracer",
    "add_bulb",
    "add_kettle",
    "charge_body",
    "checkout",
    "deliver",
]
