"""
Shared pytest fixtures for the storefront tests.

This module provides:
- Settings tuned for fast tests (short timeouts and retry delays)
- Event store fixtures (in-memory, SQLite in-memory, and both via ``any_store``)
- A fully wired Storefront over a FakeGateway and a RecordingNotifier
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from uuid import UUID, uuid4

import pytest
import pytest_asyncio

from storefront.app import Storefront
from storefront.config import Settings
from storefront.repositories import Repositories
from storefront.stores import EventStore, InMemoryEventStore, SQLiteEventStore
from tests.fixtures import FakeGateway, RecordingNotifier

WEBHOOK_SECRET = "sk_test_webhook_secret"
ADMIN_TOKEN = "admin-token"


@pytest.fixture
def settings() -> Settings:
    """Settings with short timeouts so failure paths finish quickly."""
    return Settings(
        paystack_secret_key=WEBHOOK_SECRET,
        admin_token=ADMIN_TOKEN,
        gateway_timeout=2.0,
        transaction_timeout=5.0,
        lock_timeout=5.0,
        notification_attempts=3,
        notification_retry_delay=0.001,
        conflict_retries=3,
    )


@pytest.fixture
def aggregate_id() -> UUID:
    return uuid4()


# ============================================================================
# Event stores
# ============================================================================


@pytest.fixture
def in_memory_store() -> InMemoryEventStore:
    return InMemoryEventStore(enable_tracing=False)


@pytest_asyncio.fixture
async def sqlite_store() -> AsyncGenerator[SQLiteEventStore, None]:
    """Schema-initialized SQLite store in a private in-memory database."""
    store = SQLiteEventStore(":memory:", enable_tracing=False)
    await store.initialize()
    try:
        yield store
    finally:
        await store.close()


@pytest_asyncio.fixture(params=["memory", "sqlite"])
async def any_store(request: pytest.FixtureRequest) -> AsyncGenerator[EventStore, None]:
    """Runs the test once per event store backend."""
    if request.param == "memory":
        yield InMemoryEventStore(enable_tracing=False)
        return
    store = SQLiteEventStore(":memory:", enable_tracing=False)
    await store.initialize()
    try:
        yield store
    finally:
        await store.close()


@pytest.fixture
def repositories(in_memory_store: InMemoryEventStore) -> Repositories:
    return Repositories.from_event_store(in_memory_store, enable_tracing=False)


# ============================================================================
# Application
# ============================================================================


@pytest.fixture
def fake_gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def storefront(
    settings: Settings,
    in_memory_store: InMemoryEventStore,
    fake_gateway: FakeGateway,
    notifier: RecordingNotifier,
) -> Storefront:
    """Every service wired over the in-memory store and the fake gateway."""
    return Storefront(settings, in_memory_store, fake_gateway, notifier)
