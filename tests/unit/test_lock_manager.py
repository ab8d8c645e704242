"""Tests for InMemoryLockManager."""

import asyncio

import pytest

from storefront.exceptions import LockAcquisitionError
from storefront.locks import InMemoryLockManager
from tests.fixtures import RecordingTracer


@pytest.fixture
def locks() -> InMemoryLockManager:
    return InMemoryLockManager(holder_id="worker-1", enable_tracing=False)


class TestInMemoryLockManager:
    """Tests for per-key mutual exclusion."""

    @pytest.mark.asyncio
    async def test_acquire_yields_lock_info(self, locks: InMemoryLockManager) -> None:
        """Test the lock is held inside the block and released after."""
        async with locks.acquire("cart:c-1") as info:
            assert info.key == "cart:c-1"
            assert info.holder_id == "worker-1"
            assert locks.is_locked("cart:c-1")

        assert locks.is_locked("cart:c-1") is False
        assert locks.key_count == 0

    @pytest.mark.asyncio
    async def test_same_key_serializes(self, locks: InMemoryLockManager) -> None:
        """Test two tasks on one key never overlap."""
        order: list[str] = []

        async def worker(name: str) -> None:
            async with locks.acquire("cart:c-1"):
                order.append(f"{name}-in")
                await asyncio.sleep(0.01)
                order.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))

        assert order in (["a-in", "a-out", "b-in", "b-out"], ["b-in", "b-out", "a-in", "a-out"])

    @pytest.mark.asyncio
    async def test_different_keys_do_not_block(self, locks: InMemoryLockManager) -> None:
        """Test a held key does not block another key."""
        async with locks.acquire("cart:c-1"):
            async with locks.acquire("cart:c-2", timeout=0.05):
                assert locks.key_count == 2

    @pytest.mark.asyncio
    async def test_timeout_raises(self, locks: InMemoryLockManager) -> None:
        """Test waiting past the timeout raises LockAcquisitionError."""
        async with locks.acquire("cart:c-1"):
            with pytest.raises(LockAcquisitionError) as exc_info:
                async with locks.acquire("cart:c-1", timeout=0.01):
                    pass

        assert exc_info.value.key == "cart:c-1"
        assert exc_info.value.timeout == 0.01
        assert locks.key_count == 0

    @pytest.mark.asyncio
    async def test_released_on_error(self, locks: InMemoryLockManager) -> None:
        """Test an exception inside the block still releases the lock."""
        with pytest.raises(RuntimeError):
            async with locks.acquire("cart:c-1"):
                raise RuntimeError("boom")

        async with locks.acquire("cart:c-1", timeout=0.01):
            pass

    @pytest.mark.asyncio
    async def test_acquire_is_traced(self) -> None:
        """Test acquisition records a span with the lock key."""
        tracer = RecordingTracer()
        locks = InMemoryLockManager(tracer=tracer)

        async with locks.acquire("cart:c-1", timeout=1.0):
            pass

        assert tracer.span_names == ["storefront.lock.acquire"]
