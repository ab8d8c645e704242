"""
In-process mutual exclusion keyed by string.

Webhook deliveries for the same cart are serialized with
``acquire("cart:<id>")`` so concurrent or retried deliveries of one
payment apply it at most once. Keys that nobody holds or waits for are
dropped, so the table does not grow with the number of carts.

Usage:
    >>> locks = InMemoryLockManager()
    >>> async with locks.acquire("cart:c-1", timeout=5.0):
    ...     await reconcile()
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, datetime

from storefront.exceptions import LockAcquisitionError
from storefront.observability import Tracer, create_tracer
from storefront.observability.attributes import ATTR_LOCK_KEY, ATTR_LOCK_TIMEOUT

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LockInfo:
    """
    Information about an acquired lock.

    Attributes:
        key: The string key used to identify the lock
        acquired_at: When the lock was acquired
        holder_id: Optional identifier for the lock holder (for debugging)
    """

    key: str
    acquired_at: datetime
    holder_id: str | None = None


class _KeyedLock:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.users = 0


class InMemoryLockManager:
    """
    Per-key asyncio locks for a single process.

    Args:
        holder_id: Optional identifier reported in LockInfo
        tracer: Optional custom Tracer instance
        enable_tracing: Emit OpenTelemetry spans (ignored if tracer is given)
    """

    def __init__(
        self,
        *,
        holder_id: str | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._holder_id = holder_id
        self._locks: dict[str, _KeyedLock] = {}

    @asynccontextmanager
    async def acquire(
        self,
        key: str,
        *,
        timeout: float | None = None,
    ) -> AsyncIterator[LockInfo]:
        """
        Hold the lock for ``key`` for the duration of the block.

        Args:
            key: String key identifying the lock (e.g., "cart:c-1")
            timeout: Maximum seconds to wait for the lock (None = wait forever)

        Yields:
            LockInfo with lock details

        Raises:
            LockAcquisitionError: If the lock cannot be acquired within timeout
        """
        entry = self._locks.get(key)
        if entry is None:
            entry = self._locks[key] = _KeyedLock()
        entry.users += 1

        try:
            with self._tracer.span(
                "storefront.lock.acquire",
                {
                    ATTR_LOCK_KEY: key,
                    ATTR_LOCK_TIMEOUT: timeout if timeout is not None else -1,
                },
            ):
                try:
                    await asyncio.wait_for(entry.lock.acquire(), timeout=timeout)
                except TimeoutError:
                    logger.warning(
                        "Timed out waiting for lock %s after %ss",
                        key,
                        timeout,
                        extra={"lock_key": key, "timeout": timeout},
                    )
                    raise LockAcquisitionError(
                        key=key,
                        reason=f"Timeout after {timeout}s",
                        timeout=timeout,
                    ) from None

            try:
                logger.debug("Acquired lock: key=%s", key)
                yield LockInfo(
                    key=key,
                    acquired_at=datetime.now(UTC),
                    holder_id=self._holder_id,
                )
            finally:
                entry.lock.release()
                logger.debug("Released lock: key=%s", key)
        finally:
            entry.users -= 1
            if entry.users == 0 and self._locks.get(key) is entry:
                del self._locks[key]

    def is_locked(self, key: str) -> bool:
        """True if some task currently holds ``key``."""
        entry = self._locks.get(key)
        return entry is not None and entry.lock.locked()

    @property
    def key_count(self) -> int:
        """Number of keys currently held or waited on."""
        return len(self._locks)


__all__ = [
    "InMemoryLockManager",
    "LockInfo",
]
