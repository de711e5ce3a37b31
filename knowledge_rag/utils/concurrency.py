"""Concurrency primitives for the ingestion pipeline.

Three pieces are exposed:

1. **ConcurrencyGate** -- a counting semaphore that bounds how many
   embedding calls run at once.  One gate is constructed per service
   instance and injected into every component that embeds text, so the
   bound is global for that service rather than per call.

2. **KeyedLock** -- an in-process lock map that serializes work per key
   (document id).  Closes the check-then-create race when two callers
   ingest the same new document id concurrently.

3. **throttled_gather** -- ``asyncio.gather`` with every awaitable wrapped
   in a gate acquire/release.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from types import TracebackType
from typing import Awaitable, TypeVar

import structlog

from knowledge_rag.utils.errors import ConfigurationError
from knowledge_rag.utils.logging import get_logger

_T = TypeVar("_T")

DEFAULT_GATE_CAPACITY = 10

_logger: structlog.BoundLogger = get_logger(__name__)


class ConcurrencyGate:
    """Bounded-permit semaphore limiting simultaneous embedding calls.

    Waiters are woken in FIFO order (``asyncio.Semaphore`` keeps a deque of
    waiters).  Use it as an async context manager so the permit is returned
    on success, on error and on cancellation alike::

        async with gate:
            vector = await provider.embed_single(text)

    Parameters
    ----------
    capacity:
        Number of permits.  Must be at least 1.
    """

    def __init__(self, capacity: int = DEFAULT_GATE_CAPACITY) -> None:
        if capacity < 1:
            raise ConfigurationError(f"Concurrency gate capacity must be >= 1, got {capacity}")
        self._capacity = capacity
        self._semaphore = asyncio.Semaphore(capacity)
        self._in_use = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def in_use(self) -> int:
        """Number of permits currently held."""
        return self._in_use

    @property
    def available(self) -> int:
        return self._capacity - self._in_use

    async def acquire(self) -> None:
        """Suspend until a permit is free, then take it."""
        await self._semaphore.acquire()
        self._in_use += 1

    def release(self) -> None:
        """Return a permit and wake one waiter, if any."""
        if self._in_use == 0:
            raise RuntimeError("ConcurrencyGate released more times than acquired")
        self._in_use -= 1
        self._semaphore.release()

    async def __aenter__(self) -> ConcurrencyGate:
        await self.acquire()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()


class KeyedLock:
    """Map of per-key ``asyncio.Lock`` objects with reference-counted cleanup.

    Locks are created on first use and dropped once no task holds or waits
    on them, so the map does not grow with every document id ever seen.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._refcounts: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._refcounts[key] = self._refcounts.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._refcounts[key] -= 1
            if self._refcounts[key] == 0:
                del self._refcounts[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


async def throttled_gather(
    coros: list[Awaitable[_T]],
    gate: ConcurrencyGate,
    return_exceptions: bool = True,
) -> list[_T | BaseException]:
    """Run awaitables concurrently, at most ``gate.capacity`` at a time.

    Parameters
    ----------
    coros:
        Awaitable objects to execute concurrently.
    gate:
        The gate every awaitable must pass through.
    return_exceptions:
        If ``True``, exceptions are returned in the results list rather
        than being raised.  Mirrors ``asyncio.gather`` semantics.

    Returns
    -------
    list[_T | BaseException]
        Results in the same order as the input coroutines.
    """

    async def _wrapped(coro: Awaitable[_T]) -> _T:
        async with gate:
            return await coro

    results = await asyncio.gather(
        *(_wrapped(c) for c in coros), return_exceptions=return_exceptions
    )
    failures = sum(1 for r in results if isinstance(r, BaseException))
    if failures:
        _logger.debug("throttled_gather_failures", failures=failures, total=len(results))
    return results
