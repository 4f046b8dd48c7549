"""Fetch deduplication for one conversion run.

Guarantees that, for a given key, the wrapped fetch runs at most once while
its result is pending or cached. Concurrent callers for the same key wait on
the first caller's pending handle and receive its result or its exception.
A failed fetch is evicted so a later occurrence can try again.

Two flavours share the same contract:
- FetchDedupCache: thread-safe, for blocking fetches
- AsyncFetchDedupCache: for coroutines on a single asyncio event loop
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Awaitable, Callable, Hashable
from concurrent.futures import Future

from loguru import logger


class FetchDedupCache:
    """Thread-safe at-most-once fetch registry."""

    def __init__(self) -> None:
        self._entries: dict[Hashable, Future[bytes]] = {}
        self._lock = threading.Lock()
        self.fetch_count = 0

    def resolve(self, key: Hashable, fetch_fn: Callable[[], bytes]) -> bytes:
        """Return the content for ``key``, fetching it only if needed.

        Args:
            key: Dedup key (URL or CacheKey)
            fetch_fn: Blocking callable performing the network fetch

        Returns:
            Fetched (or previously fetched) content.

        Raises:
            Exception: Whatever ``fetch_fn`` raised, for the first caller and
                every caller waiting on the same key.
        """
        with self._lock:
            future = self._entries.get(key)
            owner = future is None
            if future is None:
                future = Future()
                self._entries[key] = future
                self.fetch_count += 1

        if not owner:
            logger.debug(f"Dedup hit for {key}, waiting on pending fetch")
            return future.result()

        try:
            content = fetch_fn()
        except BaseException as e:
            self._evict(key, future)
            future.set_exception(e)
            raise

        future.set_result(content)
        return content

    def _evict(self, key: Hashable, future: Future[bytes]) -> None:
        with self._lock:
            if self._entries.get(key) is future:
                del self._entries[key]

    def get(self, key: Hashable) -> bytes | None:
        """Return completed content for ``key`` without fetching."""
        with self._lock:
            future = self._entries.get(key)
        if future is None or not future.done() or future.exception() is not None:
            return None
        return future.result()

    def invalidate(self, key: Hashable) -> None:
        """Forget ``key`` so the next resolve fetches again."""
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class AsyncFetchDedupCache:
    """At-most-once fetch registry for a cooperative asyncio scheduler.

    Check-and-insert happens without an intervening ``await``, so it is
    atomic with respect to other tasks on the same loop.
    """

    def __init__(self) -> None:
        self._entries: dict[Hashable, asyncio.Future[bytes]] = {}
        self.fetch_count = 0

    async def resolve(
        self, key: Hashable, fetch_fn: Callable[[], Awaitable[bytes]]
    ) -> bytes:
        """Async variant of ``FetchDedupCache.resolve``."""
        future = self._entries.get(key)
        if future is not None:
            logger.debug(f"Dedup hit for {key}, awaiting pending fetch")
            # A cancelled waiter must not cancel the shared fetch
            return await asyncio.shield(future)

        future = asyncio.get_running_loop().create_future()
        self._entries[key] = future
        self.fetch_count += 1

        try:
            content = await fetch_fn()
        except BaseException as e:
            if self._entries.get(key) is future:
                del self._entries[key]
            if isinstance(e, asyncio.CancelledError):
                future.cancel()
            else:
                future.set_exception(e)
                # Mark retrieved; waiters (if any) still receive it
                future.exception()
            raise

        future.set_result(content)
        return content

    def get(self, key: Hashable) -> bytes | None:
        """Return completed content for ``key`` without fetching."""
        future = self._entries.get(key)
        if future is None or not future.done() or future.cancelled():
            return None
        if future.exception() is not None:
            return None
        return future.result()

    def invalidate(self, key: Hashable) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
