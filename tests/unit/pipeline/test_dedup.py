"""Unit tests for the fetch dedup caches."""

from __future__ import annotations

import asyncio
import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from kroki_embed.dedup import AsyncFetchDedupCache, FetchDedupCache
from kroki_embed.errors import FetchError


@pytest.mark.unit
@pytest.mark.core
class TestFetchDedupCache:
    """Test the thread-safe cache."""

    def test_fetches_once_per_key(self) -> None:
        cache = FetchDedupCache()
        calls: list[str] = []

        def fetch() -> bytes:
            calls.append("x")
            return b"content"

        assert cache.resolve("k", fetch) == b"content"
        assert cache.resolve("k", fetch) == b"content"
        assert calls == ["x"]
        assert cache.fetch_count == 1
        assert "k" in cache
        assert cache.get("k") == b"content"

    def test_distinct_keys_fetch_separately(self) -> None:
        cache = FetchDedupCache()
        assert cache.resolve("a", lambda: b"a") == b"a"
        assert cache.resolve("b", lambda: b"b") == b"b"
        assert len(cache) == 2
        assert cache.fetch_count == 2

    def test_concurrent_callers_share_one_fetch(self) -> None:
        cache = FetchDedupCache()
        started = threading.Event()
        release = threading.Event()
        calls = 0

        def slow_fetch() -> bytes:
            nonlocal calls
            calls += 1
            started.set()
            release.wait(timeout=5)
            return b"shared"

        with ThreadPoolExecutor(max_workers=8) as pool:
            first = pool.submit(cache.resolve, "k", slow_fetch)
            assert started.wait(timeout=5)
            others = [pool.submit(cache.resolve, "k", slow_fetch) for _ in range(7)]
            time.sleep(0.05)
            release.set()
            results = [first.result(timeout=5)] + [f.result(timeout=5) for f in others]

        assert results == [b"shared"] * 8
        assert calls == 1

    def test_failure_reaches_waiters_and_evicts(self) -> None:
        cache = FetchDedupCache()
        started = threading.Event()
        release = threading.Event()

        def failing_fetch() -> bytes:
            started.set()
            release.wait(timeout=5)
            raise FetchError("https://kroki.io/x", "boom", 500)

        with ThreadPoolExecutor(max_workers=2) as pool:
            first = pool.submit(cache.resolve, "k", failing_fetch)
            assert started.wait(timeout=5)
            waiter = pool.submit(cache.resolve, "k", failing_fetch)
            time.sleep(0.05)
            release.set()
            with pytest.raises(FetchError):
                first.result(timeout=5)
            with pytest.raises(FetchError):
                waiter.result(timeout=5)

        assert "k" not in cache
        assert cache.get("k") is None
        # A later occurrence can retry
        assert cache.resolve("k", lambda: b"ok") == b"ok"

    def test_invalidate_and_clear(self) -> None:
        cache = FetchDedupCache()
        cache.resolve("k", lambda: b"1")
        cache.invalidate("k")
        assert cache.resolve("k", lambda: b"2") == b"2"
        cache.clear()
        assert len(cache) == 0


@pytest.mark.unit
@pytest.mark.core
class TestAsyncFetchDedupCache:
    """Test the asyncio cache."""

    @pytest.mark.asyncio
    async def test_concurrent_tasks_share_one_fetch(self) -> None:
        cache = AsyncFetchDedupCache()
        calls = 0

        async def fetch() -> bytes:
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            return b"svg"

        results = await asyncio.gather(*(cache.resolve("k", fetch) for _ in range(5)))

        assert results == [b"svg"] * 5
        assert calls == 1
        assert cache.fetch_count == 1
        assert cache.get("k") == b"svg"

    @pytest.mark.asyncio
    async def test_failure_propagates_and_evicts(self) -> None:
        cache = AsyncFetchDedupCache()

        async def fetch() -> bytes:
            await asyncio.sleep(0.01)
            raise FetchError("https://kroki.io/x", "boom", 400)

        results = await asyncio.gather(
            cache.resolve("k", fetch), cache.resolve("k", fetch), return_exceptions=True
        )

        assert all(isinstance(r, FetchError) for r in results)
        assert "k" not in cache

        async def ok() -> bytes:
            return b"ok"

        assert await cache.resolve("k", ok) == b"ok"

    @pytest.mark.asyncio
    async def test_sessions_are_isolated(self) -> None:
        first, second = AsyncFetchDedupCache(), AsyncFetchDedupCache()

        async def fetch() -> bytes:
            return b"x"

        await first.resolve("k", fetch)
        assert "k" not in second
