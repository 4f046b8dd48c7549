"""Local artifact store for fetched diagrams.

Cached files are named after the explicit diagram name when one is given,
otherwise after the SHA-1 of the Kroki request URL:

    <imagesdir>/
    ├── <target-name>.<format>     # explicit name
    └── diag-<sha1(url)>.<format>  # generated name

The presence of the file is the cache record; there is no index. A file
already on disk is reused without any network access, which keeps repeated
conversions offline once every diagram has been fetched.
"""

from __future__ import annotations

import hashlib
import os
import uuid
from collections.abc import Awaitable, Callable
from pathlib import Path

import aiofiles
import aiofiles.os

from kroki_embed.dedup import AsyncFetchDedupCache, FetchDedupCache
from kroki_embed.errors import ArtifactWriteError
from kroki_embed.logging import log
from kroki_embed.models import (
    CachedArtifact,
    CacheKey,
    DiagramSource,
    EmbedOptions,
    RemoteRequest,
)

GENERATED_PREFIX = "diag-"


def artifact_file_name(
    request: RemoteRequest, source: DiagramSource, target_name: str | None = None
) -> str:
    """Compute the cached file name for a diagram.

    Args:
        request: Kroki request for the diagram (hashed when no name is given)
        source: Diagram source (provides the output format)
        target_name: Explicit diagram name, if any

    Returns:
        ``<target_name>.<format>`` or ``diag-<sha1-hex>.<format>``
    """
    if target_name:
        return f"{target_name}.{source.output_format}"
    digest = hashlib.sha1(request.url.encode("utf-8")).hexdigest()
    return f"{GENERATED_PREFIX}{digest}.{source.output_format}"


def _relative_path(images_dir: str, file_name: str) -> str:
    images_dir = images_dir.rstrip("/")
    return f"{images_dir}/{file_name}" if images_dir else file_name


def _temp_path(path: Path) -> Path:
    return path.with_name(f".{path.name}.{uuid.uuid4().hex[:8]}.tmp")


class LocalArtifactStore:
    """Writes each fetched artifact to disk exactly once per conversion run."""

    def __init__(
        self,
        base_dir: Path,
        cache: FetchDedupCache | None = None,
        async_cache: AsyncFetchDedupCache | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            base_dir: Directory relative image paths are resolved against
            cache: Dedup cache for blocking fetches
            async_cache: Dedup cache for asyncio fetches
        """
        self.base_dir = base_dir
        self.cache = cache or FetchDedupCache()
        self.async_cache = async_cache or AsyncFetchDedupCache()

    def locate(
        self, source: DiagramSource, request: RemoteRequest, options: EmbedOptions
    ) -> tuple[CacheKey, str, Path]:
        """Return the dedup key, relative path and absolute path for a diagram."""
        file_name = artifact_file_name(request, source, options.target_name)
        # "img" and "img/" name the same directory and share one key
        images_dir = options.images_dir.rstrip("/")
        key = CacheKey(images_dir, file_name)
        relative = _relative_path(images_dir, file_name)
        return key, relative, self.base_dir / relative

    def materialize(
        self,
        source: DiagramSource,
        request: RemoteRequest,
        options: EmbedOptions,
        fetch_fn: Callable[[str], bytes],
    ) -> CachedArtifact:
        """Ensure the artifact for ``source`` exists on disk.

        Args:
            source: Diagram to materialize
            request: Its Kroki request
            options: Embedding options (target name, images dir)
            fetch_fn: Blocking GET taking the request URL

        Returns:
            CachedArtifact with the relative path to embed.

        Raises:
            FetchError: Propagated unchanged from ``fetch_fn``.
            ArtifactWriteError: If the directory or file cannot be written.
        """
        key, relative, target = self.locate(source, request, options)

        with log("kroki.materialize", path=relative) as span:
            if target.exists():
                span.add(source="disk")
                return CachedArtifact(relative, target.read_bytes(), target)

            fetched = False

            def fetch_and_write() -> bytes:
                nonlocal fetched
                content = fetch_fn(request.url)
                fetched = True
                self._write(target, content)
                return content

            content = self.cache.resolve(key, fetch_and_write)
            if not fetched and not target.exists():
                # Fetched earlier in this run but removed since
                self._write(target, content)

            span.add(source="network" if fetched else "memory", size=len(content))
            return CachedArtifact(relative, content, target, fetched=fetched)

    async def amaterialize(
        self,
        source: DiagramSource,
        request: RemoteRequest,
        options: EmbedOptions,
        fetch_fn: Callable[[str], Awaitable[bytes]],
    ) -> CachedArtifact:
        """Async variant of ``materialize`` using aiofiles for disk I/O."""
        key, relative, target = self.locate(source, request, options)

        with log("kroki.materialize", path=relative, mode="async") as span:
            if await aiofiles.os.path.exists(target):
                span.add(source="disk")
                async with aiofiles.open(target, "rb") as f:
                    return CachedArtifact(relative, await f.read(), target)

            fetched = False

            async def fetch_and_write() -> bytes:
                nonlocal fetched
                content = await fetch_fn(request.url)
                fetched = True
                await self._awrite(target, content)
                return content

            content = await self.async_cache.resolve(key, fetch_and_write)
            if not fetched and not await aiofiles.os.path.exists(target):
                await self._awrite(target, content)

            span.add(source="network" if fetched else "memory", size=len(content))
            return CachedArtifact(relative, content, target, fetched=fetched)

    @staticmethod
    def _write(path: Path, content: bytes) -> None:
        """Write bytes atomically: temp sibling file, then rename."""
        tmp = _temp_path(path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            try:
                tmp.write_bytes(content)
                os.replace(tmp, path)
            finally:
                tmp.unlink(missing_ok=True)
        except OSError as e:
            raise ArtifactWriteError(path, f"Cannot write {path}: {e}") from e

    @staticmethod
    async def _awrite(path: Path, content: bytes) -> None:
        tmp = _temp_path(path)
        try:
            await aiofiles.os.makedirs(path.parent, exist_ok=True)
            try:
                async with aiofiles.open(tmp, "wb") as f:
                    await f.write(content)
                await aiofiles.os.replace(tmp, path)
            finally:
                if await aiofiles.os.path.exists(tmp):
                    await aiofiles.os.remove(tmp)
        except OSError as e:
            raise ArtifactWriteError(path, f"Cannot write {path}: {e}") from e
