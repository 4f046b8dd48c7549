"""Conversion session: the unit of state for one document conversion.

A session owns the dedup caches, the artifact store and the HTTP clients.
Nothing is shared between sessions, so several conversions can run side by
side (tests, a server converting documents concurrently) without seeing each
other's in-flight fetches.

Example:
    with ConversionSession(load_config(), base_dir=Path("docs")) as session:
        embedding = session.resolve(
            "plantuml",
            "alice -> bob",
            "svg",
            attributes={"kroki-fetch-diagram": "", "imagesdir": "images"},
        )
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import httpx
from loguru import logger

from kroki_embed.config import KrokiConfig
from kroki_embed.dedup import AsyncFetchDedupCache, FetchDedupCache
from kroki_embed.errors import KrokiError
from kroki_embed.http_client import afetch, create_async_client, create_client, fetch
from kroki_embed.logging import log
from kroki_embed.models import DiagramSource, DiagramType, EmbedOptions, Embedding
from kroki_embed.paths import expand_path, get_effective_cwd
from kroki_embed.selector import EmbeddingSelector
from kroki_embed.store import LocalArtifactStore


@dataclass
class DiagramOccurrence:
    """One diagram found by the host while converting a document."""

    type: str
    text: str | None = None
    path: str | None = None  # diagram file reference (block macro target)
    format: str | None = None
    target_name: str | None = None
    opts: str | None = None
    roles: list[str] = field(default_factory=list)


@dataclass
class ResolutionResult:
    """Outcome of resolving one occurrence; exactly one of embedding/error."""

    occurrence: DiagramOccurrence
    embedding: Embedding | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ConversionSession:
    """Resolves diagram occurrences for one conversion run."""

    def __init__(
        self,
        config: KrokiConfig | None = None,
        *,
        base_dir: Path | str | None = None,
        client: httpx.Client | None = None,
        async_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the session.

        Args:
            config: Document-level configuration (defaults if omitted)
            base_dir: Directory for relative diagram files and imagesdir
            client: HTTP client to use (created lazily if omitted)
            async_client: Async HTTP client to use (created lazily if omitted)
        """
        self.config = config or KrokiConfig()
        self.base_dir = expand_path(base_dir) if base_dir else get_effective_cwd()
        self.cache = FetchDedupCache()
        self.async_cache = AsyncFetchDedupCache()
        self.store = LocalArtifactStore(self.base_dir, self.cache, self.async_cache)
        self._client = client
        self._async_client = async_client
        self._owns_client = client is None
        self._owns_async_client = async_client is None

    # ---- HTTP ----

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = create_client(self.config.timeout)
        return self._client

    @property
    def async_client(self) -> httpx.AsyncClient:
        if self._async_client is None:
            self._async_client = create_async_client(self.config.timeout)
        return self._async_client

    def _fetch(self, url: str) -> bytes:
        return fetch(url, client=self.client)

    async def _afetch(self, url: str) -> bytes:
        return await afetch(url, client=self.async_client)

    def close(self) -> None:
        """Close the blocking client if this session created it."""
        if self._owns_client and self._client is not None:
            self._client.close()
            self._client = None

    async def aclose(self) -> None:
        """Close every client this session created."""
        self.close()
        if self._owns_async_client and self._async_client is not None:
            await self._async_client.aclose()
            self._async_client = None

    def __enter__(self) -> ConversionSession:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    async def __aenter__(self) -> ConversionSession:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # ---- Resolution ----

    def _selector(self, config: KrokiConfig) -> EmbeddingSelector:
        return EmbeddingSelector(config.server_url, self.store, self._fetch, self._afetch)

    def _prepare(
        self,
        diagram_type: str | DiagramType,
        output_format: str | None,
        target_name: str | None,
        opts: str | Iterable[str] | None,
        attributes: Mapping[str, Any] | None,
    ) -> tuple[KrokiConfig, DiagramType, str, EmbedOptions]:
        # Unknown types fail here, before any file or network access
        parsed = DiagramType.parse(diagram_type)
        config = self.config.with_attributes(attributes) if attributes else self.config
        fmt = output_format or config.default_format
        options = EmbedOptions.from_config(config, opts=opts, target_name=target_name)
        return config, parsed, fmt, options

    @staticmethod
    def _inline_source(
        diagram_type: DiagramType, text: str | bytes | None, fmt: str
    ) -> DiagramSource:
        if isinstance(text, bytes):
            return DiagramSource(diagram_type, text, fmt)
        if text is not None:
            return DiagramSource.from_text(diagram_type, text, fmt)
        raise ValueError("Either text or path must be provided")

    def resolve(
        self,
        diagram_type: str | DiagramType,
        text: str | bytes | None = None,
        output_format: str | None = None,
        *,
        path: Path | str | None = None,
        target_name: str | None = None,
        opts: str | Iterable[str] | None = None,
        roles: Sequence[str] = (),
        attributes: Mapping[str, Any] | None = None,
    ) -> Embedding:
        """Resolve one diagram occurrence into an embedding.

        Args:
            diagram_type: Block/macro name (e.g. "plantuml")
            text: Inline diagram text (mutually exclusive with path)
            output_format: svg, png, txt, ... (default from config)
            path: Diagram file reference, relative to base_dir
            target_name: Explicit diagram name
            opts: Block opts ("inline", "interactive")
            roles: Block roles
            attributes: Document attributes overriding the session config

        Returns:
            Embedding for the host document.

        Raises:
            UnsupportedDiagramTypeError: For unknown diagram types.
            FetchError: If a required fetch fails.
            ArtifactWriteError: If a cached file cannot be written.
        """
        config, parsed, fmt, options = self._prepare(
            diagram_type, output_format, target_name, opts, attributes
        )
        if path is not None:
            source = DiagramSource.from_file(parsed, expand_path(path, self.base_dir), fmt)
        else:
            source = self._inline_source(parsed, text, fmt)

        with log("kroki.resolve", type=source.type.value, format=source.output_format):
            return self._selector(config).select(source, options, roles)

    async def aresolve(
        self,
        diagram_type: str | DiagramType,
        text: str | bytes | None = None,
        output_format: str | None = None,
        *,
        path: Path | str | None = None,
        target_name: str | None = None,
        opts: str | Iterable[str] | None = None,
        roles: Sequence[str] = (),
        attributes: Mapping[str, Any] | None = None,
    ) -> Embedding:
        """Async variant of ``resolve``."""
        config, parsed, fmt, options = self._prepare(
            diagram_type, output_format, target_name, opts, attributes
        )
        if path is not None:
            source = await DiagramSource.afrom_file(
                parsed, expand_path(path, self.base_dir), fmt
            )
        else:
            source = self._inline_source(parsed, text, fmt)

        with log("kroki.resolve", type=source.type.value, format=source.output_format):
            return await self._selector(config).aselect(source, options, roles)

    def _resolve_occurrence(
        self, occurrence: DiagramOccurrence, attributes: Mapping[str, Any] | None
    ) -> Embedding:
        return self.resolve(
            occurrence.type,
            occurrence.text,
            occurrence.format,
            path=occurrence.path,
            target_name=occurrence.target_name,
            opts=occurrence.opts,
            roles=occurrence.roles,
            attributes=attributes,
        )

    def resolve_all(
        self,
        occurrences: Iterable[DiagramOccurrence],
        attributes: Mapping[str, Any] | None = None,
    ) -> list[ResolutionResult]:
        """Resolve occurrences in document order.

        A failing occurrence is recorded in its result and does not stop
        the others.
        """
        results: list[ResolutionResult] = []
        for occurrence in occurrences:
            try:
                embedding = self._resolve_occurrence(occurrence, attributes)
                results.append(ResolutionResult(occurrence, embedding=embedding))
            except (KrokiError, OSError, ValueError) as e:
                logger.error(f"Failed to resolve {occurrence.type} diagram: {e}")
                results.append(ResolutionResult(occurrence, error=e))
        return results

    async def aresolve_all(
        self,
        occurrences: Iterable[DiagramOccurrence],
        attributes: Mapping[str, Any] | None = None,
    ) -> list[ResolutionResult]:
        """Resolve occurrences concurrently; results keep document order."""

        async def _one(occurrence: DiagramOccurrence) -> ResolutionResult:
            try:
                embedding = await self.aresolve(
                    occurrence.type,
                    occurrence.text,
                    occurrence.format,
                    path=occurrence.path,
                    target_name=occurrence.target_name,
                    opts=occurrence.opts,
                    roles=occurrence.roles,
                    attributes=attributes,
                )
                return ResolutionResult(occurrence, embedding=embedding)
            except (KrokiError, OSError, ValueError) as e:
                logger.error(f"Failed to resolve {occurrence.type} diagram: {e}")
                return ResolutionResult(occurrence, error=e)

        return list(await asyncio.gather(*(_one(o) for o in occurrences)))
