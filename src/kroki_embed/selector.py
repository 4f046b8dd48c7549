"""Embedding strategy selection.

Decides how a diagram is referenced in the output document. Rules are
evaluated in priority order:

    1. txt format     -> literal text (one-shot GET)
    2. opts=inline    -> raw SVG markup (one-shot GET)
    3. opts=interactive -> object container around the reference from 4-6
    4. fetch-diagram  -> cached local file (dedup + disk store)
    5. data-uri       -> base64 data URI (one-shot GET)
    6. default        -> remote Kroki URL, no network access

Only rule 4 goes through the dedup cache and persists to disk.
"""

from __future__ import annotations

import base64
from collections.abc import Awaitable, Callable, Sequence

from loguru import logger

from kroki_embed.logging import log
from kroki_embed.models import (
    DEFAULT_ALT,
    DiagramSource,
    EmbedMode,
    EmbedOptions,
    Embedding,
    RemoteRequest,
)
from kroki_embed.request import build_request
from kroki_embed.store import LocalArtifactStore

TEXT_FORMAT = "txt"

# Formats that can be inlined or wrapped in an interactive object
MARKUP_FORMATS = frozenset({"svg"})


def data_uri(content: bytes, mime_type: str) -> str:
    """Build a ``data:`` URI for binary content."""
    encoded = base64.b64encode(content).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


def _roles(source: DiagramSource, roles: Sequence[str]) -> list[str]:
    return [*roles, f"kroki-format-{source.output_format}", "kroki"]


class EmbeddingSelector:
    """Turns a DiagramSource plus options into an Embedding."""

    def __init__(
        self,
        server_url: str,
        store: LocalArtifactStore,
        fetch: Callable[[str], bytes],
        afetch: Callable[[str], Awaitable[bytes]] | None = None,
    ) -> None:
        """Initialize the selector.

        Args:
            server_url: Kroki server base URL
            store: Artifact store for fetch-and-cache
            fetch: Blocking one-shot GET
            afetch: Async one-shot GET (required for ``aselect``)
        """
        self.server_url = server_url
        self.store = store
        self.fetch = fetch
        self.afetch = afetch

    def _prepare(
        self, source: DiagramSource, options: EmbedOptions
    ) -> tuple[RemoteRequest, bool, bool]:
        request = build_request(self.server_url, source)
        markup = source.output_format in MARKUP_FORMATS
        if (options.inline or options.interactive) and not markup:
            logger.debug(
                f"Ignoring inline/interactive for {source.output_format} output"
            )
        return request, options.inline and markup, options.interactive and markup

    def select(
        self,
        source: DiagramSource,
        options: EmbedOptions,
        roles: Sequence[str] = (),
    ) -> Embedding:
        """Resolve the embedding for a diagram, fetching only when needed.

        Args:
            source: Diagram to embed
            options: Per-occurrence embedding options
            roles: Block roles to carry over to the embedding

        Returns:
            Embedding for the host to place in its output.

        Raises:
            FetchError: If a required fetch fails.
            ArtifactWriteError: If a cached file cannot be written.
        """
        request, inline, interactive = self._prepare(source, options)
        embedding = Embedding(
            mode=EmbedMode.REMOTE,
            value=request.url,
            format=source.output_format,
            alt=options.target_name or DEFAULT_ALT,
            roles=_roles(source, roles),
            mime_type=source.mime_type,
        )

        with log(
            "kroki.select", type=source.type.value, format=source.output_format
        ) as span:
            if source.output_format == TEXT_FORMAT:
                embedding.mode = EmbedMode.LITERAL
                embedding.value = self.fetch(request.url).decode("utf-8", "replace")
            elif inline:
                embedding.mode = EmbedMode.INLINE
                embedding.value = self.fetch(request.url).decode("utf-8", "replace")
            else:
                mode, reference = self._reference(source, request, options)
                embedding.mode = EmbedMode.INTERACTIVE if interactive else mode
                embedding.value = reference

            span.add(mode=embedding.mode.value)
            return embedding

    def _reference(
        self, source: DiagramSource, request: RemoteRequest, options: EmbedOptions
    ) -> tuple[EmbedMode, str]:
        if options.fetch_and_cache:
            artifact = self.store.materialize(source, request, options, self.fetch)
            return EmbedMode.LOCAL, artifact.path
        if options.data_uri:
            content = self.fetch(request.url)
            return EmbedMode.DATA_URI, data_uri(content, source.mime_type)
        return EmbedMode.REMOTE, request.url

    async def aselect(
        self,
        source: DiagramSource,
        options: EmbedOptions,
        roles: Sequence[str] = (),
    ) -> Embedding:
        """Async variant of ``select``."""
        afetch = self.afetch
        if afetch is None:
            raise RuntimeError("EmbeddingSelector was created without afetch")

        request, inline, interactive = self._prepare(source, options)
        embedding = Embedding(
            mode=EmbedMode.REMOTE,
            value=request.url,
            format=source.output_format,
            alt=options.target_name or DEFAULT_ALT,
            roles=_roles(source, roles),
            mime_type=source.mime_type,
        )

        with log(
            "kroki.select",
            type=source.type.value,
            format=source.output_format,
            mode_async=True,
        ) as span:
            if source.output_format == TEXT_FORMAT or inline:
                content = await afetch(request.url)
                embedding.mode = (
                    EmbedMode.LITERAL
                    if source.output_format == TEXT_FORMAT
                    else EmbedMode.INLINE
                )
                embedding.value = content.decode("utf-8", "replace")
            else:
                mode, reference = await self._areference(
                    source, request, options, afetch
                )
                embedding.mode = EmbedMode.INTERACTIVE if interactive else mode
                embedding.value = reference

            span.add(mode=embedding.mode.value)
            return embedding

    async def _areference(
        self,
        source: DiagramSource,
        request: RemoteRequest,
        options: EmbedOptions,
        afetch: Callable[[str], Awaitable[bytes]],
    ) -> tuple[EmbedMode, str]:
        if options.fetch_and_cache:
            artifact = await self.store.amaterialize(
                source, request, options, afetch
            )
            return EmbedMode.LOCAL, artifact.path
        if options.data_uri:
            content = await afetch(request.url)
            return EmbedMode.DATA_URI, data_uri(content, source.mime_type)
        return EmbedMode.REMOTE, request.url
