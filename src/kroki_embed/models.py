"""Data model for diagram resolution.

A ``DiagramSource`` is built per diagram occurrence, turned into a
``RemoteRequest`` and finally into an ``Embedding`` the host document
processor can place in its output.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, NamedTuple

import aiofiles

from kroki_embed.errors import UnsupportedDiagramTypeError

if TYPE_CHECKING:
    from kroki_embed.config import KrokiConfig

DEFAULT_ALT = "diagram"

# Output format MIME types
FORMAT_MIME_TYPES = {
    "svg": "image/svg+xml",
    "png": "image/png",
    "jpeg": "image/jpeg",
    "pdf": "application/pdf",
    "txt": "text/plain",
}


class DiagramType(Enum):
    """Diagram dialects supported by the Kroki server."""

    ACTDIAG = "actdiag"
    BLOCKDIAG = "blockdiag"
    BPMN = "bpmn"
    BYTEFIELD = "bytefield"
    C4PLANTUML = "c4plantuml"
    D2 = "d2"
    DBML = "dbml"
    DITAA = "ditaa"
    ERD = "erd"
    EXCALIDRAW = "excalidraw"
    GRAPHVIZ = "graphviz"
    MERMAID = "mermaid"
    NOMNOML = "nomnoml"
    NWDIAG = "nwdiag"
    PACKETDIAG = "packetdiag"
    PIKCHR = "pikchr"
    PLANTUML = "plantuml"
    RACKDIAG = "rackdiag"
    SEQDIAG = "seqdiag"
    STRUCTURIZR = "structurizr"
    SVGBOB = "svgbob"
    SYMBOLATOR = "symbolator"
    TIKZ = "tikz"
    UMLET = "umlet"
    VEGA = "vega"
    VEGALITE = "vegalite"
    WAVEDROM = "wavedrom"
    WIREVIZ = "wireviz"

    @property
    def path_segment(self) -> str:
        """Segment used for this type in the Kroki request path."""
        return _PATH_SEGMENTS[self]

    @classmethod
    def parse(cls, name: str | DiagramType) -> DiagramType:
        """Map a macro or block name to a diagram type.

        Args:
            name: Block/macro name such as "plantuml" or "vegalite".

        Returns:
            The matching DiagramType.

        Raises:
            UnsupportedDiagramTypeError: If the name is not a known dialect.
        """
        if isinstance(name, DiagramType):
            return name
        key = name.strip().lower()
        if key in _ALIASES:
            return _ALIASES[key]
        try:
            return cls(key)
        except ValueError:
            raise UnsupportedDiagramTypeError(name) from None


# Remote path segment per type, listed literally so a renamed member never
# changes request URLs.
_PATH_SEGMENTS: dict[DiagramType, str] = {
    DiagramType.ACTDIAG: "actdiag",
    DiagramType.BLOCKDIAG: "blockdiag",
    DiagramType.BPMN: "bpmn",
    DiagramType.BYTEFIELD: "bytefield",
    DiagramType.C4PLANTUML: "c4plantuml",
    DiagramType.D2: "d2",
    DiagramType.DBML: "dbml",
    DiagramType.DITAA: "ditaa",
    DiagramType.ERD: "erd",
    DiagramType.EXCALIDRAW: "excalidraw",
    DiagramType.GRAPHVIZ: "graphviz",
    DiagramType.MERMAID: "mermaid",
    DiagramType.NOMNOML: "nomnoml",
    DiagramType.NWDIAG: "nwdiag",
    DiagramType.PACKETDIAG: "packetdiag",
    DiagramType.PIKCHR: "pikchr",
    DiagramType.PLANTUML: "plantuml",
    DiagramType.RACKDIAG: "rackdiag",
    DiagramType.SEQDIAG: "seqdiag",
    DiagramType.STRUCTURIZR: "structurizr",
    DiagramType.SVGBOB: "svgbob",
    DiagramType.SYMBOLATOR: "symbolator",
    DiagramType.TIKZ: "tikz",
    DiagramType.UMLET: "umlet",
    DiagramType.VEGA: "vega",
    DiagramType.VEGALITE: "vegalite",
    DiagramType.WAVEDROM: "wavedrom",
    DiagramType.WIREVIZ: "wireviz",
}

# Alternate block names accepted by Kroki for the same dialect
_ALIASES: dict[str, DiagramType] = {
    "dot": DiagramType.GRAPHVIZ,
}


@dataclass(frozen=True)
class DiagramSource:
    """One diagram occurrence: dialect, opaque text and requested format."""

    type: DiagramType
    text: bytes
    output_format: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "output_format", self.output_format.strip().lower())

    @classmethod
    def from_text(
        cls, diagram_type: str | DiagramType, text: str, output_format: str
    ) -> DiagramSource:
        """Create a source from inline block text (UTF-8 encoded)."""
        return cls(DiagramType.parse(diagram_type), text.encode("utf-8"), output_format)

    @classmethod
    def from_file(
        cls, diagram_type: str | DiagramType, path: Path | str, output_format: str
    ) -> DiagramSource:
        """Create a source from a diagram file reference.

        The file bytes are used verbatim.

        Raises:
            UnsupportedDiagramTypeError: If the type is unknown (checked first).
            FileNotFoundError: If the referenced file does not exist.
        """
        parsed = DiagramType.parse(diagram_type)
        return cls(parsed, Path(path).read_bytes(), output_format)

    @classmethod
    async def afrom_file(
        cls, diagram_type: str | DiagramType, path: Path | str, output_format: str
    ) -> DiagramSource:
        """Async variant of ``from_file`` reading through aiofiles."""
        parsed = DiagramType.parse(diagram_type)
        async with aiofiles.open(path, "rb") as f:
            return cls(parsed, await f.read(), output_format)

    @property
    def mime_type(self) -> str:
        return FORMAT_MIME_TYPES.get(self.output_format, "application/octet-stream")


def parse_opts(opts: str | Iterable[str] | None) -> set[str]:
    """Parse an ``opts`` block attribute ("inline,interactive") into a set."""
    if opts is None:
        return set()
    items = opts.split(",") if isinstance(opts, str) else opts
    return {item.strip().lower() for item in items if item and item.strip()}


@dataclass
class EmbedOptions:
    """Per-occurrence embedding options supplied by the host."""

    fetch_and_cache: bool = False
    inline: bool = False
    interactive: bool = False
    target_name: str | None = None
    images_dir: str = ""
    data_uri: bool = False

    @classmethod
    def from_config(
        cls,
        config: KrokiConfig,
        *,
        opts: str | Iterable[str] | None = None,
        target_name: str | None = None,
    ) -> EmbedOptions:
        """Combine document-level configuration with per-occurrence options.

        Args:
            config: Effective configuration (attributes already applied).
            opts: Block ``opts`` attribute, e.g. "inline" or "interactive".
            target_name: Explicit diagram name (third positional attribute).
        """
        flags = parse_opts(opts)
        return cls(
            fetch_and_cache=config.fetch_diagram,
            inline="inline" in flags,
            interactive="interactive" in flags,
            target_name=target_name or None,
            images_dir=config.imagesdir,
            data_uri=config.data_uri_enabled,
        )


@dataclass(frozen=True)
class RemoteRequest:
    """A fully built Kroki GET request."""

    url: str


class CacheKey(NamedTuple):
    """Dedup key for a cached artifact: target directory and file name."""

    images_dir: str
    file_name: str


@dataclass
class CachedArtifact:
    """A diagram artifact present on disk."""

    path: str  # relative path, as embedded in the document
    content: bytes
    absolute_path: Path | None = None
    fetched: bool = False


class EmbedMode(Enum):
    """How a resolved diagram is referenced in the output document."""

    REMOTE = "remote"
    LOCAL = "local"
    DATA_URI = "data_uri"
    INLINE = "inline"
    INTERACTIVE = "interactive"
    LITERAL = "literal"


@dataclass
class Embedding:
    """Result handed back to the host document processor."""

    mode: EmbedMode
    value: str  # URL, path, data URI, inline markup or literal text
    format: str
    alt: str = DEFAULT_ALT
    roles: list[str] = field(default_factory=list)
    mime_type: str = ""

    @property
    def is_image(self) -> bool:
        """True when the host should emit an image reference."""
        return self.mode in (EmbedMode.REMOTE, EmbedMode.LOCAL, EmbedMode.DATA_URI)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "mode": self.mode.value,
            "value": self.value,
            "format": self.format,
            "alt": self.alt,
            "roles": self.roles,
            "mime_type": self.mime_type,
        }
