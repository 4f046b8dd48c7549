"""kroki-embed - resolve diagram occurrences into embeddable Kroki renderings.

Features:
- Deterministic payload encoding for Kroki GET URLs
- Remote link, inline markup, data URI, literal text or locally cached file
- At most one network fetch per unique diagram within a conversion run

Usage:
    from kroki_embed import ConversionSession, load_config

    with ConversionSession(load_config()) as session:
        embedding = session.resolve("plantuml", "alice -> bob", "svg")
        print(embedding.value)
"""

from importlib.metadata import version
from typing import Any

__version__ = version("kroki-embed")

__all__ = [
    "ConversionSession",
    "DiagramSource",
    "DiagramType",
    "EmbedOptions",
    "Embedding",
    "KrokiConfig",
    "__version__",
    "load_config",
]


def __getattr__(name: str) -> Any:
    """Lazy imports so the CLI starts without loading httpx eagerly."""
    if name == "ConversionSession":
        from kroki_embed.session import ConversionSession

        return ConversionSession
    if name in ("DiagramSource", "DiagramType", "EmbedOptions", "Embedding"):
        from kroki_embed import models

        return getattr(models, name)
    if name in ("KrokiConfig", "load_config"):
        from kroki_embed import config

        return getattr(config, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
