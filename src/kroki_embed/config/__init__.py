"""Configuration for kroki-embed.

Usage:
    from kroki_embed.config import KrokiConfig, load_config

    config = load_config().with_attributes({"kroki-fetch-diagram": ""})
    print(config.server_url)
"""

from kroki_embed.config.loader import (
    ATTRIBUTE_FIELDS,
    KrokiConfig,
    attribute_is_set,
    load_config,
)

__all__ = [
    "ATTRIBUTE_FIELDS",
    "KrokiConfig",
    "attribute_is_set",
    "load_config",
]
