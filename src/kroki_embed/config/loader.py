"""YAML configuration loading for kroki-embed.

Loads kroki-embed.yaml with document-level rendering settings.

Example kroki-embed.yaml:

    version: 1
    default_format: svg
    fetch_diagram: true
    imagesdir: images

    # Use !include to share the server between projects
    server_url: !include kroki-server.yaml

Host document attributes (``kroki-fetch-diagram``, ``imagesdir``, ...) are
layered on top with ``KrokiConfig.with_attributes``.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from loguru import logger
from pydantic import BaseModel, Field, field_validator

from kroki_embed.paths import get_project_config_path


# Custom YAML Loader with !include support
class IncludeLoader(yaml.SafeLoader):
    """YAML loader that supports !include tag for modular configs.

    Paths are resolved relative to the including file.
    """

    _base_path: Path | None = None

    @classmethod
    def with_base_path(cls, base_path: Path) -> type[IncludeLoader]:
        """Create a loader class with a specific base path for includes."""

        class BoundLoader(cls):  # type: ignore[valid-type,misc]
            _base_path = base_path

        return BoundLoader


def _include_constructor(loader: IncludeLoader, node: yaml.Node) -> Any:
    """Handle !include YAML tag by loading the referenced file."""
    include_path = loader.construct_scalar(node)  # type: ignore[arg-type]

    if loader._base_path is None:
        raise yaml.YAMLError(f"Cannot resolve !include path: {include_path}")

    resolved = (loader._base_path / include_path).resolve()

    if not resolved.exists():
        logger.warning(f"!include file not found: {resolved}")
        return None

    try:
        with resolved.open() as f:
            bound_loader = IncludeLoader.with_base_path(resolved.parent)
            return yaml.load(f, Loader=bound_loader)
    except yaml.YAMLError as e:
        raise yaml.YAMLError(f"Error loading !include {include_path}: {e}") from e


IncludeLoader.add_constructor("!include", _include_constructor)

# Current config schema version
CURRENT_CONFIG_VERSION = 1

CONFIG_ENV_VAR = "KROKI_EMBED_CONFIG"

# Levels loguru knows out of the box
LOG_LEVELS = ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL")

# Host document attribute -> config field
ATTRIBUTE_FIELDS = {
    "kroki-server-url": "server_url",
    "kroki-default-format": "default_format",
    "kroki-fetch-diagram": "fetch_diagram",
    "data-uri": "data_uri",
    "allow-uri-read": "allow_uri_read",
    "imagesdir": "imagesdir",
}

BOOLEAN_ATTRIBUTES = frozenset(
    {"kroki-fetch-diagram", "data-uri", "allow-uri-read"}
)


def attribute_is_set(value: Any) -> bool:
    """Document attribute semantics: any value but None/False means set.

    An attribute defined with no value (``:data-uri:``) arrives as an empty
    string and counts as set.
    """
    return value is not None and value is not False


class KrokiConfig(BaseModel):
    """Document-level configuration for diagram resolution."""

    version: int = Field(
        default=CURRENT_CONFIG_VERSION,
        ge=1,
        description="Config schema version",
    )
    server_url: str = Field(
        default="https://kroki.io",
        description="Kroki server base URL",
    )
    default_format: str = Field(
        default="svg",
        description="Output format when a diagram does not specify one",
    )
    fetch_diagram: bool = Field(
        default=False,
        description="Fetch diagrams and cache them under imagesdir",
    )
    data_uri: bool = Field(
        default=False,
        description="Embed images as data URIs (requires allow_uri_read)",
    )
    allow_uri_read: bool = Field(
        default=False,
        description="Allow reading remote URIs during conversion",
    )
    imagesdir: str = Field(
        default="",
        description="Directory for cached diagrams, relative to the base dir",
    )
    timeout: float = Field(
        default=30.0,
        ge=1.0,
        le=300.0,
        description="HTTP request timeout in seconds",
    )
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR)",
    )

    @field_validator("server_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        value = value.strip().rstrip("/")
        if not value.startswith(("http://", "https://")):
            raise ValueError(f"server_url must be an http(s) URL, got '{value}'")
        return value

    @field_validator("default_format")
    @classmethod
    def _lower_format(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in LOG_LEVELS:
            raise ValueError(
                f"log_level must be one of {', '.join(LOG_LEVELS)}, got '{value}'"
            )
        return level

    @property
    def data_uri_enabled(self) -> bool:
        """Data URI embedding needs both data-uri and allow-uri-read."""
        return self.data_uri and self.allow_uri_read

    def with_attributes(self, attributes: Mapping[str, Any]) -> KrokiConfig:
        """Overlay host document attributes onto this config.

        Unrecognized attributes are ignored. Returns a new instance.

        Args:
            attributes: Document attributes, e.g. {"kroki-fetch-diagram": ""}

        Returns:
            Updated KrokiConfig
        """
        updates: dict[str, Any] = {}
        for name, field_name in ATTRIBUTE_FIELDS.items():
            if name not in attributes:
                continue
            value = attributes[name]
            if name in BOOLEAN_ATTRIBUTES:
                updates[field_name] = attribute_is_set(value)
            elif value is not None:
                updates[field_name] = str(value)

        if not updates:
            return self
        return KrokiConfig.model_validate({**self.model_dump(), **updates})


def _resolve_config_path(config_path: Path | str | None) -> Path | None:
    """Resolve config path from explicit path, env var, or default location.

    Resolution order:
    1. Explicit config_path if provided
    2. KROKI_EMBED_CONFIG env var
    3. cwd/.kroki/kroki-embed.yaml
    4. None (use defaults)
    """
    if config_path is not None:
        return Path(config_path)

    env_config = os.getenv(CONFIG_ENV_VAR)
    if env_config:
        return Path(env_config)

    project_config = get_project_config_path()
    if project_config.exists():
        return project_config

    return None


def _load_yaml_file(config_path: Path) -> dict[str, Any]:
    """Load and parse YAML file with error handling.

    Raises:
        FileNotFoundError: If file doesn't exist.
        ValueError: If YAML is invalid or file can't be read.
    """
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    try:
        with config_path.open() as f:
            bound_loader = IncludeLoader.with_base_path(config_path.parent)
            raw_data = yaml.load(f, Loader=bound_loader)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {config_path}: {e}") from e
    except OSError as e:
        raise ValueError(f"Error reading {config_path}: {e}") from e

    if raw_data is None:
        return {}
    if not isinstance(raw_data, dict):
        raise ValueError(f"Config root must be a mapping in {config_path}")
    return raw_data


def _validate_version(data: dict[str, Any], config_path: Path) -> None:
    """Validate config version and set default if missing.

    Raises:
        ValueError: If version is unsupported.
    """
    config_version = data.get("version")
    if config_version is None:
        logger.warning(
            f"Config file missing 'version' field, assuming version 1. "
            f"Add 'version: {CURRENT_CONFIG_VERSION}' to {config_path}"
        )
        data["version"] = 1
    elif isinstance(config_version, int) and config_version > CURRENT_CONFIG_VERSION:
        raise ValueError(
            f"Config version {config_version} is not supported. "
            f"Maximum supported version is {CURRENT_CONFIG_VERSION}."
        )


def load_config(config_path: Path | str | None = None) -> KrokiConfig:
    """Load kroki-embed configuration from YAML file.

    Args:
        config_path: Path to config file (overrides resolution)

    Returns:
        Validated KrokiConfig

    Raises:
        FileNotFoundError: If explicit config path doesn't exist
        ValueError: If YAML is invalid or validation fails
    """
    resolved_path = _resolve_config_path(config_path)

    if resolved_path is None:
        logger.debug("No config file found, using defaults")
        return KrokiConfig()

    logger.debug(f"Loading config from {resolved_path}")

    raw_data = _load_yaml_file(resolved_path)
    _validate_version(raw_data, resolved_path)

    try:
        config = KrokiConfig.model_validate(raw_data)
    except Exception as e:
        raise ValueError(f"Invalid configuration in {resolved_path}: {e}") from e

    logger.info(f"Config loaded: version {config.version}")
    return config

