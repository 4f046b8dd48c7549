"""Error taxonomy for diagram resolution.

Every failure is scoped to a single diagram occurrence. Callers converting a
whole document catch ``KrokiError`` per occurrence and keep going.
"""

from __future__ import annotations

from pathlib import Path


class KrokiError(Exception):
    """Base class for all diagram resolution failures."""


class EncodingError(KrokiError):
    """Compressing or encoding diagram text failed (internal error)."""


class UnsupportedDiagramTypeError(KrokiError, ValueError):
    """A macro or block name does not map to a known diagram type."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Unsupported diagram type '{name}'")
        self.name = name


class FetchError(KrokiError):
    """The Kroki server could not be reached or answered with non-2xx."""

    def __init__(self, url: str, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class ArtifactWriteError(KrokiError):
    """A cached artifact could not be written to disk."""

    def __init__(self, path: Path, message: str) -> None:
        super().__init__(message)
        self.path = path
