"""Kroki request builder."""

from __future__ import annotations

from kroki_embed.codec import encode
from kroki_embed.models import DiagramSource, DiagramType, RemoteRequest

__all__ = ["DEFAULT_SERVER_URL", "build_request", "build_url"]

DEFAULT_SERVER_URL = "https://kroki.io"


def build_url(
    service_base: str,
    diagram_type: DiagramType,
    output_format: str,
    payload: str,
) -> str:
    """Compose a Kroki GET URL.

    No escaping is applied: the payload is already URL-safe.

    Args:
        service_base: Kroki server base URL (trailing slash ignored).
        diagram_type: Diagram dialect.
        output_format: Requested rendering (svg, png, txt, ...).
        payload: Encoded diagram text.

    Returns:
        ``<base>/<type>/<format>/<payload>``
    """
    base = service_base.rstrip("/")
    return f"{base}/{diagram_type.path_segment}/{output_format}/{payload}"


def build_request(service_base: str, source: DiagramSource) -> RemoteRequest:
    """Build the Kroki request for a diagram source."""
    url = build_url(
        service_base, source.type, source.output_format, encode(source.text)
    )
    return RemoteRequest(url=url)
