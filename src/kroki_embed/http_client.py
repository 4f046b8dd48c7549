"""HTTP transport for Kroki GET requests.

Provides pre-configured httpx clients and a single-attempt ``fetch`` with
unified error handling:
- Non-2xx responses raise FetchError carrying the status code
- Transport errors (DNS, connect, timeout) raise FetchError without one
- No retries; a failure is reported once to the caller

Usage:
    from kroki_embed.http_client import create_client, fetch

    with create_client() as client:
        body = fetch("https://kroki.io/plantuml/svg/...", client=client)
"""

from __future__ import annotations

from typing import Any

import httpx

from kroki_embed.errors import FetchError
from kroki_embed.logging import log

# Default timeout for HTTP requests (seconds)
DEFAULT_TIMEOUT = 30.0

USER_AGENT = "kroki-embed/1.0"


def _client_kwargs(timeout: float) -> dict[str, Any]:
    return {
        "timeout": httpx.Timeout(timeout),
        "follow_redirects": True,
        "headers": {"User-Agent": USER_AGENT},
        "limits": httpx.Limits(
            max_keepalive_connections=20,
            max_connections=100,
            keepalive_expiry=30.0,
        ),
    }


def create_client(timeout: float = DEFAULT_TIMEOUT, **kwargs: Any) -> httpx.Client:
    """Create a blocking client with connection pooling.

    Args:
        timeout: Request timeout in seconds
        **kwargs: Extra httpx.Client arguments (e.g. ``transport`` in tests)

    Returns:
        New httpx.Client instance
    """
    return httpx.Client(**{**_client_kwargs(timeout), **kwargs})


def create_async_client(
    timeout: float = DEFAULT_TIMEOUT, **kwargs: Any
) -> httpx.AsyncClient:
    """Create an asyncio client with connection pooling."""
    return httpx.AsyncClient(**{**_client_kwargs(timeout), **kwargs})


def _error_message(e: httpx.HTTPStatusError) -> str:
    message = f"Kroki HTTP error ({e.response.status_code})"
    body = e.response.text[:200].strip()
    return f"{message}: {body}" if body else message


def fetch(url: str, *, client: httpx.Client, timeout: float | None = None) -> bytes:
    """GET a rendered artifact from Kroki.

    Args:
        url: Full Kroki GET URL
        client: Client to send the request with
        timeout: Per-request timeout override

    Returns:
        Response body bytes.

    Raises:
        FetchError: On non-2xx status or transport failure.
    """
    with log("kroki.fetch", url=url) as span:
        try:
            kwargs: dict[str, Any] = {}
            if timeout is not None:
                kwargs["timeout"] = timeout
            response = client.get(url, **kwargs)
            span.add(status=response.status_code)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise FetchError(url, _error_message(e), e.response.status_code) from e
        except httpx.RequestError as e:
            raise FetchError(url, f"Request failed: {e}") from e

        span.add(size=len(response.content))
        return response.content


async def afetch(
    url: str, *, client: httpx.AsyncClient, timeout: float | None = None
) -> bytes:
    """Async variant of ``fetch`` with the same error contract."""
    with log("kroki.fetch", url=url, mode="async") as span:
        try:
            kwargs: dict[str, Any] = {}
            if timeout is not None:
                kwargs["timeout"] = timeout
            response = await client.get(url, **kwargs)
            span.add(status=response.status_code)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise FetchError(url, _error_message(e), e.response.status_code) from e
        except httpx.RequestError as e:
            raise FetchError(url, f"Request failed: {e}") from e

        span.add(size=len(response.content))
        return response.content
