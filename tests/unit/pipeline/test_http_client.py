"""Unit tests for the Kroki HTTP transport."""

from __future__ import annotations

import httpx
import pytest

from kroki_embed.errors import FetchError
from kroki_embed.http_client import USER_AGENT, afetch, create_client, fetch


@pytest.mark.unit
@pytest.mark.core
class TestFetch:
    """Test fetch() error handling."""

    def test_success(self, kroki, kroki_client: httpx.Client) -> None:
        body = fetch("https://kroki.io/plantuml/svg/abc", client=kroki_client)
        assert body.startswith(b"<svg")
        assert kroki.requests == ["https://kroki.io/plantuml/svg/abc"]

    def test_non_2xx_raises(self, kroki, kroki_client: httpx.Client) -> None:
        kroki.status_code = 400
        with pytest.raises(FetchError) as exc_info:
            fetch("https://kroki.io/plantuml/svg/abc", client=kroki_client)
        assert exc_info.value.status_code == 400
        assert exc_info.value.url == "https://kroki.io/plantuml/svg/abc"
        assert "Syntax Error?" in str(exc_info.value)

    def test_transport_error_raises(self) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with httpx.Client(transport=httpx.MockTransport(refuse)) as client:
            with pytest.raises(FetchError) as exc_info:
                fetch("https://kroki.io/plantuml/svg/abc", client=client)
        assert exc_info.value.status_code is None

    def test_single_attempt(self) -> None:
        calls = 0

        def flaky(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(503)

        with httpx.Client(transport=httpx.MockTransport(flaky)) as client:
            with pytest.raises(FetchError, match="503"):
                fetch("https://kroki.io/plantuml/svg/abc", client=client)
        assert calls == 1

    def test_client_defaults(self) -> None:
        with create_client(timeout=5.0) as client:
            assert client.headers["User-Agent"] == USER_AGENT
            assert client.follow_redirects is True
            assert client.timeout.read == 5.0

    @pytest.mark.asyncio
    async def test_async_fetch(self, kroki) -> None:
        async with kroki.async_client() as client:
            body = await afetch("https://kroki.io/vega/svg/abc", client=client)
            kroki.status_code = 404
            with pytest.raises(FetchError):
                await afetch("https://kroki.io/vega/svg/abc", client=client)
        assert body.startswith(b"<svg")
