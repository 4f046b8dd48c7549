"""Shared fixtures: an in-process stand-in for the Kroki server."""

from __future__ import annotations

import threading
from collections.abc import Generator

import httpx
import pytest

SVG_TEMPLATE = '<svg xmlns="http://www.w3.org/2000/svg"><!-- {path} --></svg>'


class FakeKroki:
    """Records GET requests and answers like Kroki would."""

    def __init__(self) -> None:
        self.requests: list[str] = []
        self.status_code = 200
        self.text_body = "     ,---.\n     |Bob|\n     `---'"
        self._lock = threading.Lock()

    def handler(self, request: httpx.Request) -> httpx.Response:
        with self._lock:
            self.requests.append(str(request.url))
        if self.status_code != 200:
            return httpx.Response(self.status_code, text="Syntax Error?")

        output_format = request.url.path.split("/")[2]
        if output_format == "txt":
            return httpx.Response(200, text=self.text_body)
        if output_format == "png":
            return httpx.Response(200, content=b"\x89PNG\r\n\x1a\nfake")
        return httpx.Response(200, text=SVG_TEMPLATE.format(path=request.url.path))

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def client(self) -> httpx.Client:
        return httpx.Client(transport=self.transport)

    def async_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self.transport)

    def count(self, url: str | None = None) -> int:
        if url is None:
            return len(self.requests)
        return self.requests.count(url)


@pytest.fixture
def kroki() -> FakeKroki:
    """A fake Kroki server."""
    return FakeKroki()


@pytest.fixture
def kroki_client(kroki: FakeKroki) -> Generator[httpx.Client, None, None]:
    """Blocking httpx client wired to the fake server."""
    client = kroki.client()
    yield client
    client.close()
