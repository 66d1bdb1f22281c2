"""Shared test fixtures and configuration."""
import base64
from typing import AsyncGenerator, Callable, Iterator

import httpx
import pytest

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00\x00\x00\rIHDR" + b"\x00" * 16
PNG_B64 = base64.b64encode(PNG_BYTES).decode("ascii")

_SETTINGS_ENV_VARS = (
    "OPENAI_API_KEY",
    "OPENAI_BASE_URL",
    "DESCRIBE_MODEL",
    "IMAGE_MODEL",
    "API_BASE_URL",
    "WIZZLETHORPE_TOKEN",
    "WIZZLETHORPE_ACCOUNT",
    "USE_SERVER_MODE",
    "HTTP_TIMEOUT",
)

Handler = Callable[[httpx.Request], httpx.Response]


@pytest.fixture(autouse=True)
def clean_settings_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Start every test from default settings, without a cached instance."""
    from quickbrush.core.config import get_settings

    for var in _SETTINGS_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def png_bytes() -> bytes:
    return PNG_BYTES


@pytest.fixture
def png_b64() -> str:
    return PNG_B64


@pytest.fixture
async def mock_http() -> AsyncGenerator[Callable[[Handler], tuple[httpx.AsyncClient, list]], None]:
    """Factory for httpx clients backed by a MockTransport.

    Returns (client, calls) where calls collects every request sent, with its
    body already read.
    """
    clients: list[httpx.AsyncClient] = []

    def make(handler: Handler) -> tuple[httpx.AsyncClient, list[httpx.Request]]:
        calls: list[httpx.Request] = []

        def recording(request: httpx.Request) -> httpx.Response:
            request.read()
            calls.append(request)
            return handler(request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(recording))
        clients.append(client)
        return client, calls

    yield make
    for client in clients:
        await client.aclose()
