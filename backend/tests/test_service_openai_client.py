"""Tests for the direct OpenAI client using httpx.MockTransport."""
import json
from typing import Callable

import httpx
import pytest

from quickbrush.core.errors import (
    AuthorizationError,
    EmptyDescriptionError,
    MalformedResponseError,
    ProviderError,
    TransientNetworkError,
)
from quickbrush.models.generation import ReferenceImage
from quickbrush.services.openai_client import OpenAIClient, build_description_document

BASE_URL = "https://api.test/v1"


def _chat_response(text: str) -> httpx.Response:
    return httpx.Response(200, json={"choices": [{"message": {"content": text}}]})


def _image_response(b64: str) -> httpx.Response:
    return httpx.Response(200, json={"data": [{"b64_json": b64}]})


def _client(http_client: httpx.AsyncClient) -> OpenAIClient:
    return OpenAIClient(api_key="sk-test", http_client=http_client, base_url=BASE_URL)


class TestBuildDescriptionDocument:
    def test_fields_and_priority(self) -> None:
        doc = build_description_document("journal text", "refs", "wear a red cloak")
        props = doc["properties"]
        assert props["text"]["value"] == "journal text"
        assert props["reference_images_description"]["value"] == "refs"
        assert props["prompt"]["value"] == "wear a red cloak"
        assert props["prompt"]["priority"] == "highest"
        assert "priority" not in props["text"]


class TestDescribe:
    """Tests for describe() and describe_references()."""

    async def test_describe_returns_stripped_text(self, mock_http: Callable) -> None:
        http_client, calls = mock_http(lambda req: _chat_response("  A tall elf.  "))

        result = await _client(http_client).describe(
            system_prompt="system",
            subject_text="An elf",
            context_prompt="Focus on armor",
            reference_description="No reference images provided.",
        )

        assert result.text == "A tall elf."
        request = calls[0]
        assert str(request.url) == f"{BASE_URL}/chat/completions"
        assert request.headers["Authorization"] == "Bearer sk-test"
        body = json.loads(request.content)
        assert body["model"] == "gpt-4o"
        assert body["messages"][0] == {"role": "system", "content": "system"}
        document = json.loads(body["messages"][1]["content"][0]["text"])
        assert document["properties"]["prompt"]["value"] == "Focus on armor"
        assert document["properties"]["text"]["value"] == "An elf"

    async def test_blank_description_raises(self, mock_http: Callable) -> None:
        http_client, _ = mock_http(lambda req: _chat_response("   "))

        with pytest.raises(EmptyDescriptionError, match="Parsed description is empty."):
            await _client(http_client).describe("s", "t", "c", "r")

    async def test_missing_choices_raises(self, mock_http: Callable) -> None:
        http_client, _ = mock_http(lambda req: httpx.Response(200, json={"choices": []}))

        with pytest.raises(MalformedResponseError):
            await _client(http_client).describe("s", "t", "c", "r")

    async def test_describe_references_sends_each_image(
        self, mock_http: Callable, png_bytes: bytes
    ) -> None:
        http_client, calls = mock_http(lambda req: _chat_response("A red dragon."))
        refs = [ReferenceImage(data=png_bytes), ReferenceImage(data=png_bytes)]

        text = await _client(http_client).describe_references(refs)

        assert text == "A red dragon."
        content = json.loads(calls[0].content)["messages"][1]["content"]
        image_parts = [part for part in content if part["type"] == "image_url"]
        assert len(image_parts) == 2
        assert image_parts[0]["image_url"]["url"].startswith("data:image/png;base64,")


class TestSynthesizeImage:
    """Tests for synthesize_image() request encoding."""

    async def test_no_references_uses_json_generation(
        self, mock_http: Callable, png_b64: str
    ) -> None:
        http_client, calls = mock_http(lambda req: _image_response(png_b64))

        result = await _client(http_client).synthesize_image(
            prompt="a prompt", reference_images=[], model="gpt-image-1-mini",
            size="1536x1024", quality="high",
        )

        assert result == png_b64
        request = calls[0]
        assert str(request.url) == f"{BASE_URL}/images/generations"
        assert request.headers["content-type"] == "application/json"
        body = json.loads(request.content)
        assert body == {
            "model": "gpt-image-1-mini",
            "prompt": "a prompt",
            "size": "1536x1024",
            "quality": "high",
            "background": "transparent",
            "n": 1,
        }

    async def test_references_use_multipart_edit(
        self, mock_http: Callable, png_bytes: bytes, png_b64: str
    ) -> None:
        http_client, calls = mock_http(lambda req: _image_response(png_b64))
        refs = [ReferenceImage(data=png_bytes) for _ in range(3)]

        await _client(http_client).synthesize_image(
            prompt="a prompt", reference_images=refs, model="gpt-image-1",
            size="1024x1024", quality="medium",
        )

        request = calls[0]
        assert str(request.url) == f"{BASE_URL}/images/edits"
        assert request.headers["content-type"].startswith("multipart/form-data")
        assert request.headers["Authorization"] == "Bearer sk-test"
        body = request.content
        assert body.count(b'name="image"') == 3
        assert b'filename="reference_0.png"' in body
        assert b'filename="reference_2.png"' in body
        assert b'name="background"' in body
        assert b"transparent" in body

    async def test_missing_payload_raises(self, mock_http: Callable) -> None:
        http_client, _ = mock_http(lambda req: httpx.Response(200, json={"data": []}))

        with pytest.raises(MalformedResponseError, match="No image data"):
            await _client(http_client).synthesize_image("p", [], "m", "1024x1024", "low")


class TestErrorMapping:
    """Tests for HTTP failure translation."""

    async def test_provider_message_preserved(self, mock_http: Callable) -> None:
        http_client, _ = mock_http(
            lambda req: httpx.Response(
                400, json={"error": {"message": "Your prompt was rejected"}}
            )
        )

        with pytest.raises(ProviderError) as exc_info:
            await _client(http_client).synthesize_image("p", [], "m", "1024x1024", "low")
        assert "Your prompt was rejected" in str(exc_info.value)
        assert exc_info.value.status_code == 400

    async def test_unauthorized_raises_authorization_error(self, mock_http: Callable) -> None:
        http_client, _ = mock_http(
            lambda req: httpx.Response(401, json={"error": {"message": "Incorrect API key"}})
        )

        with pytest.raises(AuthorizationError, match="Incorrect API key"):
            await _client(http_client).describe("s", "t", "c", "r")

    async def test_server_error_without_body_is_transient(self, mock_http: Callable) -> None:
        http_client, _ = mock_http(lambda req: httpx.Response(503, text="upstream down"))

        with pytest.raises(TransientNetworkError) as exc_info:
            await _client(http_client).describe("s", "t", "c", "r")
        assert exc_info.value.status_code == 503

    async def test_connection_error_is_transient(self, mock_http: Callable) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        http_client, _ = mock_http(handler)

        with pytest.raises(TransientNetworkError, match="connection refused"):
            await _client(http_client).describe("s", "t", "c", "r")

    async def test_redirect_loop_is_transient(self, mock_http: Callable) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.TooManyRedirects("Exceeded maximum allowed redirects.", request=request)

        http_client, _ = mock_http(handler)

        with pytest.raises(TransientNetworkError, match="redirects"):
            await _client(http_client).describe("s", "t", "c", "r")
