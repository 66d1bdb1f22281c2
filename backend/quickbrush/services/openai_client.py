"""Direct (BYOK) client for the OpenAI chat-completion and image endpoints."""
import json
import logging
from typing import Any, Sequence

import httpx

from quickbrush.core.config import DEFAULT_OPENAI_URL
from quickbrush.core.errors import EmptyDescriptionError, MalformedResponseError
from quickbrush.models.generation import ReferenceImage, RefinedDescription
from quickbrush.services import codec, transport

logger = logging.getLogger(__name__)

PROVIDER = "OpenAI"

REFERENCE_SYSTEM_PROMPT = (
    "You are a helpful assistant that generates detailed physical descriptions of "
    "provided images."
)
REFERENCE_INSTRUCTION = (
    "Generate a detailed physical description of the subject of the image."
)

TEXT_FIELD_DESCRIPTION = (
    "Long-form detailed information about the subject (e.g., possibly from a journal "
    "entry). May include irrelevant details; focus on physical description."
)
REFERENCE_FIELD_DESCRIPTION = (
    "A detailed physical description of the subject based on the provided reference "
    "images. If no reference images were provided, this says so."
)
PROMPT_FIELD_DESCRIPTION = (
    "The context prompt for the description. This is what the user wants you to focus "
    "on when generating the description. It may even contradict details in the "
    "long-form text and/or reference images. Always prioritize this prompt over the "
    "long-form text and/or reference images."
)


def build_description_document(
    subject_text: str, reference_description: str, context_prompt: str
) -> dict[str, Any]:
    """Build the structured user payload for the refinement call.

    Each field carries its role so the model knows the context prompt has the
    highest priority.
    """
    return {
        "properties": {
            "text": {
                "type": "string",
                "description": TEXT_FIELD_DESCRIPTION,
                "value": subject_text,
            },
            "reference_images_description": {
                "type": "string",
                "description": REFERENCE_FIELD_DESCRIPTION,
                "value": reference_description,
            },
            "prompt": {
                "type": "string",
                "description": PROMPT_FIELD_DESCRIPTION,
                "priority": "highest",
                "value": context_prompt,
            },
        }
    }


class OpenAIClient:
    """Talks to the OpenAI API with the installation's own key.

    The httpx.AsyncClient is injected and owned by the caller, so one
    connection pool is shared across requests and tests can swap in a
    MockTransport.
    """

    def __init__(
        self,
        api_key: str,
        http_client: httpx.AsyncClient,
        base_url: str = DEFAULT_OPENAI_URL,
        describe_model: str = "gpt-4o",
    ) -> None:
        self.api_key = api_key
        self.http_client = http_client
        self.base_url = base_url.rstrip("/")
        self.describe_model = describe_model

    async def describe_references(self, reference_images: Sequence[ReferenceImage]) -> str:
        """Ask for a physical description of the supplied reference images.

        Raises:
            MalformedResponseError: When the response carries no text.
        """
        content: list[dict[str, Any]] = [{"type": "text", "text": REFERENCE_INSTRUCTION}]
        content.extend(
            {"type": "image_url", "image_url": {"url": image.to_data_uri()}}
            for image in reference_images
        )
        body = await self._chat_completion(
            [
                {"role": "system", "content": REFERENCE_SYSTEM_PROMPT},
                {"role": "user", "content": content},
            ]
        )
        text = _first_choice_text(body).strip()
        if not text:
            raise MalformedResponseError("Reference image description is empty")
        return text

    async def describe(
        self,
        system_prompt: str,
        subject_text: str,
        context_prompt: str,
        reference_description: str,
    ) -> RefinedDescription:
        """Refine the raw subject text into a short physical description.

        Raises:
            EmptyDescriptionError: When the model returns blank text.
            MalformedResponseError: When the response has no choices.
        """
        document = build_description_document(
            subject_text, reference_description, context_prompt
        )
        body = await self._chat_completion(
            [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": [{"type": "text", "text": json.dumps(document)}]},
            ]
        )
        text = _first_choice_text(body).strip()
        if not text:
            raise EmptyDescriptionError("Parsed description is empty.")
        return RefinedDescription(text=text)

    async def synthesize_image(
        self,
        prompt: str,
        reference_images: Sequence[ReferenceImage],
        model: str,
        size: str,
        quality: str,
    ) -> str:
        """Generate one image and return its base64 payload.

        Without references a compact JSON body goes to /images/generations.
        With references the edit endpoint is used with a multipart body, one
        PNG part per reference image.

        Raises:
            MalformedResponseError: When no b64_json payload is returned.
        """
        fields = {
            "model": model,
            "prompt": prompt,
            "size": size,
            "quality": quality,
            "background": "transparent",
        }
        if reference_images:
            files = [
                ("image", (f"reference_{i}.png", codec.ensure_png(image.data), codec.PNG_MIME))
                for i, image in enumerate(reference_images)
            ]
            logger.info("Requesting image edit with %d reference image(s)", len(files))
            response = await transport.send(
                self.http_client,
                "POST",
                f"{self.base_url}/images/edits",
                PROVIDER,
                headers=transport.bearer_headers(self.api_key),
                data={**fields, "n": "1"},
                files=files,
            )
        else:
            logger.info("Requesting image generation (size=%s quality=%s)", size, quality)
            response = await transport.send(
                self.http_client,
                "POST",
                f"{self.base_url}/images/generations",
                PROVIDER,
                headers=transport.bearer_headers(self.api_key),
                json={**fields, "n": 1},
            )
        transport.raise_for_status(response, PROVIDER)
        body = transport.parse_json(response, PROVIDER)
        try:
            b64_image = body["data"][0]["b64_json"]
        except (KeyError, IndexError, TypeError) as exc:
            raise MalformedResponseError("No image data returned from OpenAI API.") from exc
        if not isinstance(b64_image, str) or not b64_image:
            raise MalformedResponseError("No image data returned from OpenAI API.")
        return b64_image

    async def _chat_completion(self, messages: list[dict[str, Any]]) -> dict[str, Any]:
        response = await transport.send(
            self.http_client,
            "POST",
            f"{self.base_url}/chat/completions",
            PROVIDER,
            headers=transport.bearer_headers(self.api_key),
            json={"model": self.describe_model, "messages": messages},
        )
        transport.raise_for_status(response, PROVIDER)
        return transport.parse_json(response, PROVIDER)


def _first_choice_text(body: dict[str, Any]) -> str:
    try:
        content = body["choices"][0]["message"].get("content")
    except (KeyError, IndexError, TypeError, AttributeError) as exc:
        raise MalformedResponseError("No response from OpenAI API.") from exc
    return content or ""
