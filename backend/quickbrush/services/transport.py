"""Shared HTTP helpers for the remote clients.

Maps httpx failures and non-2xx responses onto the error taxonomy in
quickbrush.core.errors, keeping the provider's own message when it sent one.
"""
import logging
from typing import Any, Optional

import httpx

from quickbrush.core.errors import (
    AuthorizationError,
    MalformedResponseError,
    ProviderError,
    TransientNetworkError,
)

logger = logging.getLogger(__name__)


def bearer_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def error_message(body: Any) -> Optional[str]:
    """Pull a human-readable message out of a JSON error body.

    Understands the OpenAI shape ``{"error": {"message": ...}}`` and the broker
    shape ``{"error": "<code>", "message": ...}``.
    """
    if not isinstance(body, dict):
        return None
    error = body.get("error")
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    if body.get("message"):
        return str(body["message"])
    if isinstance(error, str) and error:
        return error
    return None


def json_or_none(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def raise_for_status(response: httpx.Response, provider: str) -> None:
    """Raise a typed error for a non-2xx response.

    Raises:
        AuthorizationError: 401/403.
        ProviderError: Any other non-2xx with a structured body.
        TransientNetworkError: Non-2xx without a structured body.
    """
    if response.is_success:
        return
    status = response.status_code
    message = error_message(json_or_none(response))
    logger.error(
        "%s request failed with status %d: %s",
        provider,
        status,
        message or response.reason_phrase,
        extra={"status_code": status},
    )
    text = f"{provider} API error: {message or response.reason_phrase}"
    if status in (401, 403):
        raise AuthorizationError(text, status)
    if message is not None:
        raise ProviderError(text, status)
    raise TransientNetworkError(text, status)


def parse_json(response: httpx.Response, provider: str) -> dict[str, Any]:
    """Decode a successful JSON object body.

    Raises:
        MalformedResponseError: When the body is not a JSON object.
    """
    body = json_or_none(response)
    if not isinstance(body, dict):
        raise MalformedResponseError(f"{provider} returned a non-JSON response")
    return body


async def send(
    client: httpx.AsyncClient, method: str, url: str, provider: str, **kwargs: Any
) -> httpx.Response:
    """Issue one request, translating transport failures.

    Raises:
        TransientNetworkError: Any httpx request failure (transport, decoding, redirects).
    """
    try:
        return await client.request(method, url, **kwargs)
    except httpx.RequestError as exc:
        logger.error(
            "%s transport error: %s",
            provider,
            exc,
            extra={"error_type": type(exc).__name__},
        )
        raise TransientNetworkError(f"{provider} request failed: {exc}") from exc
