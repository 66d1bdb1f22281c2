"""Client for the Wizzlethorpe Labs backend (brokered generation).

The backend performs the describe and synthesis steps itself, using either
its pooled key or a forwarded BYOK key, and enforces subscription tier and
weekly quota. It also serves account linking and Bixby's Cocktails content.
"""
import asyncio
import logging
from typing import Any, Optional
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from quickbrush.core.config import DEFAULT_API_URL
from quickbrush.core.errors import (
    AuthorizationError,
    BrokerError,
    ConfigurationError,
    LinkError,
    LinkExpiredError,
    LinkTimeoutError,
    MalformedResponseError,
    QuotaExceededError,
    RemoteServiceError,
    SubscriptionRequiredError,
    TransientNetworkError,
)
from quickbrush.models.cocktails import (
    CocktailContent,
    CocktailInclude,
    LinkSession,
    LinkState,
    LinkStatus,
)
from quickbrush.models.generation import BrokerGeneration, BrokerUsage, GenerationRequest
from quickbrush.services import transport

logger = logging.getLogger(__name__)

PROVIDER = "Wizzlethorpe"
DEVICE_NAME = "Foundry VTT"

_BROKER_ERRORS: dict[str, tuple[type[BrokerError], str]] = {
    "subscription_required": (
        SubscriptionRequiredError,
        "Subscription required for this feature",
    ),
    "quota_exceeded": (QuotaExceededError, "Weekly quota exceeded"),
}


def build_generate_payload(
    request: GenerationRequest, api_key: Optional[str] = None
) -> dict[str, Any]:
    """Build the JSON body of POST /api/generate."""
    payload: dict[str, Any] = {
        "type": request.subject_kind.value,
        "text": request.raw_text,
        "prompt": request.context_prompt,
        "referenceImages": [image.to_data_uri() for image in request.reference_images],
        "model": request.model,
        "quality": request.quality.value,
        "aspectRatio": request.aspect_ratio.value,
    }
    if api_key:
        payload["apiKey"] = api_key
    return payload


def _parse_usage(value: Any) -> Optional[BrokerUsage]:
    """Quota usage is informational; an unreadable block is dropped."""
    if value is None:
        return None
    try:
        return BrokerUsage.model_validate(value)
    except ValidationError:
        logger.warning("Ignoring malformed usage block: %r", value)
        return None


class BrokerClient:
    """Talks to the first-party backend with the linked account's token."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: str = DEFAULT_API_URL,
        token: Optional[str] = None,
    ) -> None:
        self.http_client = http_client
        self.base_url = base_url.rstrip("/")
        self.token = token or None

    @property
    def is_linked(self) -> bool:
        return self.token is not None

    async def generate(
        self, request: GenerationRequest, api_key: Optional[str] = None
    ) -> BrokerGeneration:
        """Run describe + synthesize server-side in a single call.

        Args:
            request: The generation request.
            api_key: Local OpenAI key, forwarded only in brokered BYOK mode.

        Returns:
            Base64 image, refined description and optional quota usage.

        Raises:
            ConfigurationError: No account linked.
            SubscriptionRequiredError / QuotaExceededError: Tier or quota refusal.
            BrokerError: Any other structured failure.
            MalformedResponseError: Success body without image/description.
        """
        token = self._require_token()
        response = await transport.send(
            self.http_client,
            "POST",
            f"{self.base_url}/api/generate",
            PROVIDER,
            headers=transport.bearer_headers(token),
            json=build_generate_payload(request, api_key),
        )
        if not response.is_success:
            self._raise_broker_error(response)
        body = transport.parse_json(response, PROVIDER)
        try:
            result = BrokerGeneration.model_validate(
                {"image": body.get("image"), "description": body.get("description")}
            )
        except ValidationError as exc:
            raise MalformedResponseError(
                "Wizzlethorpe response is missing image or description"
            ) from exc
        usage = _parse_usage(body.get("usage"))
        if usage is not None:
            logger.info("Usage: %d/%d this week", usage.used, usage.limit)
            result = result.model_copy(update={"usage": usage})
        return result

    async def start_linking(self) -> LinkSession:
        """Request a link code and build the URL the user must open."""
        response = await transport.send(
            self.http_client, "POST", f"{self.base_url}/api/auth/link", PROVIDER
        )
        transport.raise_for_status(response, PROVIDER)
        body = transport.parse_json(response, PROVIDER)
        link_code = body.get("linkCode")
        if not body.get("success") or not link_code:
            raise MalformedResponseError("Invalid response from server")
        link_url = (
            f"{self.base_url}/link?code={quote(str(link_code))}"
            f"&device={quote(DEVICE_NAME)}"
        )
        return LinkSession(link_code=str(link_code), link_url=link_url)

    async def check_link_status(self, link_code: str) -> LinkStatus:
        response = await transport.send(
            self.http_client,
            "GET",
            f"{self.base_url}/api/auth/link-status",
            PROVIDER,
            params={"code": link_code},
        )
        transport.raise_for_status(response, PROVIDER)
        body = transport.parse_json(response, PROVIDER)
        try:
            return LinkStatus.model_validate(body)
        except ValidationError as exc:
            raise MalformedResponseError("Invalid link status response") from exc

    async def wait_for_link(
        self,
        link_code: str,
        max_attempts: int = 120,
        interval: float = 3.0,
    ) -> LinkStatus:
        """Poll until the user completes linking in the browser.

        Transient poll failures are logged and retried; the caller persists
        the returned token and account.

        Raises:
            LinkExpiredError: The link code expired.
            LinkTimeoutError: max_attempts polls without completion.
        """
        for attempt in range(max_attempts):
            await asyncio.sleep(interval)
            try:
                status = await self.check_link_status(link_code)
            except (RemoteServiceError, MalformedResponseError) as exc:
                logger.warning(
                    "Link status poll failed (attempt %d/%d): %s",
                    attempt + 1,
                    max_attempts,
                    exc,
                    extra={"error_type": type(exc).__name__},
                )
                continue
            if status.status is LinkState.completed:
                if not status.token:
                    raise LinkError("Link completed without a token")
                logger.info(
                    "Account linked successfully: %s",
                    status.user.name if status.user else "unknown",
                )
                return status
            if status.status is LinkState.expired:
                raise LinkExpiredError("Link code expired. Please try again.")
        raise LinkTimeoutError("Linking timed out. Please try again.")

    async def fetch_cocktail_catalog(self) -> dict[str, Any]:
        """Load the public cocktail catalog. The token is sent when linked."""
        headers = transport.bearer_headers(self.token) if self.token else {}
        response = await transport.send(
            self.http_client,
            "GET",
            f"{self.base_url}/api/cocktails",
            PROVIDER,
            headers=headers,
        )
        transport.raise_for_status(response, PROVIDER)
        catalog = transport.parse_json(response, PROVIDER)
        logger.info("Cocktail data loaded: %d cocktails", len(catalog.get("cocktails") or []))
        return catalog

    async def fetch_cocktail_content(
        self, include: CocktailInclude = CocktailInclude.all
    ) -> CocktailContent:
        """Fetch host-formatted cocktails, ingredients, liquors and roll tables.

        Raises:
            ConfigurationError: No account linked.
        """
        token = self._require_token()
        include = CocktailInclude(include)
        response = await transport.send(
            self.http_client,
            "GET",
            f"{self.base_url}/api/cocktails/foundry",
            PROVIDER,
            headers=transport.bearer_headers(token),
            params={"include": include.value},
        )
        transport.raise_for_status(response, PROVIDER)
        body = transport.parse_json(response, PROVIDER)
        # Older backends return a single section under "items".
        if include is CocktailInclude.cocktails and "cocktails" not in body and "items" in body:
            body = {**body, "cocktails": body["items"]}
        try:
            content = CocktailContent.model_validate(body)
        except ValidationError as exc:
            raise MalformedResponseError("Invalid cocktail content response") from exc
        if content.is_empty:
            logger.warning("No cocktail content returned for include=%s", include.value)
        return content

    def _require_token(self) -> str:
        if self.token is None:
            raise ConfigurationError("No Wizzlethorpe account linked")
        return self.token

    def _raise_broker_error(self, response: httpx.Response) -> None:
        status = response.status_code
        body = transport.json_or_none(response)
        if not isinstance(body, dict):
            raise TransientNetworkError(
                f"Wizzlethorpe API error: {response.reason_phrase}", status
            )
        code = body.get("error") if isinstance(body.get("error"), str) else None
        message = body.get("message")
        logger.error(
            "Wizzlethorpe generate failed with status %d (%s): %s",
            status,
            code or "generic",
            message,
            extra={"status_code": status, "error_type": code},
        )
        if code in _BROKER_ERRORS:
            error_cls, fallback = _BROKER_ERRORS[code]
            raise error_cls(message or fallback, status, code)
        if status in (401, 403):
            raise AuthorizationError(message or "Wizzlethorpe account not authorized", status)
        raise BrokerError(message or code or "Generation failed", status, code)
