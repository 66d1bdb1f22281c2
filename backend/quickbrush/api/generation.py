"""Quickbrush API router for the host application."""
import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field

from quickbrush.core.config import Settings, get_settings
from quickbrush.core.errors import (
    AuthorizationError,
    ConfigurationError,
    InvalidRequestError,
    QuickbrushError,
    QuotaExceededError,
    SubscriptionRequiredError,
)
from quickbrush.models.account import GenerationStrategy
from quickbrush.models.cocktails import CocktailContent, CocktailInclude
from quickbrush.models.generation import (
    MAX_RAW_TEXT_LENGTH,
    MAX_REFERENCE_IMAGES,
    AspectRatio,
    BrokerUsage,
    GenerationRequest,
    Quality,
    ReferenceImage,
    SubjectKind,
)
from quickbrush.services import codec
from quickbrush.services.broker_client import BrokerClient
from quickbrush.services.pipeline import QuickbrushService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/quickbrush", tags=["quickbrush"])

# Checked in order; subclasses before their bases.
_ERROR_STATUS: tuple[tuple[type[QuickbrushError], int, str], ...] = (
    (ConfigurationError, 400, "configuration_error"),
    (InvalidRequestError, 400, "invalid_request"),
    (AuthorizationError, 401, "unauthorized"),
    (SubscriptionRequiredError, 402, "subscription_required"),
    (QuotaExceededError, 429, "quota_exceeded"),
)


class GenerateBody(BaseModel):
    """Request body sent by the host's generation dialog."""

    model_config = ConfigDict(populate_by_name=True)

    type: SubjectKind
    text: str = Field(..., min_length=1, max_length=MAX_RAW_TEXT_LENGTH)
    prompt: str = ""
    reference_images: list[str] = Field(
        default_factory=list, alias="referenceImages", max_length=MAX_REFERENCE_IMAGES
    )
    model: Optional[str] = None
    quality: Quality = Quality.medium
    aspect_ratio: AspectRatio = Field(default=AspectRatio.square, alias="aspectRatio")


class GenerateResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    image: str
    mime_type: str = Field(alias="mimeType")
    description: str
    strategy: GenerationStrategy
    usage: Optional[BrokerUsage] = None
    warnings: list[str] = Field(default_factory=list)


def get_quickbrush_service(request: Request) -> QuickbrushService:
    """FastAPI dependency: retrieve QuickbrushService from app.state.

    Returns HTTP 503 if the service was not initialized at startup.
    """
    svc: QuickbrushService | None = getattr(request.app.state, "quickbrush_service", None)
    if svc is None:
        raise HTTPException(
            status_code=503,
            detail="Quickbrush unavailable. Service not initialized.",
        )
    return svc


def get_broker_client(request: Request) -> BrokerClient:
    broker: BrokerClient | None = getattr(request.app.state, "broker_client", None)
    if broker is None:
        raise HTTPException(
            status_code=503,
            detail="Wizzlethorpe client unavailable. Service not initialized.",
        )
    return broker


def to_http_exception(exc: QuickbrushError) -> HTTPException:
    """Translate a pipeline error into an HTTP error the host can display."""
    for error_cls, status_code, kind in _ERROR_STATUS:
        if isinstance(exc, error_cls):
            return HTTPException(
                status_code=status_code, detail={"error": kind, "message": str(exc)}
            )
    return HTTPException(
        status_code=502,
        detail={"error": "generation_failed", "message": str(exc)},
    )


@router.post("/generate", response_model=GenerateResponse)
async def generate_image(
    body: GenerateBody,
    service: QuickbrushService = Depends(get_quickbrush_service),
    settings: Settings = Depends(get_settings),
) -> GenerateResponse:
    """Generate one image for the host.

    The account snapshot is read from settings on every call, so the
    strategy always reflects the current link/key configuration.

    Raises:
        HTTPException 400/401/402/429/502: Mapped from the pipeline error.
        HTTPException 422: Validation error (handled by FastAPI automatically).
    """
    try:
        request = GenerationRequest(
            subject_kind=body.type,
            raw_text=body.text,
            context_prompt=body.prompt,
            reference_images=tuple(
                ReferenceImage.from_data_uri(uri) for uri in body.reference_images
            ),
            quality=body.quality,
            aspect_ratio=body.aspect_ratio,
            model=body.model or settings.image_model,
        )
        result = await service.generate(request, settings.account_state())
    except QuickbrushError as exc:
        logger.error(
            "generate failed: %s",
            exc,
            extra={"service": "QuickbrushRouter", "error_type": type(exc).__name__},
        )
        raise to_http_exception(exc) from exc

    return GenerateResponse(
        image=codec.encode_base64(result.image.data),
        mime_type=result.image.mime_type,
        description=result.description,
        strategy=result.strategy,
        usage=result.usage,
        warnings=result.warnings,
    )


@router.get("/cocktails", response_model=CocktailContent)
async def get_cocktails(
    include: CocktailInclude = CocktailInclude.all,
    broker: BrokerClient = Depends(get_broker_client),
) -> CocktailContent:
    """Fetch Bixby's Cocktails content for import into the host world."""
    try:
        return await broker.fetch_cocktail_content(include)
    except QuickbrushError as exc:
        logger.error(
            "cocktail fetch failed: %s",
            exc,
            extra={"service": "QuickbrushRouter", "error_type": type(exc).__name__},
        )
        raise to_http_exception(exc) from exc


@router.get("/cocktails/catalog")
async def get_cocktail_catalog(
    broker: BrokerClient = Depends(get_broker_client),
) -> dict[str, Any]:
    """Fetch the public cocktail catalog. Works without a linked account."""
    try:
        return await broker.fetch_cocktail_catalog()
    except QuickbrushError as exc:
        logger.error(
            "cocktail catalog fetch failed: %s",
            exc,
            extra={"service": "QuickbrushRouter", "error_type": type(exc).__name__},
        )
        raise to_http_exception(exc) from exc
