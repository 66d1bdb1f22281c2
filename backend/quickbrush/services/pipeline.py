"""Generation pipeline: describe -> refine -> prompt -> synthesize -> decode."""
import warnings
from typing import Optional

import httpx

from quickbrush.core.config import Settings
from quickbrush.core.errors import (
    ConfigurationError,
    EmptyDescriptionError,
    InvalidRequestError,
    QuickbrushError,
    ReferenceDescriptionWarning,
)
from quickbrush.core.logging import setup_logging
from quickbrush.models.account import AccountState, GenerationStrategy
from quickbrush.models.generation import (
    MAX_REFERENCE_IMAGES,
    AspectRatio,
    GeneratedImage,
    GenerationRequest,
    GenerationResult,
    ReferenceImage,
)
from quickbrush.services import codec
from quickbrush.services.broker_client import BrokerClient
from quickbrush.services.openai_client import OpenAIClient
from quickbrush.services.prompts import get_prompt_strategy
from quickbrush.services.resolver import require_strategy

logger = setup_logging("pipeline")

NO_REFERENCE_DESCRIPTION = "No reference images provided."

SIZE_BY_ASPECT_RATIO: dict[AspectRatio, str] = {
    AspectRatio.square: "1024x1024",
    AspectRatio.landscape: "1536x1024",
    AspectRatio.portrait: "1024x1536",
}

_BROKERED = (GenerationStrategy.server_pooled, GenerationStrategy.server_brokered_byok)


def _with_png_references(request: GenerationRequest) -> GenerationRequest:
    """Re-encode every reference to PNG before any network call.

    Raises:
        InvalidRequestError: A reference is not a decodable image.
    """
    if not request.reference_images:
        return request
    references = tuple(
        ReferenceImage(data=codec.ensure_png(image.data), mime_type=codec.PNG_MIME)
        for image in request.reference_images
    )
    return request.model_copy(update={"reference_images": references})


def image_size(aspect_ratio: AspectRatio) -> str:
    return SIZE_BY_ASPECT_RATIO[AspectRatio(aspect_ratio)]


class GenerationPipeline:
    """Executes one generation request against the client for its strategy.

    Clients are constructed once by the caller and injected here; the
    pipeline holds no per-request state.

    Steps for the direct (local BYOK) path:
    1. Describe reference images (best effort, failures become warnings)
    2. Refine the subject description (blank result is fatal)
    3. Build the final image prompt from the subject kind's strategy
    4. Synthesize exactly one image
    5. Decode the base64 payload to PNG bytes

    Brokered strategies hand steps 1-4 to the backend in a single call and
    only decode locally.
    """

    def __init__(
        self,
        direct_client: Optional[OpenAIClient] = None,
        broker_client: Optional[BrokerClient] = None,
        api_key: Optional[str] = None,
    ) -> None:
        self.direct_client = direct_client
        self.broker_client = broker_client
        self.api_key = api_key or None

    async def generate(
        self, request: GenerationRequest, strategy: GenerationStrategy
    ) -> GenerationResult:
        """Run the pipeline for a resolved strategy.

        Args:
            request: Immutable generation request.
            strategy: Result of resolver.resolve() for the current account.

        Returns:
            GenerationResult with PNG bytes and the refined description.

        Raises:
            ConfigurationError: Unconfigured strategy or missing client.
            InvalidRequestError: More than MAX_REFERENCE_IMAGES references, or a
                reference that is not a decodable image.
            EmptyDescriptionError, MalformedResponseError, RemoteServiceError:
                Propagated unchanged from the failing step.
        """
        self._validate(request, strategy)
        request = _with_png_references(request)
        logger.info(
            "Generating %s image",
            request.subject_kind.value,
            extra={"strategy": strategy.value, "subject_kind": request.subject_kind.value},
        )
        if strategy in _BROKERED and self.broker_client is not None:
            return await self._generate_brokered(request, strategy, self.broker_client)
        if self.direct_client is not None:
            return await self._generate_direct(request, self.direct_client)
        raise ConfigurationError("Local BYOK generation requires an OpenAI API key")

    def _validate(self, request: GenerationRequest, strategy: GenerationStrategy) -> None:
        if strategy is GenerationStrategy.unconfigured:
            raise ConfigurationError("No generation strategy is configured")
        if len(request.reference_images) > MAX_REFERENCE_IMAGES:
            raise InvalidRequestError(
                f"Maximum {MAX_REFERENCE_IMAGES} reference images allowed"
            )
        if strategy in _BROKERED and (
            self.broker_client is None or not self.broker_client.is_linked
        ):
            raise ConfigurationError("Brokered generation requires a linked account")
        if strategy is GenerationStrategy.server_brokered_byok and not self.api_key:
            raise ConfigurationError("Brokered BYOK generation requires an OpenAI API key")
        if strategy is GenerationStrategy.local_direct_byok and self.direct_client is None:
            raise ConfigurationError("Local BYOK generation requires an OpenAI API key")

    async def _generate_direct(
        self, request: GenerationRequest, client: OpenAIClient
    ) -> GenerationResult:
        prompts = get_prompt_strategy(request.subject_kind)
        notices: list[str] = []

        # --- 1. Reference description (never aborts) ---
        reference_description = NO_REFERENCE_DESCRIPTION
        if request.reference_images:
            try:
                reference_description = await client.describe_references(
                    request.reference_images
                )
            except QuickbrushError as exc:
                warning = ReferenceDescriptionWarning(
                    f"Failed to describe reference images: {exc}"
                )
                logger.warning(
                    "%s",
                    warning,
                    extra={"error_type": type(exc).__name__},
                )
                warnings.warn(warning, stacklevel=2)
                notices.append(str(warning))

        # --- 2. Subject refinement ---
        context_prompt = request.context_prompt.strip() or prompts.default_context_prompt()
        refined = await client.describe(
            system_prompt=prompts.describe_system_prompt(),
            subject_text=request.raw_text,
            context_prompt=context_prompt,
            reference_description=reference_description,
        )
        description = refined.text.strip()
        if not description:
            raise EmptyDescriptionError("Parsed description is empty.")
        logger.debug("Refined description: %s", description)

        # --- 3. Prompt construction ---
        prompt = prompts.build_image_prompt(description)

        # --- 4. Image synthesis ---
        b64_image = await client.synthesize_image(
            prompt=prompt,
            reference_images=request.reference_images,
            model=request.model,
            size=image_size(request.aspect_ratio),
            quality=request.quality.value,
        )

        # --- 5. Decode ---
        return GenerationResult(
            image=GeneratedImage(data=codec.decode_base64(b64_image)),
            description=description,
            strategy=GenerationStrategy.local_direct_byok,
            warnings=notices,
        )

    async def _generate_brokered(
        self,
        request: GenerationRequest,
        strategy: GenerationStrategy,
        broker: BrokerClient,
    ) -> GenerationResult:
        forwarded_key = (
            self.api_key if strategy is GenerationStrategy.server_brokered_byok else None
        )
        result = await broker.generate(request, api_key=forwarded_key)
        description = result.description.strip()
        if not description:
            raise EmptyDescriptionError("Wizzlethorpe returned an empty description")
        return GenerationResult(
            image=GeneratedImage(data=codec.decode_base64(result.image)),
            description=description,
            strategy=strategy,
            usage=result.usage,
        )


class QuickbrushService:
    """Resolves the strategy for an account snapshot and runs the pipeline."""

    def __init__(self, pipeline: GenerationPipeline) -> None:
        self.pipeline = pipeline

    async def generate(
        self, request: GenerationRequest, account: AccountState
    ) -> GenerationResult:
        """Resolve, then generate.

        Raises:
            ConfigurationError: Before any network call when no strategy applies.
        """
        strategy = require_strategy(account)
        return await self.pipeline.generate(request, strategy)


def build_service(
    settings: Settings, http_client: httpx.AsyncClient
) -> tuple[QuickbrushService, BrokerClient]:
    """Construct the clients and pipeline once for the process lifetime."""
    api_key = settings.openai_api_key.strip() or None
    direct_client = (
        OpenAIClient(
            api_key=api_key,
            http_client=http_client,
            base_url=settings.openai_base_url,
            describe_model=settings.describe_model,
        )
        if api_key
        else None
    )
    broker_client = BrokerClient(
        http_client=http_client,
        base_url=settings.api_base_url,
        token=settings.wizzlethorpe_token,
    )
    pipeline = GenerationPipeline(
        direct_client=direct_client,
        broker_client=broker_client,
        api_key=api_key,
    )
    return QuickbrushService(pipeline), broker_client
