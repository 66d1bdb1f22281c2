"""Generation request and result data models."""
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from quickbrush.models.account import GenerationStrategy
from quickbrush.services import codec

MAX_REFERENCE_IMAGES = 4
MAX_RAW_TEXT_LENGTH = 10_000
DEFAULT_IMAGE_MODEL = "gpt-image-1-mini"


class SubjectKind(str, Enum):
    """Subject categories, each with its own prompt strategy."""

    character = "character"
    creature = "creature"
    scene = "scene"
    item = "item"


class Quality(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"


class AspectRatio(str, Enum):
    square = "square"
    landscape = "landscape"
    portrait = "portrait"


class ReferenceImage(BaseModel):
    """Caller-supplied image used to steer the synthesized output."""

    model_config = ConfigDict(frozen=True)

    data: bytes = Field(..., min_length=1)
    mime_type: str = "image/png"

    @classmethod
    def from_data_uri(cls, uri: str) -> "ReferenceImage":
        """Build a reference image from a ``data:<mime>;base64,<payload>`` URI."""
        mime_type, data = codec.parse_data_uri(uri)
        return cls(data=data, mime_type=mime_type)

    def to_data_uri(self) -> str:
        return codec.to_data_uri(self.data, self.mime_type)


class GenerationRequest(BaseModel):
    """One user-initiated image generation. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    subject_kind: SubjectKind
    raw_text: str = Field(..., max_length=MAX_RAW_TEXT_LENGTH)
    context_prompt: str = ""
    reference_images: tuple[ReferenceImage, ...] = Field(
        default=(), max_length=MAX_REFERENCE_IMAGES
    )
    quality: Quality = Quality.medium
    aspect_ratio: AspectRatio = AspectRatio.square
    model: str = Field(default=DEFAULT_IMAGE_MODEL, min_length=1)

    @field_validator("context_prompt", mode="before")
    @classmethod
    def _none_context_is_empty(cls, value: Optional[str]) -> str:
        return value or ""


class RefinedDescription(BaseModel):
    """Physical description produced by the refinement step."""

    text: str = Field(..., min_length=1)


class GeneratedImage(BaseModel):
    """Terminal artifact of the pipeline. The caller owns persistence."""

    data: bytes
    mime_type: str = "image/png"


class BrokerUsage(BaseModel):
    """Weekly quota usage reported by the broker."""

    used: int
    limit: int


class BrokerGeneration(BaseModel):
    """Decoded success response of the broker's generate call."""

    image: str
    description: str
    usage: Optional[BrokerUsage] = None


class GenerationResult(BaseModel):
    """Pipeline output handed back to the caller."""

    image: GeneratedImage
    description: str
    strategy: GenerationStrategy
    usage: Optional[BrokerUsage] = None
    warnings: list[str] = Field(default_factory=list)
