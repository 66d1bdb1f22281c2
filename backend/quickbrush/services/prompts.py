"""Per-subject prompt strategies.

Each subject kind maps to one PromptStrategy entry holding the default context
instruction, the system prompt for description refinement, and the image
prompt template. The variants differ only in text.
"""
from dataclasses import dataclass
from typing import Callable

from quickbrush.core.errors import InvalidRequestError
from quickbrush.models.generation import SubjectKind

_STYLE = (
    "with bold, clean line work, muted yet rich colors, and dramatic cel-shading"
)

_SYSTEM_PROMPT_TEMPLATE = (
    "You are a helpful assistant that creates short but detailed {noun} descriptions "
    "based on the prompt provided and a general description of the {subject}. "
    "Always give preference to the prompt over the general description and the "
    "reference image description (e.g., {example}). "
    "This will be used as a prompt for generating an image, so be as consistent and "
    "descriptive as possible. Include only physical details that someone would need "
    "to accurately visualize the {noun}. Do not include any names (even the {noun}'s "
    "name), personality traits, lore, etc."
)


@dataclass(frozen=True)
class PromptStrategy:
    """Prompt text for one subject kind."""

    kind: SubjectKind
    default_context: str
    system_prompt: str
    image_prompt: Callable[[str], str]

    def default_context_prompt(self) -> str:
        return self.default_context

    def describe_system_prompt(self) -> str:
        return self.system_prompt

    def build_image_prompt(self, description: str) -> str:
        """Wrap the refined description in the kind's illustration style."""
        return self.image_prompt(description.strip())


def _character_prompt(description: str) -> str:
    return (
        f"Highly stylized digital concept art profile of {description}. "
        "Rendered in a fantasy-steampunk illustration style inspired by graphic novel "
        f"and fantasy RPG character art {_STYLE}. "
        "Facial features are expressive and detailed, with textured hair and stylized "
        "lighting that adds depth and mood. The background fades into negative space, "
        "as if the character is emerging from the page. The character is looking "
        "directly at the viewer. The background is white. The character is centered "
        "in the frame, with their head and shoulders fitting within the image."
    )


def _creature_prompt(description: str) -> str:
    return (
        f"Highly stylized digital concept art profile of {description}. "
        "Rendered in a fantasy illustration style inspired by graphic novel and "
        f"fantasy RPG creature art {_STYLE}. "
        "Facial features are expressive and detailed, with textured skin/fur/scales "
        "and stylized lighting that adds depth and mood. The background fades into "
        "negative space, as if the creature is emerging from the page. The creature "
        "is looking directly at the viewer. The background is white. The creature is "
        "centered in the frame, with their head and shoulders fitting within the image."
    )


def _scene_prompt(description: str) -> str:
    featuring = f" featuring {description}" if description else ""
    return (
        f"Highly stylized digital concept art{featuring}. "
        "Rendered in a fantasy illustration style inspired by graphic novel and "
        f"fantasy RPG scene art {_STYLE}. "
        "The background fades into negative space, as if the scene is emerging from "
        "the page. The scene is from a ground, first-person perspective, with a wide "
        "view of the environment, centered in the frame. The background is white."
    )


def _item_prompt(description: str) -> str:
    return (
        f"Highly stylized digital concept art of {description}. "
        "Rendered in a fantasy illustration style inspired by graphic novel and "
        f"fantasy RPG item art {_STYLE}. "
        "The item is detailed and textured, with stylized lighting that adds depth and "
        "mood. The background fades into negative space, as if the item is emerging "
        "from the page. The item is centered in the frame, fitting within the image "
        "with space around it. The background is white."
    )


PROMPT_STRATEGIES: dict[SubjectKind, PromptStrategy] = {
    SubjectKind.character: PromptStrategy(
        kind=SubjectKind.character,
        default_context="Generate a physical description of a character.",
        system_prompt=_SYSTEM_PROMPT_TEMPLATE.format(
            noun="character",
            subject="character",
            example=(
                "the prompt might ask them to wear a specific outfit or have a certain "
                "hairstyle while the general description describes them as typically "
                "wearing a different outfit"
            ),
        ),
        image_prompt=_character_prompt,
    ),
    SubjectKind.creature: PromptStrategy(
        kind=SubjectKind.creature,
        default_context="Generate a physical description of a creature.",
        system_prompt=_SYSTEM_PROMPT_TEMPLATE.format(
            noun="creature",
            subject="creature's appearance",
            example=(
                "the prompt might ask them to have a specific feature or color while "
                "the general description describes them as typically having different "
                "features"
            ),
        ),
        image_prompt=_creature_prompt,
    ),
    SubjectKind.scene: PromptStrategy(
        kind=SubjectKind.scene,
        default_context="Generate a physical description of the scene.",
        system_prompt=_SYSTEM_PROMPT_TEMPLATE.format(
            noun="scene",
            subject="scene",
            example=(
                "the prompt might ask for a specific setting or time of day while the "
                "general description describes a different setting"
            ),
        ),
        image_prompt=_scene_prompt,
    ),
    SubjectKind.item: PromptStrategy(
        kind=SubjectKind.item,
        default_context="Generate a physical description of the item.",
        system_prompt=_SYSTEM_PROMPT_TEMPLATE.format(
            noun="item",
            subject="item's appearance",
            example=(
                "the prompt might ask for a specific material or design while the "
                "general description describes it as typically having different features"
            ),
        ),
        image_prompt=_item_prompt,
    ),
}


def get_prompt_strategy(kind: SubjectKind) -> PromptStrategy:
    """Return the prompt strategy for a subject kind.

    Raises:
        InvalidRequestError: For an unknown subject kind.
    """
    try:
        return PROMPT_STRATEGIES[SubjectKind(kind)]
    except (KeyError, ValueError) as exc:
        raise InvalidRequestError(f"Unknown subject kind: {kind}") from exc
