"""Generate a Quickbrush image from the command line.

Standalone caller of the generation core: resolves the strategy from the
current settings (.env / environment), runs the pipeline and writes the PNG.

Usage:
    # From the project root
    python scripts/generate_image.py character --text "A tall elf ranger" -o elf.png
    python scripts/generate_image.py scene --text-file notes.txt --aspect-ratio landscape
    python scripts/generate_image.py --link   # link a Wizzlethorpe Labs account
"""

import argparse
import asyncio
import mimetypes
import sys
from pathlib import Path
from typing import Optional, Sequence

# Add backend/ to the path when run standalone
_BACKEND_PATH = Path(__file__).parent.parent / "backend"
if str(_BACKEND_PATH) not in sys.path:
    sys.path.insert(0, str(_BACKEND_PATH))

import httpx

from quickbrush.core.config import Settings, get_settings
from quickbrush.core.errors import QuickbrushError
from quickbrush.core.logging import setup_logging
from quickbrush.models.generation import (
    AspectRatio,
    GenerationRequest,
    GenerationResult,
    Quality,
    ReferenceImage,
    SubjectKind,
)
from quickbrush.services.broker_client import BrokerClient
from quickbrush.services.pipeline import build_service

logger = setup_logging("generate_image")


def load_reference_image(path: Path) -> ReferenceImage:
    """Read a reference image file, guessing its MIME type from the extension."""
    mime_type = mimetypes.guess_type(path.name)[0] or "image/png"
    return ReferenceImage(data=path.read_bytes(), mime_type=mime_type)


def build_request(args: argparse.Namespace, settings: Settings) -> GenerationRequest:
    text = args.text
    if args.text_file is not None:
        text = Path(args.text_file).read_text(encoding="utf-8")
    return GenerationRequest(
        subject_kind=SubjectKind(args.type),
        raw_text=(text or "").strip(),
        context_prompt=args.prompt or "",
        reference_images=tuple(load_reference_image(Path(p)) for p in args.reference),
        quality=Quality(args.quality),
        aspect_ratio=AspectRatio(args.aspect_ratio),
        model=args.model or settings.image_model,
    )


async def generate(request: GenerationRequest, settings: Settings) -> GenerationResult:
    async with httpx.AsyncClient(timeout=settings.http_timeout) as http_client:
        service, _ = build_service(settings, http_client)
        return await service.generate(request, settings.account_state())


async def link_account(settings: Settings) -> None:
    """Run the account-link flow and print the values to store in .env."""
    async with httpx.AsyncClient(timeout=settings.http_timeout) as http_client:
        broker = BrokerClient(http_client=http_client, base_url=settings.api_base_url)
        session = await broker.start_linking()
        print(f"Open this URL to link your account: {session.link_url}")
        status = await broker.wait_for_link(session.link_code)
    print(f"WIZZLETHORPE_TOKEN={status.token}")
    if status.user is not None:
        print(f"WIZZLETHORPE_ACCOUNT={status.user.model_dump_json(by_alias=True)}")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Generate a character, creature, scene or item image with Quickbrush."
    )
    parser.add_argument("type", nargs="?", choices=[k.value for k in SubjectKind])
    parser.add_argument("--text", help="Subject description (journal text, notes, ...).")
    parser.add_argument("--text-file", help="Read the subject description from a file.")
    parser.add_argument("--prompt", help="Context prompt; takes priority over the text.")
    parser.add_argument(
        "--reference",
        action="append",
        default=[],
        help="Reference image path (repeatable, at most 4).",
    )
    parser.add_argument("--quality", default="medium", choices=[q.value for q in Quality])
    parser.add_argument(
        "--aspect-ratio", default="square", choices=[a.value for a in AspectRatio]
    )
    parser.add_argument("--model", help="Image model (defaults to IMAGE_MODEL setting).")
    parser.add_argument("-o", "--output", default="quickbrush.png", help="Output PNG path.")
    parser.add_argument("--link", action="store_true", help="Link a Wizzlethorpe account.")
    args = parser.parse_args(argv)
    if not args.link:
        if args.type is None:
            parser.error("type is required unless --link is given")
        if not args.text and not args.text_file:
            parser.error("one of --text or --text-file is required")
    return args


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    settings = get_settings()
    try:
        if args.link:
            asyncio.run(link_account(settings))
            return 0
        result = asyncio.run(generate(build_request(args, settings), settings))
    except (QuickbrushError, ValueError) as exc:
        logger.error("Generation failed: %s", exc, extra={"error_type": type(exc).__name__})
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    output = Path(args.output)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(result.image.data)
    for warning in result.warnings:
        print(f"Warning: {warning}", file=sys.stderr)
    print(f"Saved {output} ({result.strategy.value})")
    print(f"Description: {result.description}")
    if result.usage is not None:
        print(f"Usage: {result.usage.used}/{result.usage.limit} this week")
    return 0


if __name__ == "__main__":
    sys.exit(main())
