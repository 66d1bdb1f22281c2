"""Conversion between base64 transport encoding and raw image bytes."""
import base64
import binascii
import logging
from io import BytesIO
from typing import Optional

from PIL import Image, UnidentifiedImageError

from quickbrush.core.errors import InvalidRequestError, MalformedResponseError

logger = logging.getLogger(__name__)

PNG_MIME = "image/png"

_MAGIC_NUMBERS: tuple[tuple[bytes, str], ...] = (
    (b"\x89PNG", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF8", "image/gif"),
    (b"RIFF", "image/webp"),
)


def strip_data_uri_prefix(value: str) -> str:
    if value.startswith("data:") and "," in value:
        return value.split(",", 1)[1]
    return value


def decode_base64(value: str) -> bytes:
    """Decode a base64 payload, with or without a data URI prefix.

    Raises:
        MalformedResponseError: When the payload is empty or not valid base64.
    """
    if not isinstance(value, str) or not value.strip():
        raise MalformedResponseError("Image payload is empty")
    candidate = "".join(strip_data_uri_prefix(value.strip()).split())
    try:
        data = base64.b64decode(candidate, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise MalformedResponseError("Image payload is not valid base64") from exc
    if not data:
        raise MalformedResponseError("Image payload is empty")
    return data


def encode_base64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def to_data_uri(data: bytes, mime_type: str = PNG_MIME) -> str:
    return f"data:{mime_type};base64,{encode_base64(data)}"


def parse_data_uri(uri: str) -> tuple[str, bytes]:
    """Split a ``data:<mime>;base64,<payload>`` URI into (mime, bytes).

    Raises:
        InvalidRequestError: When the value is not a base64 data URI or is empty.
    """
    if not uri.startswith("data:") or "," not in uri:
        raise InvalidRequestError("Expected a base64 data URI")
    header, payload = uri.split(",", 1)
    if ";base64" not in header:
        raise InvalidRequestError("Data URI must be base64 encoded")
    mime_type = header[len("data:"):].split(";", 1)[0] or PNG_MIME
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidRequestError("Data URI payload is not valid base64") from exc
    if not data:
        raise InvalidRequestError("Data URI payload is empty")
    return mime_type, data


def sniff_mime(data: bytes) -> Optional[str]:
    """Return the image MIME type implied by the leading magic bytes."""
    for magic, mime_type in _MAGIC_NUMBERS:
        if data.startswith(magic):
            return mime_type
    return None


def ensure_png(data: bytes) -> bytes:
    """Return the image as PNG bytes, re-encoding through Pillow if needed.

    The image edit endpoint only accepts PNG parts, so JPEG/WEBP/GIF
    references are converted before upload.

    Raises:
        InvalidRequestError: When the bytes are not a decodable image.
    """
    if sniff_mime(data) == PNG_MIME:
        return data
    try:
        with Image.open(BytesIO(data)) as img:
            img.load()
            if img.mode not in ("RGB", "RGBA", "L", "LA"):
                img = img.convert("RGBA")
            out = BytesIO()
            img.save(out, format="PNG")
    except (UnidentifiedImageError, OSError) as exc:
        raise InvalidRequestError("Reference image could not be decoded") from exc
    logger.debug("Re-encoded reference image to PNG (%d -> %d bytes)", len(data), out.tell())
    return out.getvalue()
