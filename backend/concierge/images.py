"""Customer photo handling before anything reaches the vision model.

Uploads arrive as data URLs from the camera widget. Big photos get downscaled,
photos that stay too big are rejected so the caller can ask for a retake.
"""

from __future__ import annotations
import base64
import binascii
import io
import logging
import re
from typing import Tuple

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

_DATA_URL = re.compile(r"^data:([^;,]+)?(?:;[^,]*)?;base64,(.+)$", re.S)


class ImagePayloadError(ValueError):
    """The upload is not a decodable image."""


class ImageTooLargeError(ImagePayloadError):
    """The upload is too large even after compression."""


def split_data_url(data: str) -> Tuple[str, str]:
    """Return (mime type, base64 payload). A bare base64 string is assumed to be JPEG."""
    text = (data or "").strip()
    m = _DATA_URL.match(text)
    if m:
        return (m.group(1) or "image/jpeg"), m.group(2).strip()
    return "image/jpeg", text.split(",")[-1]


def to_data_url(mime: str, payload: str) -> str:
    return f"data:{mime};base64,{payload}"


def image_size_kb(data: str) -> int:
    _, payload = split_data_url(data)
    return round(len(payload) * 3 / 4 / 1024)


def decode_image(data: str) -> bytes:
    _, payload = split_data_url(data)
    try:
        raw = base64.b64decode(payload, validate=False)
    except (binascii.Error, ValueError) as e:
        raise ImagePayloadError("Image is not valid base64") from e
    if not raw:
        raise ImagePayloadError("Image is empty")
    return raw


def resize_data_url(data: str, max_size: int = 1024, quality: int = 75) -> str:
    """Shrink to fit inside max_size x max_size and re-encode. PNG stays PNG, the rest becomes JPEG."""
    mime, _ = split_data_url(data)
    raw = decode_image(data)
    try:
        image = Image.open(io.BytesIO(raw))
        image.load()
    except (UnidentifiedImageError, OSError) as e:
        raise ImagePayloadError("Could not read image") from e

    image.thumbnail((max_size, max_size))
    buf = io.BytesIO()
    if "png" in mime:
        image.save(buf, format="PNG", optimize=True)
        out_mime = "image/png"
    else:
        image.convert("RGB").save(buf, format="JPEG", quality=quality)
        out_mime = "image/jpeg"
    out = buf.getvalue()
    logger.info("[ImageUtils] Resized %sKB -> %sKB", round(len(raw) / 1024), round(len(out) / 1024))
    return to_data_url(out_mime, base64.b64encode(out).decode("ascii"))


def prepare_upload(
    data: str,
    max_upload_bytes: int = 10 * 1024 * 1024,
    compress_over_kb: int = 500,
    max_model_bytes: int = 4 * 1024 * 1024,
) -> str:
    """Validate a customer photo and return a data URL small enough for the vision model.

    Raises ImageTooLargeError or ImagePayloadError; callers turn both into a
    request to retake or crop the photo.
    """
    raw = decode_image(data)
    if len(raw) > max_upload_bytes:
        raise ImageTooLargeError(f"Image too large (max {max_upload_bytes // (1024 * 1024)}MB)")

    size_kb = image_size_kb(data)
    logger.info("[Chat] Original image size: %sKB", size_kb)
    prepared = data if data.startswith("data:") else to_data_url("image/jpeg", split_data_url(data)[1])
    if size_kb > compress_over_kb:
        logger.info("[Chat] Compressing large image...")
        prepared = resize_data_url(prepared, 1024, 75)

    if len(decode_image(prepared)) > max_model_bytes:
        raise ImageTooLargeError("Image still too large after compression")
    return prepared
