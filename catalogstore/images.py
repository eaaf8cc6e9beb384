"""Image preparation before upload.

Photos straight from a phone are far larger than a storefront needs, so every
queued file is downscaled and re-encoded before it is committed. WebP is
preferred; JPEG is used when the local Pillow build cannot write WebP.
"""
from __future__ import annotations

import io
import logging
from dataclasses import dataclass

from PIL import Image, ImageOps, UnidentifiedImageError

from .errors import ImageRejected

LOGGER = logging.getLogger(__name__)

MAX_IMAGE_BYTES = 4 * 1024 * 1024
MAX_DIMENSION = 1600
QUALITY = 85
ACCEPTED_IMAGE_TYPES = ("image/png", "image/jpeg", "image/webp", "image/avif")
_ACCEPTED_EXTENSIONS = {".png", ".jpg", ".jpeg", ".webp", ".avif"}


@dataclass(frozen=True)
class PendingImage:
    """A file queued for upload, referenced by ``temp_id`` until it has a path."""

    temp_id: str
    data: bytes
    filename: str = ""
    content_type: str = ""


@dataclass(frozen=True)
class ProcessedImage:
    data: bytes
    extension: str


def validate_upload(filename: str, content_type: str, size: int) -> None:
    """Reject files that are not a supported image type or are too large."""

    name = filename or "image"
    kind = (content_type or "").lower()
    suffix = ("." + name.rsplit(".", 1)[-1].lower()) if "." in name else ""
    if kind not in ACCEPTED_IMAGE_TYPES and suffix not in _ACCEPTED_EXTENSIONS:
        raise ImageRejected(f"{name}: unsupported format")
    if size > MAX_IMAGE_BYTES:
        limit = MAX_IMAGE_BYTES // (1024 * 1024)
        raise ImageRejected(f"{name}: larger than {limit} MB", too_large=True)


def _encode(img: Image.Image, fmt: str) -> bytes:
    buffer = io.BytesIO()
    img.save(buffer, format=fmt, quality=QUALITY)
    return buffer.getvalue()


def process_image(image: PendingImage) -> ProcessedImage:
    """Downscale and re-encode ``image`` for the storefront."""

    try:
        with Image.open(io.BytesIO(image.data)) as source:
            source.load()
            img = ImageOps.exif_transpose(source)
    except Image.DecompressionBombError as exc:
        raise ImageRejected(f"{image.filename or image.temp_id}: image dimensions are too large") from exc
    except (UnidentifiedImageError, OSError) as exc:
        raise ImageRejected(f"{image.filename or image.temp_id}: not a readable image") from exc

    img.thumbnail((MAX_DIMENSION, MAX_DIMENSION), Image.Resampling.LANCZOS)
    try:
        return ProcessedImage(data=_encode(img, "WEBP"), extension="webp")
    except (KeyError, OSError) as exc:
        LOGGER.warning("WebP encoding unavailable, falling back to JPEG: %s", exc)
    if img.mode not in ("RGB", "L"):
        img = img.convert("RGB")
    return ProcessedImage(data=_encode(img, "JPEG"), extension="jpg")
