"""Adaptive JPEG compression of screenshots and uploads using Pillow."""

import io
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

# (quality, max_width) rungs, least to most aggressive
SCREENSHOT_LADDER: List[Tuple[int, int]] = [
    (90, 1920),
    (80, 1920),
    (70, 1600),
    (60, 1280),
    (50, 1024),
]

UPLOAD_LADDER: List[Tuple[int, int]] = [
    (85, 1600),
    (75, 1280),
    (65, 1024),
    (55, 800),
    (45, 640),
    (35, 512),
]

MIME_BY_FORMAT = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "WEBP": "image/webp",
    "GIF": "image/gif",
    "BMP": "image/bmp",
}


@dataclass
class CompressionResult:
    """Outcome of one compression run."""
    data: bytes
    mime_type: str
    original_size: int
    quality: Optional[int] = None
    width: Optional[int] = None
    within_budget: bool = True

    @property
    def size(self) -> int:
        return len(self.data)


def detect_mime_type(data: bytes) -> Optional[str]:
    """Return the MIME type Pillow detects for `data`, or None if undecodable."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            return MIME_BY_FORMAT.get(img.format or "", "image/" + (img.format or "octet-stream").lower())
    except (UnidentifiedImageError, OSError, ValueError):
        return None


def _encode(img: Image.Image, quality: int, max_width: int) -> Tuple[bytes, int]:
    if img.width > max_width:
        height = max(1, round(img.height * max_width / img.width))
        img = img.resize((max_width, height), Image.Resampling.LANCZOS)
    buffer = io.BytesIO()
    img.save(buffer, format="JPEG", quality=quality, optimize=True)
    return buffer.getvalue(), img.width


def compress_to_budget(
    data: bytes,
    budget: int,
    ladder: List[Tuple[int, int]] = SCREENSHOT_LADDER,
    mime_type: str = "image/jpeg",
) -> CompressionResult:
    """
    Walk the ladder until the encoded image fits in `budget` bytes.

    Input already within budget is returned unchanged. When every rung is
    still too large, the smallest encoding wins. Undecodable input is
    returned untouched. This function never raises.

    Args:
        data: Encoded image bytes
        budget: Target size in bytes
        ladder: (quality, max_width) rungs to try in order
        mime_type: MIME type of `data`, reported when it is returned as is

    Returns:
        CompressionResult
    """
    original_size = len(data)
    if original_size <= budget:
        return CompressionResult(data=data, mime_type=mime_type, original_size=original_size)

    try:
        with Image.open(io.BytesIO(data)) as opened:
            img = opened.convert("RGB")
    except (UnidentifiedImageError, OSError, ValueError) as e:
        logger.warning("Could not decode image for compression: %s", e)
        return CompressionResult(data=data, mime_type=mime_type,
                                 original_size=original_size, within_budget=False)

    best: Optional[CompressionResult] = None
    for quality, max_width in ladder:
        try:
            encoded, width = _encode(img, quality, max_width)
        except (OSError, ValueError) as e:
            logger.warning("JPEG encode failed at quality %d: %s", quality, e)
            continue
        candidate = CompressionResult(
            data=encoded,
            mime_type="image/jpeg",
            original_size=original_size,
            quality=quality,
            width=width,
            within_budget=len(encoded) <= budget,
        )
        logger.debug("Compression rung q=%d w=%d -> %d bytes", quality, max_width, len(encoded))
        if candidate.within_budget:
            return candidate
        if best is None or candidate.size < best.size:
            best = candidate

    if best is None:
        return CompressionResult(data=data, mime_type=mime_type,
                                 original_size=original_size, within_budget=False)
    logger.warning("Compression ladder exhausted, best effort is %d bytes (budget %d)", best.size, budget)
    return best


def compress_screenshot(data: bytes, budget: int) -> CompressionResult:
    return compress_to_budget(data, budget, SCREENSHOT_LADDER)


def compress_upload(data: bytes, budget: int, mime_type: str) -> CompressionResult:
    return compress_to_budget(data, budget, UPLOAD_LADDER, mime_type=mime_type)
