"""
Image Processing Skill - validate, shrink and convert uploaded photos.

Stateless helpers, mostly pure functions over bytes:
- validate_image_file: type + size gate for uploads
- process_image_for_gemini: resize to 1024px and re-encode as JPEG under 4MB
- data URL helpers, and load_image_source for data/http/file references
- add_watermark: optional "Made with AI" stamp for downloads
"""

import base64
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from io import BytesIO
from pathlib import Path
from typing import Optional

import requests
from PIL import Image, ImageDraw, ImageFont, ImageOps, UnidentifiedImageError

from config import (
    HTTP_TIMEOUT_SECONDS,
    ALLOWED_IMAGE_TYPES,
    MAX_UPLOAD_BYTES,
    MAX_PROCESSED_BYTES,
    MAX_IMAGE_EDGE,
    PROCESSED_IMAGE_FORMAT,
    PROCESSED_IMAGE_QUALITY,
)
from models.errors import ERROR_MESSAGES, ValidationError

logger = logging.getLogger(__name__)

_DATA_URL_RE = re.compile(r"^data:([^;,]+)?(;base64)?,", re.IGNORECASE)

# Pillow format name -> mime type
_FORMAT_MIME_TYPES = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "WEBP": "image/webp",
}

# Lowest JPEG quality tried before shrinking further
_MIN_QUALITY = 40


@dataclass
class ProcessedImage:
    """Result of preparing an upload for the providers."""
    data: bytes
    mime_type: str
    width: int
    height: int

    @property
    def data_url(self) -> str:
        return bytes_to_data_url(self.data, self.mime_type)

    @property
    def base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")


def validate_image_file(data: bytes, content_type: Optional[str]) -> None:
    """
    Reject uploads that are not JPEG/PNG/WebP or are larger than 10MB.

    Raises:
        ValidationError: with a message suitable for the user
    """
    mime_type = (content_type or "").split(";")[0].strip().lower()
    if mime_type == "image/jpg":
        mime_type = "image/jpeg"

    if mime_type not in ALLOWED_IMAGE_TYPES:
        raise ValidationError(
            "Unsupported file type. Please use JPEG, PNG, or WebP images.",
            code="INVALID_IMAGE",
        )

    if len(data) > MAX_UPLOAD_BYTES:
        raise ValidationError(
            "File is too large. Please use an image under 10MB.",
            code="IMAGE_TOO_LARGE",
        )

    if not data:
        raise ValidationError(ERROR_MESSAGES["INVALID_IMAGE"], code="INVALID_IMAGE")


def detect_mime_type(data: bytes) -> Optional[str]:
    """Sniff the real image type with Pillow. Returns None if unreadable."""
    try:
        with Image.open(BytesIO(data)) as image:
            return _FORMAT_MIME_TYPES.get(image.format)
    except (UnidentifiedImageError, OSError):
        return None


def _encode_jpeg(image: Image.Image, quality: int) -> bytes:
    buffer = BytesIO()
    image.save(buffer, format=PROCESSED_IMAGE_FORMAT, quality=quality, optimize=True)
    return buffer.getvalue()


def process_image_for_gemini(
    data: bytes,
    max_edge: int = MAX_IMAGE_EDGE,
    max_bytes: int = MAX_PROCESSED_BYTES,
    quality: int = PROCESSED_IMAGE_QUALITY,
) -> ProcessedImage:
    """
    Resize to at most `max_edge` on the longest side and re-encode as JPEG.

    Quality steps down by 10 until the file fits `max_bytes`; if it still
    does not fit at the lowest quality, the image is shrunk by 25% and the
    loop starts over.
    """
    try:
        image = Image.open(BytesIO(data))
        image = ImageOps.exif_transpose(image)
    except (UnidentifiedImageError, OSError) as e:
        logger.error(f"[ImageProcessing] Could not decode upload: {e}")
        raise ValidationError(ERROR_MESSAGES["PROCESSING_FAILED"], code="INVALID_IMAGE")

    if image.mode != "RGB":
        # JPEG has no alpha; flatten onto white
        background = Image.new("RGB", image.size, (255, 255, 255))
        rgba = image.convert("RGBA")
        background.paste(rgba, mask=rgba.split()[-1])
        image = background

    image.thumbnail((max_edge, max_edge), Image.LANCZOS)

    current_quality = quality
    encoded = _encode_jpeg(image, current_quality)
    while len(encoded) > max_bytes:
        if current_quality > _MIN_QUALITY:
            current_quality -= 10
        else:
            new_size = (max(1, int(image.width * 0.75)), max(1, int(image.height * 0.75)))
            image = image.resize(new_size, Image.LANCZOS)
            current_quality = quality
        encoded = _encode_jpeg(image, current_quality)

    logger.info(
        f"[ImageProcessing] Processed {len(data)} bytes -> {len(encoded)} bytes "
        f"({image.width}x{image.height}, q={current_quality})"
    )

    return ProcessedImage(
        data=encoded,
        mime_type="image/jpeg",
        width=image.width,
        height=image.height,
    )


def convert_to_jpeg(data: bytes, quality: int = PROCESSED_IMAGE_QUALITY) -> bytes:
    """Re-encode any readable image as JPEG at its current size."""
    if detect_mime_type(data) == "image/jpeg":
        return data
    with Image.open(BytesIO(data)) as image:
        rgba = image.convert("RGBA")
    background = Image.new("RGB", rgba.size, (255, 255, 255))
    background.paste(rgba, mask=rgba.split()[-1])
    return _encode_jpeg(background, quality)


# =============================================================================
# Data URL helpers
# =============================================================================


def bytes_to_data_url(data: bytes, mime_type: str = "image/jpeg") -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def is_data_url(url: Optional[str]) -> bool:
    return bool(url) and url.startswith("data:")


def parse_data_url(data_url: str) -> tuple[str, str]:
    """
    Split a data URL into (mime_type, base64_payload).

    Raises:
        ValueError: if the URL is not a base64 data URL or has no payload
    """
    match = _DATA_URL_RE.match(data_url or "")
    if not match or not match.group(2):
        raise ValueError("Invalid data URL: expected base64 data")
    payload = data_url[match.end():]
    if not payload:
        raise ValueError("Invalid data URL: missing base64 data")
    return (match.group(1) or "image/jpeg"), payload


def data_url_to_bytes(data_url: str) -> tuple[bytes, str]:
    """Decode a data URL into (bytes, mime_type)."""
    mime_type, payload = parse_data_url(data_url)
    return base64.b64decode(payload), mime_type


def load_image_source(source: str, timeout: float = HTTP_TIMEOUT_SECONDS) -> tuple[bytes, str]:
    """
    Resolve an image reference into (bytes, mime_type).

    Accepts a data URL, an http(s) URL (fetched with requests) or a local path.
    """
    if is_data_url(source):
        return data_url_to_bytes(source)

    if source.startswith(("http://", "https://")):
        response = requests.get(source, timeout=timeout)
        if not response.ok:
            raise ValueError(f"Failed to fetch image: {response.status_code}")
        mime_type = response.headers.get("Content-Type", "image/jpeg").split(";")[0]
        return response.content, mime_type or "image/jpeg"

    path = Path(source)
    if path.exists():
        data = path.read_bytes()
        return data, detect_mime_type(data) or "image/jpeg"

    raise ValueError("Invalid image format: must be a data URL, HTTP URL or local file")


# =============================================================================
# Watermark + filenames
# =============================================================================

_WATERMARK_MARGIN = 12


def add_watermark(
    data: bytes,
    watermark_text: str = "Made with AI",
    position: str = "bottom-right",
    font_size: int = 16,
    opacity: float = 0.7,
    color: tuple[int, int, int] = (255, 255, 255),
) -> bytes:
    """Stamp a small text watermark on a translucent box. Returns JPEG bytes."""
    with Image.open(BytesIO(data)) as source:
        base = source.convert("RGBA")

    overlay = Image.new("RGBA", base.size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(overlay)
    try:
        font = ImageFont.load_default(size=font_size)
    except TypeError:
        # Pillow < 10.1 has no sized default font
        font = ImageFont.load_default()

    left, top, right, bottom = draw.textbbox((0, 0), watermark_text, font=font)
    text_width, text_height = right - left, bottom - top

    if position == "bottom-left":
        x, y = _WATERMARK_MARGIN, base.height - text_height - _WATERMARK_MARGIN
    elif position == "top-right":
        x, y = base.width - text_width - _WATERMARK_MARGIN, _WATERMARK_MARGIN
    elif position == "top-left":
        x, y = _WATERMARK_MARGIN, _WATERMARK_MARGIN
    else:
        x, y = base.width - text_width - _WATERMARK_MARGIN, base.height - text_height - _WATERMARK_MARGIN

    box_alpha = int(255 * opacity * 0.5)
    text_alpha = int(255 * opacity)
    draw.rectangle(
        (x - 4, y - 2, x + text_width + 4, y + text_height + 4),
        fill=(0, 0, 0, box_alpha),
    )
    draw.text((x - left, y - top), watermark_text, font=font, fill=(*color, text_alpha))

    stamped = Image.alpha_composite(base, overlay).convert("RGB")
    return _encode_jpeg(stamped, PROCESSED_IMAGE_QUALITY)


def generate_filename(prefix: str, extension: str) -> str:
    """e.g. memory-2025-01-31T12-00-00.mp4"""
    timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S")
    return f"{prefix}-{timestamp}.{extension}"
