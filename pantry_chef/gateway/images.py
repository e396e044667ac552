"""Photo preparation before ingredient extraction.

Core Functions:
- decode_image_input(): Raw bytes, data URL or plain base64 → bytes
- validate_image_format(): JPEG/PNG only, detected from magic bytes
- validate_image_size(): Enforce the configured size limit
- compress_image(): Downscale/re-encode large photos with Pillow
- guess_mime_type(): MIME type for the upstream request
"""

import base64
import binascii
from io import BytesIO
from typing import Optional

import filetype
from PIL import Image, UnidentifiedImageError

from pantry_chef.utils.logger import logger

SUPPORTED_EXTENSIONS = ("jpg", "jpeg", "png")


def decode_image_input(image: bytes | str) -> Optional[bytes]:
    """Get raw image bytes from the caller's input.

    Accepts raw bytes, a data URL (``data:image/jpeg;base64,...``) or a plain
    base64 string. Returns None when the input cannot be decoded.
    """
    if isinstance(image, (bytes, bytearray)):
        return bytes(image)

    if isinstance(image, str):
        encoded = image.split(",", 1)[1] if image.startswith("data:") and "," in image else image
        try:
            return base64.b64decode(encoded.strip(), validate=True)
        except (binascii.Error, ValueError) as e:
            logger.warning(f"Failed to decode base64 image: {e}")
            return None

    return None


def validate_image_format(image_bytes: bytes) -> bool:
    """Validate image format (JPEG or PNG only).

    Uses the filetype library to detect the format from magic bytes, not from
    a file name.
    """
    kind = filetype.guess(image_bytes)
    if kind is None or kind.extension not in SUPPORTED_EXTENSIONS:
        logger.warning(f"Invalid image format: {kind.extension if kind else 'unknown'}. Only JPEG and PNG supported.")
        return False
    return True


def validate_image_size(image_bytes: bytes, max_size_mb: int) -> bool:
    size_mb = len(image_bytes) / (1024 * 1024)
    if size_mb > max_size_mb:
        logger.warning(f"Image size {size_mb:.2f}MB exceeds limit of {max_size_mb}MB")
        return False
    return True


def guess_mime_type(image_bytes: bytes) -> str:
    kind = filetype.guess(image_bytes)
    if kind is not None and kind.extension == "png":
        return "image/png"
    return "image/jpeg"


def compress_image(image_bytes: bytes, threshold_kb: int = 300, max_width: int = 1024) -> bytes:
    """Compress a photo for API transmission using Pillow.

    Images smaller than ``threshold_kb`` are returned untouched. Larger ones
    are converted to RGB, resized to ``max_width`` and re-encoded as JPEG
    (quality 85, optimized, progressive).

    Returns:
        Compressed JPEG bytes, or the original bytes if Pillow cannot read the
        image or the result would not be smaller.
    """
    size_kb = len(image_bytes) / 1024
    if size_kb < threshold_kb:
        logger.debug(f"Image size {size_kb:.1f}KB below compression threshold ({threshold_kb}KB), skipping")
        return image_bytes

    try:
        img = Image.open(BytesIO(image_bytes))

        # Flatten transparency onto white before JPEG encoding
        if img.mode in ("RGBA", "LA", "P"):
            img = img.convert("RGBA")
            rgb_img = Image.new("RGB", img.size, (255, 255, 255))
            rgb_img.paste(img, mask=img.split()[-1])
            img = rgb_img
        elif img.mode != "RGB":
            img = img.convert("RGB")

        if img.width > max_width:
            new_height = int(img.height * max_width / img.width)
            img = img.resize((max_width, new_height), Image.Resampling.LANCZOS)

        output = BytesIO()
        img.save(output, format="JPEG", quality=85, optimize=True, progressive=True)
        compressed = output.getvalue()
    except (UnidentifiedImageError, OSError, ValueError) as e:
        logger.warning(f"Image compression failed, sending original: {e}")
        return image_bytes

    if len(compressed) >= len(image_bytes):
        return image_bytes

    logger.debug(
        f"Image compressed: {size_kb:.1f}KB → {len(compressed) / 1024:.1f}KB "
        f"({(1 - len(compressed) / len(image_bytes)) * 100:.1f}% reduction)"
    )
    return compressed
