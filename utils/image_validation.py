"""Image upload validation by magic bytes."""

from dataclasses import dataclass

from utils.errors import InvalidImageFormat

MIN_IMAGE_BYTES = 100
MAX_IMAGE_BYTES = 20 * 1024 * 1024

JPEG_SIGNATURE = b"\xff\xd8\xff"
PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
RIFF_SIGNATURE = b"RIFF"
WEBP_SIGNATURE = b"WEBP"

SUPPORTED_MIME_TYPES = ("image/jpeg", "image/png", "image/webp")


@dataclass(frozen=True)
class ImageValidation:
    """Outcome of a non-raising validation check."""

    valid: bool
    mime_type: str | None = None
    reason: str = ""


def detect_mime_type(data: bytes) -> str | None:
    """Returns the MIME type matching the buffer's signature, or None."""
    if data[:3] == JPEG_SIGNATURE:
        return "image/jpeg"
    if data[:8] == PNG_SIGNATURE:
        return "image/png"
    if data[:4] == RIFF_SIGNATURE and data[8:12] == WEBP_SIGNATURE:
        return "image/webp"
    return None


def validate_image(
    data: bytes,
    min_bytes: int = MIN_IMAGE_BYTES,
    max_bytes: int = MAX_IMAGE_BYTES,
) -> str:
    """
    Validates an uploaded image buffer and returns its MIME type.

    The signature check is authoritative: any MIME type declared by the
    client is ignored.

    Raises:
        InvalidImageFormat: if the size is out of bounds or no supported
            signature matches.
    """
    size = len(data) if data is not None else 0
    if size < min_bytes:
        raise InvalidImageFormat("Image too small - file may be corrupted")
    if size > max_bytes:
        raise InvalidImageFormat(
            f"Image too large: {size / (1024 * 1024):.1f}MB. "
            f"Max size: {max_bytes / (1024 * 1024):.0f}MB"
        )

    mime_type = detect_mime_type(data)
    if mime_type is None:
        raise InvalidImageFormat(
            "Invalid image file - file header does not match JPEG, PNG, or WebP format"
        )
    return mime_type


def check_image(
    data: bytes,
    min_bytes: int = MIN_IMAGE_BYTES,
    max_bytes: int = MAX_IMAGE_BYTES,
) -> ImageValidation:
    """Non-raising variant of validate_image()."""
    try:
        return ImageValidation(valid=True, mime_type=validate_image(data, min_bytes, max_bytes))
    except InvalidImageFormat as e:
        return ImageValidation(valid=False, reason=e.message)
