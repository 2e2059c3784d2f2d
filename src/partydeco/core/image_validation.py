"""Reference image validation for uploaded data URLs.

Reference images reach the API as ``data:<mime>;base64,<payload>`` strings.
Before one is forwarded to the image provider it must:

- be a well-formed base64 data URL
- declare one of the allowed image MIME types
- decode to at most :data:`MAX_FILE_SIZE` bytes
- actually contain an image of the declared type

The content check is delegated to Pillow, which identifies the format from
the file header without decoding the full image.
"""

from __future__ import annotations

import base64
import binascii
import io
import logging
import re

from PIL import Image, UnidentifiedImageError

from partydeco.core.validation import ValidationError

logger = logging.getLogger(__name__)

MAX_FILE_SIZE = 5 * 1024 * 1024
MAX_REFERENCE_IMAGES = 10

# Pillow format name -> MIME type accepted for that format.
_FORMAT_MIME_TYPES: dict[str, str] = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "GIF": "image/gif",
    "WEBP": "image/webp",
}
ALLOWED_IMAGE_MIME_TYPES = tuple(_FORMAT_MIME_TYPES.values())

_DATA_URL_PATTERN = re.compile(r"^data:(.+?);base64,(.+)$", re.DOTALL)


def parse_data_url(data_url: str) -> tuple[str, str] | None:
    """Split a base64 data URL into ``(mime_type, base64_payload)``.

    Returns:
        The parts, or None when the string is not a base64 data URL.
    """
    match = _DATA_URL_PATTERN.match(data_url)
    if not match:
        return None
    return match.group(1), match.group(2)


def detect_image_mime_type(data: bytes) -> str | None:
    """Identify the MIME type of raw image bytes using Pillow.

    Returns:
        One of :data:`ALLOWED_IMAGE_MIME_TYPES`, or None when the bytes are
        not a supported image.
    """
    try:
        with Image.open(io.BytesIO(data)) as image:
            image_format = image.format
    except (UnidentifiedImageError, OSError):
        return None
    return _FORMAT_MIME_TYPES.get(image_format or "")


def validate_image_data_url(data_url: str) -> str:
    """Validate a single reference image data URL.

    Args:
        data_url: Candidate ``data:`` URL

    Returns:
        The unchanged data URL when valid

    Raises:
        ValidationError: Describing the first check that failed
    """
    if not data_url.startswith("data:"):
        raise ValidationError("Not a valid data URL")

    parts = parse_data_url(data_url)
    if parts is None:
        raise ValidationError("Invalid data URL format")

    mime_type, payload = parts
    if mime_type not in ALLOWED_IMAGE_MIME_TYPES:
        raise ValidationError(f"Unsupported image type: {mime_type}")

    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError("Failed to validate image data") from e

    if len(data) > MAX_FILE_SIZE:
        raise ValidationError(f"File too large (max {MAX_FILE_SIZE // (1024 * 1024)}MB)")

    detected = detect_image_mime_type(data)
    if detected is None:
        raise ValidationError("File does not appear to be a valid image")

    if detected != mime_type:
        raise ValidationError("MIME type does not match file content")

    return data_url


def filter_image_data_urls(values: object) -> tuple[list[str], list[str]]:
    """Split reference images into valid data URLs and rejection messages.

    Invalid entries are dropped rather than failing the whole request.  At
    most :data:`MAX_REFERENCE_IMAGES` valid images are kept.

    Args:
        values: The raw ``referenceImages`` value from a request

    Returns:
        Tuple of ``(valid_data_urls, error_messages)``
    """
    if not isinstance(values, list):
        return [], []

    valid: list[str] = []
    errors: list[str] = []

    for value in values:
        if not isinstance(value, str):
            errors.append("Invalid data type (expected string)")
            continue
        try:
            valid.append(validate_image_data_url(value))
        except ValidationError as e:
            errors.append(str(e))

    if errors:
        logger.warning(f"Dropped {len(errors)} invalid reference image(s): {'; '.join(errors)}")

    if len(valid) > MAX_REFERENCE_IMAGES:
        logger.warning(f"Keeping the first {MAX_REFERENCE_IMAGES} of {len(valid)} reference images")
        valid = valid[:MAX_REFERENCE_IMAGES]

    return valid, errors
