"""Validation utilities for Party Decoration Studio request fields."""

import logging
import re

logger = logging.getLogger(__name__)

NAME_MAX_LENGTH = 100
THEME_MAX_LENGTH = 200
DETAILS_MAX_LENGTH = 1000
DEFAULT_IMAGE_SIZE = "1024x1024"

_UUID_PATTERN = re.compile(
    r"[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}",
    re.IGNORECASE,
)
_SIZE_PATTERN = re.compile(r"\d+x\d+")
_ASPECT_RATIO_PATTERN = re.compile(r"\d+:\d+")


class ValidationError(Exception):
    """User-friendly validation error.

    This exception is raised when user input fails validation.
    The message is intended to be returned directly to the client.
    """

    pass


def sanitize_text(value: object, max_length: int = 500) -> str:
    """Trim, truncate, and strip angle brackets from free text.

    Non-string input yields an empty string.

    Args:
        value: Raw input value
        max_length: Maximum number of characters kept after trimming

    Returns:
        Sanitized text
    """
    if not isinstance(value, str):
        return ""

    return re.sub(r"[<>]", "", value.strip()[:max_length])


def validate_name(name: object) -> str:
    """Validate and sanitize a project name.

    Args:
        name: Raw name from the request body

    Returns:
        Sanitized name

    Raises:
        ValidationError: If the name is missing, too long, or empty after sanitizing
    """
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Name is required and must be a non-empty string")

    if len(name.strip()) > NAME_MAX_LENGTH:
        raise ValidationError(f"Name is too long (maximum {NAME_MAX_LENGTH} characters)")

    sanitized = sanitize_text(name, NAME_MAX_LENGTH)
    if not sanitized:
        raise ValidationError("Name contains only invalid characters")

    return sanitized


def validate_uuid(value: object) -> str:
    """Validate that an identifier is a version 4 UUID string.

    Raises:
        ValidationError: If the value is not a string or not a UUID4
    """
    if not isinstance(value, str):
        raise ValidationError("ID must be a string")

    if not _UUID_PATTERN.fullmatch(value):
        logger.debug(f"Rejected malformed id: {value!r}")
        raise ValidationError("Invalid ID format")

    return value


def validate_theme(theme: object) -> str:
    """Validate the party theme, which is required for every generation.

    Raises:
        ValidationError: If the theme is missing or empty after sanitizing
    """
    if not isinstance(theme, str) or not theme.strip():
        raise ValidationError("Theme is required")

    sanitized = sanitize_text(theme, THEME_MAX_LENGTH)
    if not sanitized:
        raise ValidationError("Theme contains only invalid characters")

    return sanitized


def validate_details(details: object) -> str | None:
    """Validate optional creative direction text.

    Returns:
        Sanitized details, or None when absent or empty

    Raises:
        ValidationError: If details are present but not a string
    """
    if details is None or details == "":
        return None

    if not isinstance(details, str):
        raise ValidationError("Details must be a string")

    sanitized = sanitize_text(details, DETAILS_MAX_LENGTH)
    return sanitized or None


def resolve_image_size(size: object) -> str:
    """Return *size* when it looks like ``WIDTHxHEIGHT``, else the default size."""
    if isinstance(size, str) and _SIZE_PATTERN.fullmatch(size):
        return size
    return DEFAULT_IMAGE_SIZE


def resolve_aspect_ratio(aspect_ratio: object) -> str | None:
    """Return *aspect_ratio* when it looks like ``W:H``, else None."""
    if isinstance(aspect_ratio, str) and _ASPECT_RATIO_PATTERN.fullmatch(aspect_ratio):
        return aspect_ratio
    return None
