"""
Argument Validator Module

This module validates the raw facts handed to the store before they reach the
database: binary fields must be real byte sequences, heights must be
non-negative integers and names must be non-empty.
"""

import logging
from typing import Any

from abledger.error_mitigation.errors import ValidationError

logger = logging.getLogger(__name__)

BINARY_TYPES = (bytes, bytearray, memoryview)


def ensure_bytes(field_name: str, value: Any, allow_empty: bool = True) -> bytes:
    """
    Coerce a binary field to immutable bytes.

    Args:
        field_name: Name of the field, used in the error message
        value: Candidate value
        allow_empty: Whether b"" is acceptable

    Returns:
        bytes: The value as bytes

    Raises:
        ValidationError: If the value is not a byte sequence
    """
    if not isinstance(value, BINARY_TYPES):
        logger.error(f"Rejected {field_name}: expected bytes, got {type(value).__name__}")
        raise ValidationError(f"{field_name} must be bytes, got {type(value).__name__}")

    data = bytes(value)
    if not allow_empty and not data:
        raise ValidationError(f"{field_name} must not be empty")
    return data


def ensure_height(value: Any, field_name: str = "height") -> int:
    """Block heights are non-negative integers (bool is rejected)."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field_name} must be an integer, got {type(value).__name__}")
    if value < 0:
        raise ValidationError(f"{field_name} must not be negative, got {value}")
    return value


def ensure_name(field_name: str, value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field_name} must be a non-empty string")
    return value


def parse_hex(value: str) -> bytes:
    """Parse a hex string, with or without a 0x prefix."""
    text = value[2:] if value[:2].lower() == "0x" else value
    try:
        return bytes.fromhex(text)
    except ValueError:
        raise ValidationError(f"Invalid hex string: {value!r}") from None
