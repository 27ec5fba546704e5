"""Shared byte helpers and the ChunkAddress alias."""

from typing import Optional

from common.constants import ADDRESS_SIZE
from common.exceptions import EncodingError

ChunkAddress = bytes


def from_hex(value: str, expected_size: Optional[int] = None) -> bytes:
    """
    Decode a hex string, tolerating an optional 0x prefix.

    Args:
        value: Hex string
        expected_size: Required decoded length in bytes, if any

    Returns:
        Decoded bytes

    Raises:
        EncodingError: If the string is not valid hex or has the wrong length
    """
    text = value.strip()
    if text.startswith(("0x", "0X")):
        text = text[2:]
    try:
        data = bytes.fromhex(text)
    except ValueError:
        raise EncodingError(f"Invalid hex string: {value!r}")
    if expected_size is not None and len(data) != expected_size:
        raise EncodingError(f"Expected {expected_size} bytes, got {len(data)} bytes")
    return data


def require_length(name: str, value: bytes, size: int = ADDRESS_SIZE) -> bytes:
    """Fail with EncodingError unless value is exactly size bytes."""
    if not isinstance(value, (bytes, bytearray)):
        raise EncodingError(f"Expected {name} to be bytes, got {type(value).__name__}")
    if len(value) != size:
        raise EncodingError(f"Expected {size} byte {name}, got {len(value)} bytes")
    return bytes(value)
