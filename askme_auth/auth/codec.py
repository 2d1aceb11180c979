"""
URL-safe base64 helpers for session token segments.
"""

import binascii
import re
from typing import Union

from jwt.utils import base64url_decode, base64url_encode

from ..errors import DecodeError


_SEGMENT_PATTERN = re.compile(r"^[A-Za-z0-9_-]*$")


def encode_bytes(data: bytes) -> str:
    """Encode raw bytes as an unpadded base64url segment."""
    return base64url_encode(data).decode("ascii")


def decode_bytes(segment: Union[str, bytes]) -> bytes:
    """
    Decode an unpadded base64url segment back to raw bytes.

    Raises:
        DecodeError: If the segment contains characters outside the url-safe
                     alphabet or has an impossible length
    """
    if isinstance(segment, bytes):
        try:
            segment = segment.decode("ascii")
        except UnicodeDecodeError as e:
            raise DecodeError("Segment is not ASCII") from e

    if not _SEGMENT_PATTERN.match(segment):
        raise DecodeError("Segment contains characters outside the base64url alphabet")

    # A single leftover character can never come out of an encoder
    if len(segment) % 4 == 1:
        raise DecodeError("Segment has an invalid length")

    try:
        return base64url_decode(segment)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"Invalid base64url segment: {e}") from e


def encode(text: str) -> str:
    """Encode text (UTF-8) as an unpadded base64url segment."""
    return encode_bytes(text.encode("utf-8"))


def decode(segment: Union[str, bytes]) -> str:
    """
    Decode a base64url segment produced by `encode`.

    Raises:
        DecodeError: If the segment is not base64url or not UTF-8 text
    """
    raw = decode_bytes(segment)
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecodeError("Segment does not contain UTF-8 text") from e
