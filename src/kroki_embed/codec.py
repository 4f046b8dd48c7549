"""Payload codec for Kroki GET URLs.

Kroki accepts diagram source in the request path as deflate-compressed,
base64url-encoded bytes. Encoding is a pure function of the input bytes.
"""

from __future__ import annotations

import base64
import binascii
import zlib

from kroki_embed.errors import EncodingError

__all__ = ["decode", "encode"]

# Maximum zlib compression, matching what Kroki clients send
COMPRESSION_LEVEL = 9


def encode(text: bytes) -> str:
    """Encode diagram text for a Kroki GET URL.

    Compresses with zlib at level 9, then applies standard base64 with
    ``+`` and ``/`` swapped for ``-`` and ``_``. Padding is left as base64
    produces it.

    Args:
        text: Raw diagram source bytes (may be empty).

    Returns:
        URL-safe payload string.

    Raises:
        EncodingError: If compression or encoding fails.
    """
    try:
        compressed = zlib.compress(text, level=COMPRESSION_LEVEL)
    except (TypeError, zlib.error) as e:
        raise EncodingError(f"Cannot compress diagram text: {e}") from e
    return base64.urlsafe_b64encode(compressed).decode("ascii")


def decode(payload: str) -> bytes:
    """Decode a Kroki payload back to the original diagram bytes.

    Args:
        payload: Encoded payload as produced by ``encode``.

    Returns:
        Original diagram source bytes.

    Raises:
        EncodingError: If the payload is not valid base64url/zlib data.
    """
    try:
        compressed = base64.urlsafe_b64decode(payload.encode("ascii"))
        return zlib.decompress(compressed)
    except (binascii.Error, UnicodeEncodeError, zlib.error) as e:
        raise EncodingError(f"Cannot decode payload: {e}") from e
