"""Base64 encoding of data blocks sent to the file server."""

from __future__ import annotations

import base64


def base64_len(length: int) -> int:
    """Length of the base64 text for ``length`` bytes of data."""
    return 4 * ((length + 2) // 3)


def base64_encode(data: bytes | bytearray | memoryview) -> bytes:
    """Encode ``data`` as padded base64 using the standard alphabet."""
    return base64.b64encode(bytes(data))