"""Random payload generation for uploads and the companion server."""
from __future__ import annotations

import os

from .constants import RANDOM_FILL_LIMIT


def random_bytes(size: int, fill_limit: int = RANDOM_FILL_LIMIT) -> bytes:
    """
    Return *size* bytes from the OS secure random source.

    The buffer is filled in pieces of at most *fill_limit* bytes, the same
    way a browser has to call ``crypto.getRandomValues`` in 64 KB slices.
    """
    if size < 0:
        raise ValueError("size must be >= 0")
    if fill_limit <= 0:
        raise ValueError("fill_limit must be > 0")

    buf = bytearray(size)
    view = memoryview(buf)
    for offset in range(0, size, fill_limit):
        end = min(offset + fill_limit, size)
        view[offset:end] = os.urandom(end - offset)
    return bytes(buf)
