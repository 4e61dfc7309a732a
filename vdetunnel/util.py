"""Small helpers for inspecting and dumping packet data."""

from __future__ import annotations

import os
from functools import reduce
from operator import xor


def checksum(buf) -> int:
    """Return the XOR of all bytes in ``buf``."""
    return reduce(xor, bytes(buf), 0)


def dwrite(path, buf) -> None:
    """Write ``buf`` to ``path``, replacing it, readable by the owner only."""
    fd = os.open(path, os.O_RDWR | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "wb") as handle:
        handle.write(bytes(buf))