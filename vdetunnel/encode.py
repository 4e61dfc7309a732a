"""Encoding of binary data into characters that are valid in DNS labels.

Every three input bytes become four characters from a 64-symbol alphabet.
The first output character records how many padding bytes were added to
the last group so that decoding can drop them again.
"""

from __future__ import annotations

ALPHABET = b"abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ-_1234567890"
_REVERSE = {symbol: index for index, symbol in enumerate(ALPHABET)}


def _as_bytes(value) -> bytes:
    if isinstance(value, str):
        return value.encode("latin-1")
    return bytes(value)


def encode(data) -> bytes:
    """Encode ``data`` into label-safe characters."""
    data = _as_bytes(data)
    cut = (3 - len(data) % 3) % 3
    padded = data + b"\x00" * cut
    out = bytearray([ALPHABET[cut]])
    for start in range(0, len(padded), 3):
        a, b, c = padded[start:start + 3]
        out.append(ALPHABET[a >> 2])
        out.append(ALPHABET[((a & 0x03) << 4) | (b >> 4)])
        out.append(ALPHABET[((b & 0x0F) << 2) | (c >> 6)])
        out.append(ALPHABET[c & 0x3F])
    return bytes(out)


def decode(text) -> bytes:
    """Decode characters produced by :func:`encode` back into bytes."""
    raw = _as_bytes(text)
    end = raw.find(0)
    if end >= 0:
        raw = raw[:end]
    if not raw:
        raise ValueError("nothing to decode")
    try:
        values = [_REVERSE[symbol] for symbol in raw]
    except KeyError as exc:
        raise ValueError(f"invalid character {chr(exc.args[0])!r} in encoded data") from None
    out = bytearray()
    off = 1
    while off + 3 < len(values):
        w, x, y, z = values[off:off + 4]
        out.append(((w << 2) | ((x & 0x30) >> 4)) & 0xFF)
        out.append((((x & 0x0F) << 4) | ((y & 0x3C) >> 2)) & 0xFF)
        out.append((((y & 0x03) << 6) | z) & 0xFF)
        off += 4
    length = len(out) - values[0]
    if length < 0:
        raise ValueError("padding count exceeds decoded length")
    return bytes(out[:length])