"""Reassembly of tunnelled frames from numbered fragments."""

from __future__ import annotations

import struct
import time
from dataclasses import dataclass, field
from typing import Callable

NSTX_MAGIC = 0xB4
NSTX_LF = 0x1  # last fragment of this packet
NSTX_CTL = 0x2  # control message
NSTX_TIMEOUT = 30
HEADER_SIZE = 4

_ID_FLAGS = struct.Struct("<H")


@dataclass
class NstxHeader:
    """The four-byte header in front of every fragment."""

    magic: int = NSTX_MAGIC
    seq: int = 0
    chan: int = 0
    ident: int = 0
    flags: int = 0

    def pack(self) -> bytes:
        first = bytes([self.magic & 0xFF, (self.seq & 0x0F) | ((self.chan & 0x0F) << 4)])
        return first + _ID_FLAGS.pack((self.ident & 0x0FFF) | ((self.flags & 0x0F) << 12))

    @classmethod
    def unpack(cls, data) -> "NstxHeader":
        data = bytes(data)
        if len(data) < HEADER_SIZE:
            raise ValueError("fragment shorter than its header")
        (word,) = _ID_FLAGS.unpack_from(data, 2)
        return cls(
            magic=data[0],
            seq=data[1] & 0x0F,
            chan=data[1] >> 4,
            ident=word & 0x0FFF,
            flags=word >> 12,
        )


@dataclass
class _Item:
    timestamp: float = 0.0
    frc: int = 0
    chunks: dict[int, bytes] = field(default_factory=dict)

    def contiguous(self) -> int:
        count = 0
        while count in self.chunks:
            count += 1
        return count

    def assemble(self) -> bytes:
        return b"".join(self.chunks[seq] for seq in sorted(self.chunks))


class Reassembler:
    """Collects fragments by packet id and yields packets once complete."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._items: dict[int, _Item] = {}

    def __len__(self) -> int:
        return len(self._items)

    def handle_packet(self, data) -> bytes | None:
        """Store one fragment; return the whole packet once it is complete."""
        if not data or len(data) < HEADER_SIZE:
            return None
        data = bytes(data)
        header = NstxHeader.unpack(data)
        if not header.ident:
            return None
        item = self._items.setdefault(header.ident, _Item())
        item.timestamp = self._clock()
        if header.flags & NSTX_LF:
            item.frc = header.seq + 1
        item.chunks.setdefault(header.seq, data[HEADER_SIZE:])
        result = None
        if item.frc and item.contiguous() == item.frc:
            del self._items[header.ident]
            result = item.assemble()
        self.expire()
        return result

    def expire(self, now: float | None = None) -> list[int]:
        """Drop incomplete packets idle for too long; return their ids."""
        if now is None:
            now = self._clock()
        stale = [ident for ident, item in self._items.items()
                 if now > item.timestamp + NSTX_TIMEOUT]
        for ident in stale:
            del self._items[ident]
        return stale