"""Building and parsing the DNS packets that carry tunnelled data.

Queries carry data encoded in the labels of a domain name below a fixed
suffix; responses carry data in TXT records that point back at a query.
"""

from __future__ import annotations

import enum
import logging
import struct
from dataclasses import dataclass, field

log = logging.getLogger(__name__)

MAX_PACKET = 512
TYPE_TXT = 0x0010
CLASS_IN = 0x0001
MAX_LABEL = 63
MAX_TXT_CHUNK = 255
MAX_POINTER_FOLLOWS = 20

_HEADER = struct.Struct(">HHHHHH")
_ANSWER_HEADER = struct.Struct(">HHIH")
_QUERY_TRAILER = struct.Struct(">HH")
_ANSWER_PREFIX = struct.Struct(">HHHIH")

_FLAGS_RESPONSE = 0x8480  # response, authoritative answer, recursion available
_FLAGS_QUERY = 0x0100  # recursion desired


class DnsError(ValueError):
    """Raised when a name or packet cannot be encoded or decoded."""


class PacketType(enum.IntEnum):
    QUERY = 0x01
    RESPONSE = 0x02


def _as_bytes(value) -> bytes:
    if isinstance(value, str):
        return value.encode("latin-1")
    return bytes(value)


def _cstr(value) -> bytes:
    """Return the bytes of ``value`` up to its first NUL byte."""
    raw = _as_bytes(value)
    end = raw.find(0)
    return raw if end < 0 else raw[:end]


def _cdiv(a: int, b: int) -> int:
    quotient = abs(a) // abs(b)
    return quotient if (a >= 0) == (b > 0) else -quotient


def _chunked(data: bytes, size: int) -> bytes:
    out = bytearray()
    for start in range(0, len(data), size):
        piece = data[start:start + size]
        out.append(len(piece))
        out += piece
    out.append(0)
    return bytes(out)


def str_to_labels(name) -> bytes:
    """Encode a dotted name as length-prefixed labels ending in a zero byte."""
    *parts, last = _cstr(name).split(b".")
    out = bytearray()
    for part in parts:
        if not 0 < len(part) <= MAX_LABEL:
            raise DnsError("too long or zero-length label")
        out.append(len(part))
        out += part
    if len(last) > 0xFF:
        raise DnsError("label too long")
    out.append(len(last))
    out += last
    out.append(0)
    return bytes(out)


def decompress_label(msg, offset: int) -> bytes:
    """Return the uncompressed labels found at ``offset`` inside ``msg``."""
    msg = _as_bytes(msg)
    size = len(msg)
    ptr = offset
    followed = 0
    out = bytearray()
    while True:
        if not 0 <= ptr < size:
            raise DnsError("label runs past the end of the message")
        chunk = msg[ptr]
        if chunk == 0:
            break
        if chunk > MAX_LABEL:
            if ptr >= size - 1:
                raise DnsError("bad pointer at end of message")
            if followed > MAX_POINTER_FOLLOWS:
                raise DnsError("too many pointer loops")
            target = (chunk % 64) * 256 + msg[ptr + 1]
            if target >= size:
                raise DnsError("pointer offset behind message")
            ptr = target
            followed += 1
        else:
            if ptr + chunk + 1 >= size:
                raise DnsError("invalid label length")
            out += msg[ptr:ptr + chunk + 1]
            ptr += chunk + 1
    if not out:
        raise DnsError("empty label")
    out.append(0)
    return bytes(out)


def data_to_txt(data) -> bytes:
    """Split data into TXT character strings of at most 255 bytes."""
    return _chunked(_as_bytes(data), MAX_TXT_CHUNK)


def txt_to_data(data) -> bytes:
    """Join the character strings of TXT record data back together."""
    data = _as_bytes(data)
    out = bytearray()
    pos = 0
    while True:
        if pos >= len(data):
            raise DnsError("TXT data is not terminated")
        length = data[pos]
        pos += 1
        if length > len(data) - pos:
            raise DnsError("TXT string longer than the record")
        out += data[pos:pos + length]
        pos += length
        if length == 0:
            return bytes(out)


def labels_to_data(data) -> bytes:
    """Concatenate the contents of the labels in ``data``."""
    data = _as_bytes(data)
    out = bytearray()
    pos = 0
    while pos < len(data):
        length = data[pos]
        pos += 1
        if length > MAX_LABEL or length > len(data) - pos:
            break
        out += data[pos:pos + length]
        pos += length
        if length == 0:
            break
    return bytes(out)


def _skip_label(buf: bytes, ptr: int, remain: int) -> tuple[int, int]:
    while True:
        if ptr >= len(buf):
            raise DnsError("label runs past the end of the message")
        length = buf[ptr]
        if length == 0:
            break
        if remain < 2:
            raise DnsError("message too short for label")
        if length & 0xC0:
            ptr += 1
            remain -= 1
            break
        remain -= length
        if remain < 1:
            raise DnsError("message too short for label")
        ptr += length + 1
    return ptr + 1, remain - 1


@dataclass
class ResourceRecord:
    """A query name or TXT answer; ``link`` indexes the query an answer refers to."""

    data: bytes | None = None
    link: int = 0

    @property
    def length(self) -> int:
        return len(self.data) if self.data else 0


@dataclass
class DnsPacket:
    ident: int = 0
    kind: PacketType = PacketType.QUERY
    queries: list[ResourceRecord] = field(default_factory=list)
    answers: list[ResourceRecord] = field(default_factory=list)

    def add_query(self, data) -> int:
        """Add a query for the label-encoded name ``data``; return its index."""
        self.queries.append(ResourceRecord(_cstr(data) + b"\x00"))
        return len(self.queries) - 1

    def add_answer(self, data, link: int) -> int:
        """Add a TXT answer carrying ``data`` that refers to query ``link``."""
        self.answers.append(ResourceRecord(data_to_txt(data), link))
        return len(self.queries) - 1

    def size(self) -> int:
        return (_HEADER.size
                + sum(rr.length + 4 for rr in self.queries)
                + sum(rr.length + 12 for rr in self.answers))

    def pack(self) -> bytes:
        size = self.size()
        if size > MAX_PACKET:
            log.warning("constructed non-conforming DNS packet (size: %d)", size)
        flags = _FLAGS_RESPONSE if self.kind == PacketType.RESPONSE else _FLAGS_QUERY
        out = bytearray(_HEADER.pack(self.ident & 0xFFFF, flags,
                                     len(self.queries), len(self.answers), 0, 0))
        offsets = []
        for rr in self.queries:
            offsets.append(len(out))
            out += rr.data or b""
            out += _QUERY_TRAILER.pack(TYPE_TXT, CLASS_IN)
        for rr in self.answers:
            if not 0 <= rr.link < len(offsets):
                raise DnsError(f"answer refers to missing query {rr.link}")
            pointer = (0xC000 | offsets[rr.link]) & 0xFFFF
            payload = rr.data or b""
            out += _ANSWER_PREFIX.pack(pointer, TYPE_TXT, CLASS_IN, 0, len(payload))
            out += payload
        return bytes(out)

    @classmethod
    def parse(cls, buf) -> "DnsPacket":
        buf = _as_bytes(buf)
        if len(buf) < 17:
            raise DnsError("packet too short")
        ident, _flags, qdcount, ancount, _ns, _ar = _HEADER.unpack_from(buf)
        packet = cls(ident=ident)
        ptr = _HEADER.size
        remain = len(buf) - _HEADER.size
        offsets: list[int] = []

        for _ in range(qdcount):
            offsets.append(ptr)
            packet.queries.append(ResourceRecord(decompress_label(buf, ptr)))
            ptr, remain = _skip_label(buf, ptr, remain)
            ptr += 4
            remain -= 4

        for _ in range(ancount):
            if ptr + 2 > len(buf):
                raise DnsError("answer runs past the end of the message")
            link = -1
            if buf[ptr] & 0xC0 == 0xC0:
                target = (buf[ptr] & 0x3F) * 256 + buf[ptr + 1]
                if target in offsets:
                    link = offsets.index(target)
            ptr, remain = _skip_label(buf, ptr, remain)
            if ptr + _ANSWER_HEADER.size > len(buf):
                raise DnsError("answer header runs past the end of the message")
            rtype, _rclass, _ttl, datalen = _ANSWER_HEADER.unpack_from(buf, ptr)
            ptr += _ANSWER_HEADER.size
            remain -= _ANSWER_HEADER.size
            if rtype != TYPE_TXT:
                packet.answers.append(ResourceRecord(None, link))
                ptr += datalen
                remain -= datalen
                continue
            if ptr + datalen > len(buf):
                raise DnsError("answer data runs past the end of the message")
            packet.answers.append(ResourceRecord(buf[ptr:ptr + datalen], link))
            ptr += datalen
            remain -= datalen
        return packet

    def pop_query(self) -> bytes | None:
        """Remove the first query and return its name, or None if there is none."""
        if not self.queries:
            return None
        return self.queries.pop(0).data

    def pop_answer(self) -> bytes | None:
        """Remove the first answer and return its data, or None."""
        if not self.answers:
            return None
        return self.answers.pop(0).data

    def free_space(self, kind, suffix_length: int = 0) -> int:
        """Return how many payload bytes still fit in a packet of ``kind``."""
        raw = MAX_PACKET - self.size()
        if raw < 0:
            return -1
        ret = 0
        if kind == PacketType.RESPONSE:
            ret = min(raw - 14, 253)
        elif kind == PacketType.QUERY:
            ret = _cdiv(189 * (254 - suffix_length), 256) - 6
            ret = min(ret, 183 - _cdiv(189 * suffix_length, 256))
        return max(ret, 0)


class DomainCodec:
    """Maps payload strings to names below a fixed domain suffix and back."""

    def __init__(self, suffix) -> None:
        self.suffix = str_to_labels(suffix)
        self.suffix_length = len(_cstr(suffix)) + 1

    def data_to_fqdn(self, data) -> bytes:
        """Return the label-encoded name carrying ``data`` under the suffix."""
        return _chunked(_cstr(data), MAX_LABEL)[:-1] + self.suffix

    def fqdn_to_data(self, fqdn) -> bytes | None:
        """Return the payload of a label-encoded name, or None if not ours."""
        name = _cstr(fqdn)
        offset = name.find(self.suffix[:-1])
        if offset <= 0:
            return None
        return _cstr(labels_to_data(name[:offset]))