"""Input and output for the tunnel: the Ethernet side and the name-server socket.

On the Ethernet side frames travel either as datagrams on a connected
socket or over a byte stream, where each frame is preceded by its length
as a two-byte big-endian number.  On the other side there is a UDP socket
talking to (or listening as) a name server on port 53.
"""

from __future__ import annotations

import enum
import errno
import ipaddress
import logging
import socket
from dataclasses import dataclass
from select import select as _wait
from typing import Any, BinaryIO

log = logging.getLogger(__name__)

MAXPKT = 2000
DNS_PORT = 53
LENGTH_PREFIX = 2


class Source(enum.IntEnum):
    """Where a message came from."""

    NAMESERVER = 0
    TUNNEL = 1


@dataclass
class Message:
    """A chunk of data received from one side of the tunnel."""

    data: bytes
    source: Source
    peer: Any = None


def _read_exact(stream: BinaryIO, count: int) -> bytes:
    out = bytearray()
    while len(out) < count:
        chunk = stream.read(count - len(out))
        if not chunk:
            break
        out += chunk
    return bytes(out)


def read_frame(stream: BinaryIO) -> bytes | None:
    """Read one length-prefixed frame, prefix included; None at end of stream."""
    header = _read_exact(stream, LENGTH_PREFIX)
    if len(header) < LENGTH_PREFIX:
        return None
    length = int.from_bytes(header, "big")
    body = _read_exact(stream, length)
    if len(body) < length:
        raise EOFError("stream closed in the middle of a frame")
    return header + body


def _ipv4(ip) -> str:
    try:
        return str(ipaddress.IPv4Address(ip))
    except ValueError:
        raise ValueError(f"{ip!r} is not an IP-address") from None


def open_ns(ip) -> socket.socket:
    """Return a UDP socket connected to the name server at ``ip``."""
    address = _ipv4(ip)
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        sock.connect((address, DNS_PORT))
    except OSError:
        sock.close()
        raise
    log.info("using nameserver %s", address)
    return sock


def open_ns_bind(ip=None) -> socket.socket:
    """Return a UDP socket listening on port 53 of ``ip`` (all addresses if None)."""
    address = "0.0.0.0" if ip is None else _ipv4(ip)
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        sock.bind((address, DNS_PORT))
    except OSError as exc:
        sock.close()
        if exc.errno == errno.EADDRINUSE:
            where = "all local IPs" if address == "0.0.0.0" else "the specified IP"
            message = ("Address is in use, please kill other processes "
                       f"listening on UDP-Port 53 on {where}")
        elif exc.errno in (errno.EACCES, errno.EPERM):
            message = ("Permission denied binding port 53. You generally "
                       "have to be root to bind privileged ports.")
        else:
            message = f"Unexpected error: bind: {exc.strerror}"
        raise OSError(exc.errno, message) from exc
    log.info("listening on 53/UDP")
    return sock


class FrameWriter:
    """Writes whole length-prefixed frames to a stream, buffering partial ones."""

    def __init__(self, stream: BinaryIO) -> None:
        self._stream = stream
        self._pending = bytearray()

    @property
    def pending(self) -> bytes:
        """Bytes received that do not yet form a whole frame."""
        return bytes(self._pending)

    def write(self, data) -> int:
        """Add ``data``; write every frame now complete and return their number."""
        self._pending += bytes(data)
        written = 0
        while len(self._pending) >= LENGTH_PREFIX:
            total = LENGTH_PREFIX + int.from_bytes(self._pending[:LENGTH_PREFIX], "big")
            if len(self._pending) < total:
                break
            self._stream.write(bytes(self._pending[:total]))
            del self._pending[:total]
            written += 1
        if written and hasattr(self._stream, "flush"):
            self._stream.flush()
        return written


class TunnelIO:
    """Waits on the Ethernet side and the name-server socket and moves data."""

    def __init__(self, ns: socket.socket, tun_in: BinaryIO | None = None,
                 tun_out: BinaryIO | None = None,
                 datagram: socket.socket | None = None) -> None:
        self.ns = ns
        self.tun_in = tun_in
        self.datagram = datagram
        self._writer = FrameWriter(tun_out) if tun_out is not None else None

    def select(self, timeout: float | None = None) -> Message | None:
        """Return the next message, or None if nothing arrived within ``timeout``."""
        tunnel = self.datagram if self.datagram is not None else self.tun_in
        readers = [r for r in (tunnel, self.ns) if r is not None]
        ready, _, _ = _wait(readers, [], [], timeout)
        if tunnel is not None and tunnel in ready:
            if self.datagram is not None:
                return Message(self.datagram.recv(MAXPKT), Source.TUNNEL)
            frame = read_frame(self.tun_in)
            if frame is None:
                raise EOFError("tunnel stream closed")
            return Message(frame, Source.TUNNEL)
        if self.ns in ready:
            try:
                data, peer = self.ns.recvfrom(MAXPKT)
            except ConnectionRefusedError:
                return None
            if data:
                return Message(data, Source.NAMESERVER, peer or None)
        return None

    def send_frame(self, data) -> None:
        """Deliver a reassembled frame to the Ethernet side."""
        data = bytes(data)
        if not data:
            return
        if self.datagram is not None:
            self.datagram.send(data)
        elif self._writer is not None:
            self._writer.write(data)
        else:
            raise RuntimeError("no tunnel output configured")

    def send_ns(self, data, peer=None) -> None:
        """Send a DNS packet to ``peer``, or to the connected server if None."""
        if peer is not None:
            self.ns.sendto(bytes(data), peer)
        else:
            self.ns.send(bytes(data))