"""Logging of the IP addresses seen as sources on an Ethernet stream."""

from __future__ import annotations

import getpass
import ipaddress
import logging
import os
from collections.abc import Mapping

log = logging.getLogger(__name__)

MAX_IP = 256
ETH_HEADER = 14
UNKNOWN_HOST = "UNKNOWN_IP_ADDRESS"
_HOST_MAX = 256

_PRIMES4 = (1, 2, 3, 5)
_PRIMES6 = (1, 2, 3, 5, 7, 11, 13, 17, 19, 23, 29, 31, 37, 41, 43, 47)


class TableFullError(RuntimeError):
    """Raised when no slot is left for a new address."""


def hash4(addr) -> int:
    """Return the table slot for a four-byte IPv4 address."""
    return sum(p * b for p, b in zip(_PRIMES4, bytes(addr))) % MAX_IP


def hash6(addr) -> int:
    """Return the table slot for a sixteen-byte IPv6 address."""
    return sum(p * b for p, b in zip(_PRIMES6, bytes(addr))) % MAX_IP


def _caller_host(environ: Mapping[str, str]) -> str:
    client = environ.get("SSH_CLIENT")
    if client is None:
        return UNKNOWN_HOST
    parts = client.split(None, 1)
    host = parts[0] if parts and not client[:1].isspace() else ""
    return host[:_HOST_MAX - 1]


def _caller_user() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return str(os.getuid()) if hasattr(os, "getuid") else "unknown"


class _AddressTable:
    def __init__(self, width: int, hasher) -> None:
        self._empty = bytes(width)
        self._slots = [self._empty] * MAX_IP
        self._hash = hasher

    def insert(self, addr: bytes) -> bool:
        """Store ``addr``; return True if it was not present before."""
        start = self._hash(addr)
        last = (start + MAX_IP - 1) % MAX_IP
        i = start
        while True:
            if self._slots[i] == addr:
                return False
            if self._slots[i] == self._empty:
                self._slots[i] = addr
                return True
            if i == last:
                raise TableFullError("address table full")
            i = (i + 1) % MAX_IP


class IpLog:
    """Remembers source addresses of frames and logs each new one once."""

    def __init__(self, user: str | None = None, host: str | None = None,
                 environ: Mapping[str, str] | None = None) -> None:
        self.user = user if user is not None else _caller_user()
        self.host = host if host is not None else _caller_host(
            os.environ if environ is None else environ)
        self._v4 = _AddressTable(4, hash4)
        self._v6 = _AddressTable(16, hash6)

    def check(self, frame):
        """Inspect one Ethernet frame; return its source address if it is new."""
        frame = bytes(frame)
        if len(frame) < ETH_HEADER + 1:
            return None
        proto = frame[12:14]
        body = ETH_HEADER
        vlan = 0
        if proto == b"\x81\x00":
            if len(frame) < body + 2:
                return None
            vlan = ((frame[body] << 8) + frame[body + 1]) & 0xFFF
            body += 4
        if len(frame) <= body:
            return None
        version = frame[body]
        if proto == b"\x08\x00" and version == 0x45:
            src = frame[body + 12:body + 16]
            if len(src) < 4:
                return None
            try:
                new = self._v4.insert(src)
            except TableFullError:
                log.error("IPv4 table full. Exiting")
                raise TableFullError("IPv4 table full") from None
            label = "VDE-IP4"
        elif proto == b"\x86\xdd" and version == 0x60:
            src = frame[body + 8:body + 24]
            if len(src) < 16:
                return None
            try:
                new = self._v6.insert(src)
            except TableFullError:
                log.error("IPv6 table full. Exiting")
                raise TableFullError("IPv6 table full") from None
            label = "VDE-IP6"
        else:
            return None
        if not new:
            return None
        address = ipaddress.ip_address(src)
        log.info("user %s Real-IP %s has got %s %s on vlan %d",
                 self.user, self.host, label, address, vlan)
        return address