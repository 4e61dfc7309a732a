"""Tunnel Ethernet frames through DNS queries and TXT answers.

In client mode frames read from standard input are sent as queries to a
name server and the frames carried by its answers are written to standard
output.  In server mode the program answers those queries itself.
"""

from __future__ import annotations

import argparse
import ipaddress
import logging
import sys
import time
from dataclasses import dataclass
from typing import Callable

from .dns import DnsError, DnsPacket, DomainCodec, PacketType, txt_to_data
from .encode import decode, encode
from .pstack import HEADER_SIZE, NSTX_LF, NstxHeader, Reassembler
from .queue import QueueItem, RequestQueue
from .vde_io import Message, Source, TunnelIO, open_ns, open_ns_bind

log = logging.getLogger(__name__)

EX_USAGE = 64
DRQLEN = 10
CLIENT_QUEUE_TIMEOUT = 10
_EMPTY_FRAGMENT = NstxHeader().pack()


@dataclass
class _SendItem:
    data: bytes
    ident: int
    offset: int = 0
    seq: int = 0


class Server:
    """Answers tunnel queries, carrying queued frames back in TXT records."""

    def __init__(self, io: TunnelIO, codec: DomainCodec,
                 clock: Callable[[], float] = time.time) -> None:
        self.io = io
        self.codec = codec
        self.queue = RequestQueue(clock=clock)
        self.reassembler = Reassembler(clock=clock)
        self._sendlist: list[_SendItem] = []
        self._last_id = 0

    def handle_message(self, msg: Message | None) -> None:
        """Process one message (or none), answer what can be answered, expire the rest."""
        if msg is not None:
            if msg.source is Source.NAMESERVER:
                self._handle_query(msg)
            else:
                self.queue_frame(msg.data)
        self._flush()
        self.queue.expire(self._answer_timeout)

    def queue_frame(self, data) -> None:
        """Queue a frame from the Ethernet side to be sent in answers."""
        self._last_id += 1
        self._sendlist.append(_SendItem(bytes(data), self._last_id))

    def _handle_query(self, msg: Message) -> None:
        try:
            packet = DnsPacket.parse(msg.data)
        except DnsError:
            return
        name = packet.pop_query()
        if name is None:
            return
        log.debug("asked for name %r", name)
        self.queue.add(packet.ident, name, msg.peer)
        data = self.codec.fqdn_to_data(name)
        if not data:
            return
        try:
            payload = decode(data)
        except ValueError:
            return
        frame = self.reassembler.handle_packet(payload)
        if frame is not None:
            self.io.send_frame(frame)

    def _next_fragment(self, space: int) -> bytes:
        item = self._sendlist[0]
        dlen = min(space - HEADER_SIZE, len(item.data) - item.offset)
        header = NstxHeader(seq=item.seq, ident=item.ident)
        chunk = item.data[item.offset:item.offset + dlen]
        item.seq += 1
        item.offset += dlen
        if item.offset == len(item.data):
            header.flags = NSTX_LF
            self._sendlist.pop(0)
        return header.pack() + chunk

    def _flush(self) -> None:
        while len(self.queue) and self._sendlist:
            item = self.queue.dequeue()
            packet = DnsPacket(ident=item.ident, kind=PacketType.RESPONSE)
            link = packet.add_query(item.name or b"")
            space = packet.free_space(PacketType.RESPONSE)
            packet.add_answer(self._next_fragment(space), link)
            self.io.send_ns(packet.pack(), item.peer)

    def _answer_timeout(self, item: QueueItem) -> None:
        packet = DnsPacket(ident=item.ident, kind=PacketType.RESPONSE)
        link = packet.add_query(item.name or b"")
        packet.add_answer(_EMPTY_FRAGMENT, link)
        self.io.send_ns(packet.pack(), item.peer)


class Client:
    """Sends frames as queries and collects frames from the answers."""

    def __init__(self, io: TunnelIO, codec: DomainCodec,
                 clock: Callable[[], float] = time.time) -> None:
        self.io = io
        self.codec = codec
        self.queue = RequestQueue(timeout=CLIENT_QUEUE_TIMEOUT, clock=clock)
        self.reassembler = Reassembler(clock=clock)
        start = int(clock())
        self.nsid = start & 0xFFFF
        self._frame_id = start

    def handle_reply(self, reply) -> None:
        """Extract the fragments carried by a DNS answer."""
        try:
            packet = DnsPacket.parse(reply)
        except DnsError:
            return
        while (answer := packet.pop_answer()) is not None:
            try:
                data = txt_to_data(answer)
            except DnsError:
                continue
            frame = self.reassembler.handle_packet(data)
            if frame is not None:
                self.io.send_frame(frame)
        self.queue.dequeue(packet.ident)

    def send_packet(self, data=None) -> None:
        """Send ``data`` as one or more queries; with no data send a single poll."""
        data = bytes(data) if data else b""
        header = NstxHeader(ident=self._frame_id)
        self._frame_id += 1
        while True:
            packet = DnsPacket(ident=self.nsid, kind=PacketType.QUERY)
            space = packet.free_space(PacketType.QUERY, self.codec.suffix_length)
            if space <= HEADER_SIZE:
                raise RuntimeError("no free space in DNS packet")
            room = space - HEADER_SIZE
            if room > len(data):
                room = len(data)
                header.flags = NSTX_LF
            payload = header.pack() + data[:room]
            data = data[room:]
            packet.add_query(self.codec.data_to_fqdn(encode(payload)))
            self.io.send_ns(packet.pack(), None)
            self.queue.add(self.nsid)
            self.nsid = (self.nsid + 1) & 0xFFFF
            header.seq += 1
            if not data:
                break

    def _maintain(self) -> None:
        self.queue.expire()
        while len(self.queue) < DRQLEN:
            self.send_packet(None)


class _Parser(argparse.ArgumentParser):
    def error(self, message: str):
        self.print_usage(sys.stderr)
        self.exit(EX_USAGE, f"{self.prog}: error: {message}\n")


def _build_parser() -> argparse.ArgumentParser:
    parser = _Parser(
        prog="vdetunnel",
        description="Tunnel Ethernet frames from stdin/stdout over DNS.",
        epilog="Without -c the program runs in server mode.")
    parser.add_argument("-i", dest="bind", default="0.0.0.0", metavar="IP",
                        help="bind to port 53 on this IP only")
    parser.add_argument("-c", dest="server", metavar="DNSSERVER",
                        help="client mode: send queries to DNSSERVER")
    parser.add_argument("domain", help="domain name below which data is carried")
    return parser


def _run_client(client: Client, tio: TunnelIO) -> None:
    while True:
        msg = tio.select(1.0)
        if msg is not None:
            if msg.source is Source.NAMESERVER:
                client.handle_reply(msg.data)
            else:
                client.send_packet(msg.data)
        client._maintain()


def _run_server(server: Server, tio: TunnelIO) -> None:
    while True:
        server.handle_message(tio.select(1.0))


def main(argv=None) -> int:
    args = _build_parser().parse_args(argv)
    try:
        ipaddress.IPv4Address(args.bind)
    except ValueError:
        print(f"`{args.bind}' is not an IP-address", file=sys.stderr)
        return EX_USAGE
    try:
        codec = DomainCodec(args.domain)
    except DnsError as exc:
        print(f"invalid domain name {args.domain!r}: {exc}", file=sys.stderr)
        return EX_USAGE

    logging.basicConfig(level=logging.INFO, format="%(name)s: %(message)s")
    tun_in = open(sys.stdin.fileno(), "rb", buffering=0, closefd=False)
    tun_out = sys.stdout.buffer
    try:
        if args.server is not None:
            print("Client Mode", file=sys.stderr)
            with open_ns(args.server) as ns:
                tio = TunnelIO(ns, tun_in=tun_in, tun_out=tun_out)
                _run_client(Client(tio, codec), tio)
        else:
            print("Server Mode", file=sys.stderr)
            with open_ns_bind(args.bind) as ns:
                tio = TunnelIO(ns, tun_in=tun_in, tun_out=tun_out)
                _run_server(Server(tio, codec), tio)
    except (EOFError, KeyboardInterrupt):
        return 0
    except (ValueError, OSError, RuntimeError) as exc:
        print(exc, file=sys.stderr)
        return 1
    finally:
        tun_in.close()
    return 0