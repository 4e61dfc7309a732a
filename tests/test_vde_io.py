import io
import os
import socket

import pytest

from vdetunnel.vde_io import (
    FrameWriter,
    Message,
    Source,
    TunnelIO,
    open_ns,
    open_ns_bind,
    read_frame,
)


@pytest.fixture
def dgram_pair():
    a, b = socket.socketpair(socket.AF_UNIX, socket.SOCK_DGRAM)
    yield a, b
    a.close()
    b.close()


@pytest.fixture
def pipe():
    r, w = os.pipe()
    reader = open(r, "rb", buffering=0)
    writer = open(w, "wb", buffering=0)
    yield reader, writer
    reader.close()
    if not writer.closed:
        writer.close()


def test_read_frame_includes_prefix():
    stream = io.BytesIO(b"\x00\x03abcXYZ")
    assert read_frame(stream) == b"\x00\x03abc"
    assert stream.read() == b"XYZ"


@pytest.mark.parametrize("data", [b"", b"\x00"])
def test_read_frame_end_of_stream(data):
    assert read_frame(io.BytesIO(data)) is None


def test_read_frame_truncated():
    with pytest.raises(EOFError):
        read_frame(io.BytesIO(b"\x00\x05ab"))


def test_frame_writer_buffers_partial_frames():
    out = io.BytesIO()
    writer = FrameWriter(out)
    frame = b"\x00\x04wxyz"
    assert writer.write(frame[:3]) == 0
    assert out.getvalue() == b""
    assert writer.pending == frame[:3]
    assert writer.write(frame[3:]) == 1
    assert out.getvalue() == frame
    assert writer.pending == b""


def test_frame_writer_several_frames_in_one_write():
    out = io.BytesIO()
    writer = FrameWriter(out)
    data = b"\x00\x01a\x00\x02bc\x00\x03d"
    assert writer.write(data) == 2
    assert out.getvalue() == b"\x00\x01a\x00\x02bc"
    assert writer.pending == b"\x00\x03d"


def test_open_ns_connects_to_port_53():
    sock = open_ns("127.0.0.1")
    try:
        assert sock.getpeername() == ("127.0.0.1", 53)
    finally:
        sock.close()


@pytest.mark.parametrize("opener", [open_ns, open_ns_bind])
def test_invalid_address(opener):
    with pytest.raises(ValueError):
        opener("not-an-ip")


def test_select_nameserver_message(dgram_pair):
    ns, other = dgram_pair
    tio = TunnelIO(ns)
    other.send(b"dns packet")
    msg = tio.select(1.0)
    assert msg.source is Source.NAMESERVER
    assert msg.data == b"dns packet"


def test_select_tunnel_stream(dgram_pair, pipe):
    ns, _ = dgram_pair
    reader, writer = pipe
    tio = TunnelIO(ns, tun_in=reader)
    writer.write(b"\x00\x02hi")
    msg = tio.select(1.0)
    assert msg == Message(b"\x00\x02hi", Source.TUNNEL)


def test_select_times_out(dgram_pair):
    ns, _ = dgram_pair
    assert TunnelIO(ns).select(0.05) is None


def test_select_end_of_tunnel(dgram_pair, pipe):
    ns, _ = dgram_pair
    reader, writer = pipe
    writer.close()
    with pytest.raises(EOFError):
        TunnelIO(ns, tun_in=reader).select(1.0)


def test_select_datagram_tunnel():
    ns_a, ns_b = socket.socketpair(socket.AF_UNIX, socket.SOCK_DGRAM)
    tun_a, tun_b = socket.socketpair(socket.AF_UNIX, socket.SOCK_DGRAM)
    try:
        tio = TunnelIO(ns_a, datagram=tun_a)
        tun_b.send(b"ethernet frame")
        msg = tio.select(1.0)
        assert msg.source is Source.TUNNEL
        assert msg.data == b"ethernet frame"
        tio.send_frame(b"reply frame")
        assert tun_b.recv(100) == b"reply frame"
    finally:
        for s in (ns_a, ns_b, tun_a, tun_b):
            s.close()


def test_send_frame_to_stream(dgram_pair):
    ns, _ = dgram_pair
    out = io.BytesIO()
    tio = TunnelIO(ns, tun_out=out)
    tio.send_frame(b"\x00\x01z")
    assert out.getvalue() == b"\x00\x01z"


def test_send_frame_without_output(dgram_pair):
    ns, _ = dgram_pair
    with pytest.raises(RuntimeError):
        TunnelIO(ns).send_frame(b"\x00\x01z")


def test_send_ns_to_connected_peer(dgram_pair):
    ns, other = dgram_pair
    sender = TunnelIO(ns)
    receiver = TunnelIO(other)
    sender.send_ns(b"query", None)
    msg = receiver.select(1.0)
    assert msg.source is Source.NAMESERVER
    assert msg.data == b"query"