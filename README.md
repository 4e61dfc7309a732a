# vdetunnel

vdetunnel carries Ethernet frames across a network where only DNS gets through.
The client puts outgoing frames into the names of DNS queries. The server sends
its frames back as TXT answers to those queries.

On both ends, frames are read from standard input and written to standard
output. Each frame is preceded by its length as a two-byte big-endian number.

## Installation

```
pip install .
```

## Command line

Start the server on a host that may bind UDP port 53:

```
vdetunnel tun.example.com
```

Start the client and point it at the server's address:

```
vdetunnel -c 192.0.2.1 tun.example.com
```

Arguments:

- `domain`: the domain suffix the tunnel runs under. Client and server must use
  the same one.
- `-c DNSSERVER`: run in client mode and send queries to port 53 of the IPv4
  address `DNSSERVER`. Without this option the program runs as a server.
- `-i IP`: in server mode, bind port 53 on this IPv4 address only. The default
  is `0.0.0.0`.
- `-h`, `--help`: show usage.

In client mode the program keeps up to ten queries outstanding. When there is
no frame to send, it sends empty polling queries so that the server always has
a query it can answer. In server mode, the server answers a query with an empty
fragment if no frame is waiting for it before the query times out.

A bad option or an invalid address or domain exits with status 64. When
standard input closes, the program stops with status 0.

## What it does not do

- It does not attach to a virtual switch socket. Frames always travel over
  stdin/stdout.
- It does not detach from the terminal or run as a daemon.
- It writes its log to standard error through `logging`, not to syslog.

## Library

The building blocks can also be used directly:

- `vdetunnel.encode`: `encode` and `decode` convert bytes to and from a
  64-symbol alphabet that is safe in DNS labels.
- `vdetunnel.dns`: `DnsPacket` builds (`add_query`, `add_answer`, `pack`) and
  parses (`DnsPacket.parse`, `pop_query`, `pop_answer`) packets that hold
  queries and TXT answers. `free_space` tells how much payload still fits.
  `DomainCodec` maps data to a label-encoded name under a suffix
  (`data_to_fqdn`) and back again (`fqdn_to_data`). Malformed input raises
  `DnsError`.
- `vdetunnel.pstack`: `NstxHeader` packs and unpacks the four-byte fragment
  header. `Reassembler.handle_packet` collects fragments and returns a frame
  once it is complete. Incomplete frames are dropped after 30 seconds.
- `vdetunnel.queue`: `RequestQueue` is a FIFO of pending request ids with
  per-item deadlines (`add`, `find`, `dequeue`, `expire`).
- `vdetunnel.vde_io`: `read_frame`, `FrameWriter`, `open_ns`, `open_ns_bind`
  and `TunnelIO` handle the stream side and the name-server socket.
- `vdetunnel.cli`: `Server` and `Client` hold the tunnel logic. `main` runs the
  command.
- `vdetunnel.bitset`: `BitSet` is a fixed-size set of integers with `set`,
  `clear`, `check`, `card`, `negate`, `resize`, and related methods.
- `vdetunnel.iplog`: `IpLog.check` looks at an Ethernet frame. It logs and
  returns the frame's IPv4 or IPv6 source address the first time that address
  is seen. When no table slot is left, it raises `TableFullError`.
- `vdetunnel.util`: `checksum` returns the XOR of a buffer's bytes. `dwrite`
  dumps a buffer to a file that only the owner can read.

```python
from vdetunnel.encode import encode, decode

text = encode(b"\x01\x02\x03\x04")
assert decode(text) == b"\x01\x02\x03\x04"
```

## Tests

```
pip install .[test]
pytest
```