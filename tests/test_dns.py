import pytest

from vdetunnel.dns import (
    MAX_PACKET,
    DnsError,
    DnsPacket,
    DomainCodec,
    PacketType,
    ResourceRecord,
    data_to_txt,
    decompress_label,
    labels_to_data,
    str_to_labels,
    txt_to_data,
)

SUFFIX = "tun.example.org"


def test_str_to_labels_encodes_dotted_name():
    assert str_to_labels(SUFFIX) == b"\x03tun\x07example\x03org\x00"


@pytest.mark.parametrize("name", ["a..b", ".a", "x" * 64 + ".org"])
def test_str_to_labels_rejects_bad_labels(name):
    with pytest.raises(DnsError):
        str_to_labels(name)


def test_decompress_label_follows_pointer():
    msg = b"\x00" * 12 + b"\x03foo\x00" + b"\xc0\x0c"
    assert decompress_label(msg, 17) == b"\x03foo\x00"
    assert decompress_label(msg, 12) == b"\x03foo\x00"


def test_decompress_label_detects_pointer_loop():
    with pytest.raises(DnsError):
        decompress_label(b"\xc0\x00\x00", 0)


def test_decompress_label_rejects_pointer_behind_message():
    with pytest.raises(DnsError):
        decompress_label(b"\xc0\x40\x00", 0)


def test_decompress_label_rejects_empty_name():
    with pytest.raises(DnsError):
        decompress_label(b"\x00\x00\x00", 0)


def test_txt_empty_data():
    assert data_to_txt(b"") == b"\x00"
    assert txt_to_data(b"\x00") == b""


@pytest.mark.parametrize("size", [1, 254, 255, 256, 600])
def test_txt_round_trip(size):
    payload = bytes(i % 251 for i in range(size))
    encoded = data_to_txt(payload)
    assert all(n <= 255 for n in encoded[::256])
    assert txt_to_data(encoded) == payload


def test_txt_to_data_rejects_truncated_record():
    with pytest.raises(DnsError):
        txt_to_data(b"\x05ab")


def test_labels_to_data_joins_labels():
    assert labels_to_data(b"\x03abc\x02de\x00") == b"abcde"


def test_domain_codec_round_trip():
    codec = DomainCodec(SUFFIX)
    payload = b"q" * 150
    fqdn = codec.data_to_fqdn(payload)
    assert fqdn.endswith(str_to_labels(SUFFIX))
    assert codec.fqdn_to_data(fqdn) == payload
    assert codec.suffix_length == len(SUFFIX) + 1


def test_domain_codec_rejects_foreign_names():
    codec = DomainCodec(SUFFIX)
    assert codec.fqdn_to_data(str_to_labels("abc.other.net")) is None
    assert codec.fqdn_to_data(codec.data_to_fqdn(b"")) is None


def test_query_packet_round_trip():
    codec = DomainCodec(SUFFIX)
    fqdn = codec.data_to_fqdn(b"hello")
    pkt = DnsPacket(ident=4321, kind=PacketType.QUERY)
    assert pkt.add_query(fqdn) == 0
    wire = pkt.pack()
    assert len(wire) == pkt.size()
    assert wire[2] == 0x01
    parsed = DnsPacket.parse(wire)
    assert parsed.ident == 4321
    name = parsed.pop_query()
    assert name == fqdn
    assert codec.fqdn_to_data(name) == b"hello"
    assert parsed.pop_query() is None


def test_response_packet_round_trip():
    codec = DomainCodec(SUFFIX)
    pkt = DnsPacket(ident=7, kind=PacketType.RESPONSE)
    link = pkt.add_query(codec.data_to_fqdn(b"req"))
    pkt.add_answer(b"\xb4\x00\x00\x00", link)
    wire = pkt.pack()
    assert wire[2:4] == b"\x84\x80"
    parsed = DnsPacket.parse(wire)
    assert [rr.link for rr in parsed.answers] == [0]
    assert txt_to_data(parsed.pop_answer()) == b"\xb4\x00\x00\x00"
    assert parsed.pop_answer() is None


def test_add_answer_returns_last_query_index():
    pkt = DnsPacket(kind=PacketType.RESPONSE)
    pkt.add_query(str_to_labels("a.b"))
    pkt.add_query(str_to_labels("c.d"))
    assert pkt.add_answer(b"x", 1) == 1


def test_non_txt_answer_has_no_data():
    pkt = DnsPacket(ident=1, kind=PacketType.RESPONSE)
    link = pkt.add_query(str_to_labels("abc.example.org"))
    pkt.add_answer(b"data", link)
    raw = bytearray(pkt.pack())
    answer = 12 + pkt.queries[0].length + 4
    raw[answer + 3] = 1
    parsed = DnsPacket.parse(bytes(raw))
    assert len(parsed.answers) == 1
    assert parsed.pop_answer() is None


def test_parse_rejects_short_packet():
    with pytest.raises(DnsError):
        DnsPacket.parse(b"\x00" * 16)


def test_pack_rejects_dangling_link():
    pkt = DnsPacket(kind=PacketType.RESPONSE)
    pkt.answers.append(ResourceRecord(data_to_txt(b"x"), 0))
    with pytest.raises(DnsError):
        pkt.pack()


def test_free_space_response_is_capped():
    assert DnsPacket().free_space(PacketType.RESPONSE) == 253


def test_free_space_negative_when_oversized():
    pkt = DnsPacket()
    while pkt.size() <= MAX_PACKET:
        pkt.add_query(str_to_labels("x" * 60 + ".example.org"))
    assert pkt.free_space(PacketType.RESPONSE) == -1


def test_free_space_query_shrinks_with_suffix():
    pkt = DnsPacket()
    short = pkt.free_space(PacketType.QUERY, 5)
    long = pkt.free_space(PacketType.QUERY, 100)
    assert short >= long >= 0
    assert pkt.free_space(PacketType.QUERY, 1000) == 0