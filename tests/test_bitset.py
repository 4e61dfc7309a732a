import pytest

from vdetunnel.bitset import BitSet


def test_set_and_check():
    bits = BitSet(40)
    bits.set(31)
    bits.set(33)
    assert bits.check(31)
    assert bits.check(33)
    assert not bits.check(32)
    assert bits.card() == 2
    assert list(bits) == [31, 33]


def test_clear():
    bits = BitSet(40, [31, 33])
    bits.clear(31)
    assert not bits.check(31)
    assert bits.card() == 1
    bits.clear(33)
    assert bits.is_empty()


def test_resize_grow_keeps_members():
    bits = BitSet(40, [31, 33])
    bits.resize(127)
    assert list(bits) == [31, 33]
    bits.set(126)
    assert 126 in bits


def test_resize_shrink_drops_members():
    bits = BitSet(40, [31, 33])
    bits.resize(32)
    assert list(bits) == [31]
    with pytest.raises(IndexError):
        bits.check(33)


def test_zap_empties():
    bits = BitSet(10, [1, 2, 9])
    bits.zap()
    assert bits.is_empty()
    assert bits.card() == 0


def test_negate_within_size():
    bits = BitSet(8, [1])
    bits.negate()
    assert bits.card() == 7
    assert not bits.check(1)
    bits.negate()
    assert list(bits) == [1]


def test_add_and_remove():
    a = BitSet(16, [1, 2])
    b = BitSet(16, [2, 5])
    a.add(b)
    assert list(a) == [1, 2, 5]
    a.remove(b)
    assert list(a) == [1]


def test_size_mismatch_raises():
    with pytest.raises(ValueError):
        BitSet(8).add(BitSet(9))
    with pytest.raises(ValueError):
        BitSet(8).remove(BitSet(9))


def test_out_of_range_index():
    bits = BitSet(8)
    with pytest.raises(IndexError):
        bits.set(8)
    with pytest.raises(IndexError):
        bits.clear(-1)


def test_copy_is_independent():
    original = BitSet(20, [3, 4])
    clone = original.copy()
    assert clone == original
    clone.set(10)
    assert not original.check(10)
    assert clone != original


def test_card_matches_iteration():
    members = [0, 7, 63, 64, 100]
    bits = BitSet(128, members)
    assert bits.card() == len(list(bits))
    assert list(bits) == members