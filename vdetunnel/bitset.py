"""A fixed-size set of small non-negative integers stored as bits."""

from __future__ import annotations

from collections.abc import Iterable, Iterator


class BitSet:
    """Set of integers in ``range(size)`` backed by a single bit field."""

    __slots__ = ("_size", "_bits")

    def __init__(self, size: int, members: Iterable[int] = ()) -> None:
        if size < 0:
            raise ValueError("size must not be negative")
        self._size = size
        self._bits = 0
        for index in members:
            self.set(index)

    @property
    def size(self) -> int:
        return self._size

    def _mask(self) -> int:
        return (1 << self._size) - 1

    def _validate(self, index: int) -> None:
        if not 0 <= index < self._size:
            raise IndexError(f"bit {index} outside set of size {self._size}")

    def _require_same_size(self, other: "BitSet") -> None:
        if other._size != self._size:
            raise ValueError("bit sets must have the same size")

    def check(self, index: int) -> bool:
        """Return True if ``index`` is in the set."""
        self._validate(index)
        return bool(self._bits >> index & 1)

    def set(self, index: int) -> None:
        self._validate(index)
        self._bits |= 1 << index

    def clear(self, index: int) -> None:
        self._validate(index)
        self._bits &= ~(1 << index)

    def zap(self) -> None:
        """Remove every member."""
        self._bits = 0

    def __iter__(self) -> Iterator[int]:
        bits = self._bits
        index = 0
        while bits:
            if bits & 1:
                yield index
            bits >>= 1
            index += 1

    def __contains__(self, index: object) -> bool:
        return isinstance(index, int) and 0 <= index < self._size and self.check(index)

    def card(self) -> int:
        """Return the number of members."""
        return bin(self._bits).count("1")

    def __len__(self) -> int:
        return self.card()

    def is_empty(self) -> bool:
        return self._bits == 0

    def copy(self) -> "BitSet":
        clone = BitSet(self._size)
        clone._bits = self._bits
        return clone

    def add(self, other: "BitSet") -> None:
        """Add every member of ``other``."""
        self._require_same_size(other)
        self._bits |= other._bits

    def remove(self, other: "BitSet") -> None:
        """Remove every member of ``other``."""
        self._require_same_size(other)
        self._bits &= ~other._bits

    def negate(self) -> None:
        """Replace the set by its complement within ``range(size)``."""
        self._bits = ~self._bits & self._mask()

    def resize(self, size: int) -> None:
        """Change the size, dropping members that no longer fit."""
        if size < 0:
            raise ValueError("size must not be negative")
        self._size = size
        self._bits &= self._mask()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BitSet):
            return NotImplemented
        return self._size == other._size and self._bits == other._bits

    def __repr__(self) -> str:
        return f"BitSet({self._size}, {list(self)!r})"