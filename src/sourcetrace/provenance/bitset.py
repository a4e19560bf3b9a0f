"""Packed bit array used to resolve Bloom filter membership."""

from array import array
from collections.abc import Iterable

WORD_BITS = 64


class BitSet:
    """Fixed-size bit array backed by unsigned 64-bit words.

    Bits can only be set, never cleared. A fresh instance is built every time
    a combined Bloom filter is expanded for membership checks.

    Example:
        ```py
        bits = BitSet.from_positions(128, [3, 70])
        assert bits.contains_all([3, 70])
        assert not bits.contains_all([3, 71])
        ```
    """

    __slots__ = ("width", "words")

    def __init__(self, width: int):
        if width <= 0 or width % WORD_BITS != 0:
            raise ValueError(
                f"BitSet width must be a positive multiple of {WORD_BITS}, got {width}"
            )
        self.width = width
        self.words = array("Q", bytes(8 * (width // WORD_BITS)))

    @classmethod
    def from_positions(cls, width: int, positions: Iterable[int]) -> "BitSet":
        bitset = cls(width)
        for position in positions:
            bitset.set(position)
        return bitset

    def set(self, index: int) -> None:
        self.words[index // WORD_BITS] |= 1 << (index % WORD_BITS)

    def __contains__(self, index: int) -> bool:
        return (self.words[index // WORD_BITS] >> (index % WORD_BITS)) & 1 == 1

    def contains_all(self, indices: Iterable[int]) -> bool:
        """Return True if every bit in `indices` is set."""
        return all(index in self for index in indices)

    def __len__(self) -> int:
        return sum(bin(word).count("1") for word in self.words)

    def __repr__(self) -> str:
        return f"BitSet(width={self.width}, set_bits={len(self)})"
