"""Tests for the k-hash function used by Bloom filter tracing."""

import pytest

from sourcetrace.provenance import BitSet, BloomHash


def test_positions_count_and_range() -> None:
    bf_hash = BloomHash(num_hashes=5, width=1024)
    positions = bf_hash('{"n":1}')

    assert len(positions) == 5
    assert all(0 <= p < 1024 for p in positions)


def test_positions_are_deterministic() -> None:
    assert BloomHash(4, 4096)("record") == BloomHash(4, 4096)("record")


def test_different_strings_hash_differently() -> None:
    bf_hash = BloomHash(5, 1 << 20)
    assert bf_hash('{"n":1}') != bf_hash('{"n":2}')


@pytest.mark.parametrize("num_hashes,width", [(0, 64), (3, 0)])
def test_invalid_parameters(num_hashes: int, width: int) -> None:
    with pytest.raises(ValueError):
        BloomHash(num_hashes, width)


def test_membership_through_bitset() -> None:
    """A string hashed into a filter is always found again; others mostly are not."""
    bf_hash = BloomHash(5, 1 << 16)
    bits = BitSet.from_positions(1 << 16, bf_hash("kept"))

    assert bits.contains_all(bf_hash("kept"))
    assert not bits.contains_all(bf_hash("dropped"))
