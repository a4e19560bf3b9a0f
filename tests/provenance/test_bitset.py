"""Tests for the packed BitSet."""

import pytest

from sourcetrace.provenance import BitSet


@pytest.mark.parametrize("width", [0, -64, 63, 65, 100])
def test_width_must_be_multiple_of_64(width: int) -> None:
    with pytest.raises(ValueError, match="multiple of 64"):
        BitSet(width)


def test_words_allocated_per_64_bits() -> None:
    assert len(BitSet(64).words) == 1
    assert len(BitSet(256).words) == 4


def test_set_and_contains_across_word_boundaries() -> None:
    bits = BitSet(192)
    for i in (0, 63, 64, 127, 191):
        bits.set(i)

    for i in (0, 63, 64, 127, 191):
        assert i in bits
    for i in (1, 62, 65, 128, 190):
        assert i not in bits
    assert len(bits) == 5


def test_set_is_idempotent() -> None:
    bits = BitSet(64)
    bits.set(7)
    bits.set(7)
    assert len(bits) == 1


def test_contains_all() -> None:
    bits = BitSet.from_positions(128, [3, 70, 99])

    assert bits.contains_all([3, 70])
    assert bits.contains_all([99, 3, 70])
    assert not bits.contains_all([3, 71])
    # vacuous truth, there is nothing to check
    assert bits.contains_all([])
