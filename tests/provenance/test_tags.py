"""Tests for the provenance tag merge contract.

Each tag type is checked twice: on Python values, and through the Polars
expressions that get injected into flows, which must agree with the former.
"""

from typing import Any

import polars as pl
import pytest

from sourcetrace.provenance import (
    ApproximateProvenance,
    BloomHash,
    ExactProvenance,
    ProvenanceTag,
    canonical_record,
    canonical_record_expr,
)

EXACT_A = {"a": [{"x": 1}], "b": [{"y": "u"}]}
EXACT_B = {"a": [{"x": 2}]}
EXACT_C = {"c": [{"z": 1.5}], "a": [{"x": 3}]}

BLOOM_A = {"a": frozenset({1, 5}), "b": frozenset({7})}
BLOOM_B = {"a": frozenset({5, 9})}
BLOOM_C = {"c": frozenset({2}), "b": frozenset({3})}


def normalize(tag: dict[str, Any]) -> dict[str, Any]:
    """Exact tags are equal up to the order of their record lists."""
    return {
        source: sorted(canonical_record(r) for r in records)
        if isinstance(records, list)
        else records
        for source, records in tag.items()
    }


@pytest.fixture(params=["exact", "bloom"])
def tag_case(request) -> tuple[ProvenanceTag[Any], list[dict[str, Any]]]:
    if request.param == "exact":
        return ExactProvenance(), [EXACT_A, EXACT_B, EXACT_C]
    return ApproximateProvenance(BloomHash(3, 1024)), [BLOOM_A, BLOOM_B, BLOOM_C]


class TestValueMerge:
    def test_exact_concatenates_colliding_sources(self) -> None:
        merged = ExactProvenance().merge(EXACT_A, EXACT_B)
        assert merged == {"a": [{"x": 1}, {"x": 2}], "b": [{"y": "u"}]}

    def test_exact_keeps_duplicates(self) -> None:
        merged = ExactProvenance().merge(EXACT_B, EXACT_B)
        assert merged == {"a": [{"x": 2}, {"x": 2}]}

    def test_exact_does_not_mutate_operands(self) -> None:
        a = {"a": [{"x": 1}]}
        ExactProvenance().merge(a, {"a": [{"x": 2}]})
        assert a == {"a": [{"x": 1}]}

    def test_bloom_ors_colliding_sources(self) -> None:
        merged = ApproximateProvenance(BloomHash(3, 1024)).merge(BLOOM_A, BLOOM_B)
        assert merged == {"a": frozenset({1, 5, 9}), "b": frozenset({7})}

    def test_commutative(self, tag_case) -> None:
        tag, (a, b, _) = tag_case
        assert normalize(tag.merge(a, b)) == normalize(tag.merge(b, a))

    def test_associative(self, tag_case) -> None:
        tag, (a, b, c) = tag_case
        left = tag.merge(tag.merge(a, b), c)
        right = tag.merge(a, tag.merge(b, c))
        assert normalize(left) == normalize(right)

    def test_merge_safe_absorbs_missing_operand(self, tag_case) -> None:
        tag, (a, _, _) = tag_case
        assert tag.merge_safe(a, None) == a
        assert tag.merge_safe(None, a) == a
        assert tag.merge_safe(None, None) is None


class TestExpressionMerge:
    def frame(self, tag: ProvenanceTag[Any], left: list[Any], right: list[Any]) -> pl.DataFrame:
        return pl.DataFrame(
            {
                "l": [None if v is None else tag.encode(v) for v in left],
                "r": [None if v is None else tag.encode(v) for v in right],
            },
            schema={"l": tag.dtype, "r": tag.dtype},
        )

    def test_merge_safe_expr_agrees_with_values(self, tag_case) -> None:
        tag, (a, b, c) = tag_case
        df = self.frame(tag, [a, a, None, b], [b, None, c, c])

        merged = df.select(tag.merge_safe_expr(pl.col("l"), pl.col("r")).alias("m"))
        decoded = [tag.decode(cell) for cell in merged["m"].to_list()]

        expected = [tag.merge(a, b), a, c, tag.merge(b, c)]
        assert [normalize(d) for d in decoded] == [normalize(e) for e in expected]

    def test_merge_safe_expr_keeps_null_when_both_missing(self, tag_case) -> None:
        tag, (a, _, _) = tag_case
        df = self.frame(tag, [None, a], [None, None])

        merged = df.select(tag.merge_safe_expr(pl.col("l"), pl.col("r")).alias("m"))
        assert merged["m"].to_list()[0] is None

    def test_reduce_expr_merges_group_members(self, tag_case) -> None:
        tag, (a, b, c) = tag_case
        df = pl.DataFrame(
            {"k": [1, 1, 2, 2], "t": [tag.encode(a), tag.encode(b), tag.encode(c), None]},
            schema={"k": pl.Int64, "t": tag.dtype},
        )

        reduced = df.group_by("k").agg(tag.reduce_expr("t")).sort("k")
        decoded = [tag.decode(cell) for cell in reduced["t"].to_list()]

        assert normalize(decoded[0]) == normalize(tag.merge(a, b))
        assert normalize(decoded[1]) == normalize(c)

    def test_first_expr_keeps_first_member(self, tag_case) -> None:
        tag, (a, b, _) = tag_case
        df = pl.DataFrame(
            {"k": [1, 1], "t": [tag.encode(a), tag.encode(b)]},
            schema={"k": pl.Int64, "t": tag.dtype},
        )

        reduced = df.group_by("k", maintain_order=True).agg(tag.first_expr("t"))
        assert normalize(tag.decode(reduced["t"][0])) == normalize(a)


class TestPrepare:
    def test_exact_tag_holds_the_record(self) -> None:
        tag = ExactProvenance()
        df = pl.DataFrame({"n": [1, 2], "s": ["x", "y"]})

        tags = df.select(tag.prepare_expr("src", df.schema).alias("t"))["t"].to_list()

        assert [tag.decode(cell) for cell in tags] == [
            {"src": [{"n": 1, "s": "x"}]},
            {"src": [{"n": 2, "s": "y"}]},
        ]

    def test_bloom_tag_holds_hash_positions(self) -> None:
        bf_hash = BloomHash(4, 2048)
        tag = ApproximateProvenance(bf_hash)
        df = pl.DataFrame({"n": [1, 2]})

        canonical = df.select(canonical_record_expr(df.schema).alias("c"))["c"].to_list()
        tags = df.select(tag.prepare_expr("src", df.schema).alias("t"))["t"].to_list()

        assert [tag.decode(cell) for cell in tags] == [
            {"src": frozenset(bf_hash(text))} for text in canonical
        ]

    def test_canonical_record_matches_expression(self) -> None:
        df = pl.DataFrame({"n": [1], "s": ["x"]})
        encoded = df.select(canonical_record_expr(df.schema).alias("c"))["c"][0]
        assert encoded == canonical_record({"n": 1, "s": "x"})

    def test_binary_fields_are_hex_encoded(self) -> None:
        df = pl.DataFrame({"n": [1], "b": [b"\x01\xab"]})
        encoded = df.select(canonical_record_expr(df.schema).alias("c"))["c"][0]
        assert encoded == canonical_record({"n": 1, "b": "01ab"})
