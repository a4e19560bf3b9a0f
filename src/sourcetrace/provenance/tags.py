"""Provenance tag algebra.

A provenance tag is the per-record payload stored in the tracing column. It
maps a source identity to whatever describes the records of that source which
contributed to the current record:

- [ExactProvenance][sourcetrace.provenance.tags.ExactProvenance]: the raw
  records themselves, `{source: [record, ...]}`
- [ApproximateProvenance][sourcetrace.provenance.tags.ApproximateProvenance]:
  a Bloom filter over the records' canonical string form, `{source: {bit, ...}}`

Every tag type exposes the same merge contract twice: once over Python values
(`merge`, `merge_safe`) and once as Polars expressions over the tracing column
(`merge_expr`, `merge_safe_expr`, `reduce_expr`), which is what gets injected
into the dataflow graph.

Inside the graph both payloads are stored as a list of `(source, value)`
structs, so that key-wise merging reduces to list concatenation (exact) or
set union (approximate).
"""

import json
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from typing import Any, ClassVar, Generic, TypeVar

import polars as pl

from sourcetrace.models.constants import TAG_BIT, TAG_RECORD, TAG_SOURCE
from sourcetrace.provenance.hashing import BloomHash

T = TypeVar("T")

ExactTag = dict[str, list[dict[str, Any]]]
BloomTag = dict[str, frozenset[int]]


def canonical_record_expr(schema: Mapping[str, pl.DataType]) -> pl.Expr:
    """Canonical string form of a record: its fields encoded as a JSON object.

    Binary fields are hex encoded, JSON has no representation for raw bytes.
    """
    columns = [
        pl.col(name).bin.encode("hex") if dtype == pl.Binary else pl.col(name)
        for name, dtype in schema.items()
    ]
    return pl.struct(columns).struct.json_encode()


def canonical_record(record: Mapping[str, Any]) -> str:
    """Python counterpart of `canonical_record_expr` for plain values."""
    return json.dumps(dict(record), separators=(",", ":"), ensure_ascii=False)


class ProvenanceTag(ABC, Generic[T]):
    """Merge contract shared by every provenance representation."""

    dtype: ClassVar[pl.DataType]

    @abstractmethod
    def merge(self, a: T, b: T) -> T:
        """Combine two non-null tags. Must be associative and commutative."""

    def merge_safe(self, a: T | None, b: T | None) -> T | None:
        """Merge where a missing tag is the identity element.

        Outer joins produce records where only one side carries a tag.
        """
        if a is None:
            return b
        if b is None:
            return a
        return self.merge(a, b)

    @abstractmethod
    def merge_expr(self, a: pl.Expr, b: pl.Expr) -> pl.Expr:
        """Expression form of `merge` over two tracing columns."""

    def merge_safe_expr(self, a: pl.Expr, b: pl.Expr) -> pl.Expr:
        """Expression form of `merge_safe`."""
        return (
            pl.when(a.is_null())
            .then(b)
            .when(b.is_null())
            .then(a)
            .otherwise(self.merge_expr(a, b))
        )

    @abstractmethod
    def reduce_expr(self, column: str) -> pl.Expr:
        """Group aggregation merging the tags of every member of a group."""

    def first_expr(self, column: str) -> pl.Expr:
        """Group aggregation keeping the tag of the first member only."""
        return pl.col(column).drop_nulls().first()

    @abstractmethod
    def prepare_expr(self, source: str, schema: Mapping[str, pl.DataType]) -> pl.Expr:
        """Tag of a freshly read record of `source`, computed from the fields of `schema`."""

    @abstractmethod
    def encode(self, value: T) -> list[dict[str, Any]]:
        """Convert a tag value into its tracing column cell."""

    @abstractmethod
    def decode(self, cell: Sequence[Mapping[str, Any]]) -> T:
        """Convert a tracing column cell back into a tag value."""


class ExactProvenance(ProvenanceTag[ExactTag]):
    """Tags holding the full list of contributing records per source.

    Merging concatenates lists of colliding sources. Duplicates are kept,
    they are removed when the flow completes.

    Example:
        ```py
        tag = ExactProvenance()
        merged = tag.merge({"a": [{"x": 1}]}, {"a": [{"x": 2}], "b": [{"y": 0}]})
        assert merged == {"a": [{"x": 1}, {"x": 2}], "b": [{"y": 0}]}
        ```
    """

    dtype: ClassVar[pl.DataType] = pl.List(
        pl.Struct({TAG_SOURCE: pl.String, TAG_RECORD: pl.String})
    )

    def merge(self, a: ExactTag, b: ExactTag) -> ExactTag:
        merged = {source: list(records) for source, records in a.items()}
        for source, records in b.items():
            merged.setdefault(source, []).extend(records)
        return merged

    def merge_expr(self, a: pl.Expr, b: pl.Expr) -> pl.Expr:
        return pl.concat_list([a, b])

    def reduce_expr(self, column: str) -> pl.Expr:
        return pl.col(column).explode().drop_nulls()

    def prepare_expr(self, source: str, schema: Mapping[str, pl.DataType]) -> pl.Expr:
        entry = pl.struct(
            pl.lit(source, dtype=pl.String).alias(TAG_SOURCE),
            canonical_record_expr(schema).alias(TAG_RECORD),
        )
        return pl.concat_list([entry])

    def encode(self, value: ExactTag) -> list[dict[str, Any]]:
        return [
            {TAG_SOURCE: source, TAG_RECORD: canonical_record(record)}
            for source, records in value.items()
            for record in records
        ]

    def decode(self, cell: Sequence[Mapping[str, Any]]) -> ExactTag:
        value: ExactTag = {}
        for entry in cell:
            value.setdefault(entry[TAG_SOURCE], []).append(
                json.loads(entry[TAG_RECORD])
            )
        return value


class ApproximateProvenance(ProvenanceTag[BloomTag]):
    """Tags holding one Bloom filter per source.

    A filter is stored as the set of its set bit positions. Merging ORs the
    filters of colliding sources and passes the others through.
    """

    dtype: ClassVar[pl.DataType] = pl.List(
        pl.Struct({TAG_SOURCE: pl.String, TAG_BIT: pl.UInt32})
    )

    def __init__(self, bf_hash: BloomHash):
        self.bf_hash = bf_hash

    def merge(self, a: BloomTag, b: BloomTag) -> BloomTag:
        merged = dict(a)
        for source, bits in b.items():
            merged[source] = merged[source] | bits if source in merged else bits
        return merged

    def merge_expr(self, a: pl.Expr, b: pl.Expr) -> pl.Expr:
        return pl.concat_list([a, b]).list.unique()

    def reduce_expr(self, column: str) -> pl.Expr:
        return pl.col(column).explode().drop_nulls().unique()

    def filter_of(self, text: str) -> frozenset[int]:
        """Bloom filter containing a single canonical record string."""
        return frozenset(self.bf_hash(text))

    def prepare_expr(self, source: str, schema: Mapping[str, pl.DataType]) -> pl.Expr:
        def tag(text: str) -> list[dict[str, Any]]:
            return self.encode({source: self.filter_of(text)})

        return canonical_record_expr(schema).map_elements(tag, return_dtype=self.dtype)

    def encode(self, value: BloomTag) -> list[dict[str, Any]]:
        return [
            {TAG_SOURCE: source, TAG_BIT: bit}
            for source, bits in value.items()
            for bit in sorted(bits)
        ]

    def decode(self, cell: Sequence[Mapping[str, Any]]) -> BloomTag:
        value: dict[str, set[int]] = {}
        for entry in cell:
            value.setdefault(entry[TAG_SOURCE], set()).add(entry[TAG_BIT])
        return {source: frozenset(bits) for source, bits in value.items()}
