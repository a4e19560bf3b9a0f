"""Approximate input tracing: tags carry one Bloom filter per source."""

from __future__ import annotations

import logging
import warnings
from typing import TYPE_CHECKING

import polars as pl

from sourcetrace._warnings import ApproximateLineageWarning
from sourcetrace.exceptions import TracingConfigurationError
from sourcetrace.models.constants import (
    BLOOM_FILTER_COLUMN,
    BLOOM_FILTER_OTHER_COLUMN,
    CANONICAL_RECORD_COLUMN,
    DEFAULT_BF_HASHES,
    DEFAULT_BF_WIDTH,
    DEFAULT_TRACING_FIELD,
    MAX_BF_WIDTH,
    TAG_BIT,
)
from sourcetrace.provenance.bitset import WORD_BITS, BitSet
from sourcetrace.provenance.hashing import BloomHash
from sourcetrace.provenance.tags import (
    ApproximateProvenance,
    BloomTag,
    canonical_record_expr,
)
from sourcetrace.tracing.base import InputTracing

if TYPE_CHECKING:
    from sourcetrace.flow.pipe import Pipe
    from sourcetrace.models.source import Source

logger = logging.getLogger(__name__)


class BloomFilterInputTracing(InputTracing[BloomTag]):
    """Traces records through per-source Bloom filters.

    Instead of the records themselves, every tag maps a source to a Bloom
    filter over the canonical string form of its contributing records. At
    each write the filters of a source are ORed into a single value. When the
    flow completes, that value is expanded into a [BitSet][sourcetrace.provenance.bitset.BitSet]
    and the original records of the source are scanned for members.

    The resulting subsets never miss a contributing record but may contain
    false positives, at a rate governed by `bf_hashes`, `bf_width` and the
    number of contributing records.
    """

    approximate = True

    def __init__(
        self,
        bf_hashes: int = DEFAULT_BF_HASHES,
        bf_width: int = DEFAULT_BF_WIDTH,
        field_name: str = DEFAULT_TRACING_FIELD,
    ):
        if bf_width <= 0 or bf_width % WORD_BITS != 0 or bf_width > MAX_BF_WIDTH:
            raise TracingConfigurationError(
                f"bf_width must be a positive multiple of {WORD_BITS} no larger than {MAX_BF_WIDTH}, got {bf_width}"
            )
        if bf_hashes < 1:
            raise TracingConfigurationError(
                f"bf_hashes must be at least 1, got {bf_hashes}"
            )
        self.bf_hashes = bf_hashes
        self.bf_width = bf_width
        self.bf_hash = BloomHash(bf_hashes, bf_width)
        super().__init__(ApproximateProvenance(self.bf_hash), field_name)

    def accumulate(self, identity: str, pipe: Pipe) -> None:
        # a single record holding the OR of every filter of this source
        combined = self.source_entries(pipe, identity).select(
            pl.col(self.field_name)
            .struct.field(TAG_BIT)
            .unique()
            .implode()
            .alias(BLOOM_FILTER_COLUMN)
        )
        previous = self.tail_pipes.get(identity)
        if previous is None:
            self.tail_pipes[identity] = combined
        else:
            self.tail_pipes[identity] = previous.cross_with_tiny(
                combined.rename({BLOOM_FILTER_COLUMN: BLOOM_FILTER_OTHER_COLUMN})
            ).select(
                pl.concat_list([BLOOM_FILTER_COLUMN, BLOOM_FILTER_OTHER_COLUMN])
                .list.unique()
                .alias(BLOOM_FILTER_COLUMN)
            )
        logger.debug(f"Accumulated Bloom filter of pipe {pipe.name} for source {identity}")

    def contains(self, batch: pl.Series) -> pl.Series:
        """Membership of canonical records in the combined filter of their row.

        `batch` is a struct series of the canonical record string and the
        combined filter, which is identical on every row.
        """
        if batch.len() == 0:
            return pl.Series(batch.name, [], dtype=pl.Boolean)
        bitset = BitSet.from_positions(
            self.bf_width, batch.struct.field(BLOOM_FILTER_COLUMN)[0]
        )
        return pl.Series(
            batch.name,
            [
                bitset.contains_all(self.bf_hash(text))
                for text in batch.struct.field(CANONICAL_RECORD_COLUMN)
            ],
            dtype=pl.Boolean,
        )

    def resolve(self, source: Source) -> Pipe | None:
        identity = source.identity
        tail = self.tail_pipes.get(identity)
        original = self.original_pipes.get(identity)
        if tail is None or original is None:
            return None

        return (
            original.with_columns(
                canonical_record_expr(self.schemas[identity]).alias(CANONICAL_RECORD_COLUMN)
            )
            .cross_with_tiny(tail)
            .filter(
                pl.struct(CANONICAL_RECORD_COLUMN, BLOOM_FILTER_COLUMN).map_batches(
                    self.contains, return_dtype=pl.Boolean
                )
            )
            .drop(CANONICAL_RECORD_COLUMN, BLOOM_FILTER_COLUMN)
        )

    def on_flow_complete(self) -> dict[Source, Pipe]:
        ret = super().on_flow_complete()
        if ret:
            warnings.warn(
                ApproximateLineageWarning(
                    f"Traced subsets of {len(ret)} sources were resolved from Bloom filters "
                    f"({self.bf_hashes} hashes, {self.bf_width} bits) and may contain "
                    "records that did not contribute to any output."
                ),
                stacklevel=2,
            )
        return ret

    def __repr__(self) -> str:
        return (
            f"BloomFilterInputTracing(bf_hashes={self.bf_hashes}, "
            f"bf_width={self.bf_width}, field_name={self.field_name!r})"
        )
