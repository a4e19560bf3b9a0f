"""Exact input tracing: tags carry the contributing records themselves."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import polars as pl

from sourcetrace.models.constants import (
    CANONICAL_RECORD_COLUMN,
    DEFAULT_TRACING_FIELD,
    TAG_RECORD,
)
from sourcetrace.provenance.tags import ExactProvenance, ExactTag, canonical_record_expr
from sourcetrace.tracing.base import InputTracing

if TYPE_CHECKING:
    from sourcetrace.flow.pipe import Pipe
    from sourcetrace.models.source import Source

logger = logging.getLogger(__name__)


class ExactInputTracing(InputTracing[ExactTag]):
    """Places the whole input record into the tracing column.

    The column maps every source to the list of its records that contributed
    to the current record, each in its canonical string form. At every write
    those strings are collected per source. When the flow completes, the
    records of the source whose canonical form was collected are selected
    from the source itself, so the subset holds the original values,
    deduplicated.
    """

    def __init__(self, field_name: str = DEFAULT_TRACING_FIELD):
        super().__init__(ExactProvenance(), field_name)

    def accumulate(self, identity: str, pipe: Pipe) -> None:
        keys = self.source_entries(pipe, identity).select(
            pl.col(self.field_name).struct.field(TAG_RECORD).alias(CANONICAL_RECORD_COLUMN)
        )
        previous = self.tail_pipes.get(identity)
        self.tail_pipes[identity] = keys if previous is None else keys + previous
        logger.debug(f"Accumulated write of pipe {pipe.name} for source {identity}")

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
            .join(tail.unique(CANONICAL_RECORD_COLUMN), on=CANONICAL_RECORD_COLUMN, how="semi")
            .drop(CANONICAL_RECORD_COLUMN)
            .unique()
        )
