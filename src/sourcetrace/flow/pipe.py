"""Branches of a flow under construction.

A [Pipe][sourcetrace.flow.pipe.Pipe] wraps a Polars LazyFrame together with
the pipes it was derived from, so that the tracing layer can ask whether a
branch descends from a traced read. Nothing is executed while pipes are being
built; [Flow.run][sourcetrace.flow.flow.Flow.run] materializes the writes.

Every operation consults the flow's current tracing strategy: reads, joins,
grouping, `unique` and writes are intercepted, while `select` and `drop` keep
the tracing column of traced branches.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from typing import TYPE_CHECKING, Any

import polars as pl

from sourcetrace.tracing.base import JoinSide, Tracing

if TYPE_CHECKING:
    from sourcetrace.flow.flow import Flow
    from sourcetrace.models.sink import Sink

logger = logging.getLogger(__name__)

IntoExpr = str | pl.Expr

# Struct column holding the output of `Pipe.map_to` before it is unnested
MAPPED_COLUMN = "__mapped__"


class Pipe:
    """A branch of the dataflow graph."""

    def __init__(
        self,
        flow: Flow,
        frame: pl.LazyFrame,
        heads: Sequence[Pipe] = (),
        name: str | None = None,
    ):
        self.flow = flow
        self.frame = frame
        self.heads: tuple[Pipe, ...] = tuple(heads)
        self.name = name or (self.heads[0].name if self.heads else "pipe")

    @property
    def tracing(self) -> Tracing:
        """Strategy active in the owning flow at the time of the call."""
        return self.flow.context.current

    @property
    def columns(self) -> list[str]:
        return self.frame.collect_schema().names()

    def derive(self, frame: pl.LazyFrame, *heads: Pipe) -> Pipe:
        """Create a child pipe of `heads` (default: this pipe)."""
        return Pipe(self.flow, frame, heads or (self,), name=self.name)

    def _kept_tracing_fields(self) -> list[str]:
        field = self.tracing.tracing_fields()
        if field is not None and self.tracing.is_traced(self):
            return [field]
        return []

    def with_columns(self, *exprs: IntoExpr, **named_exprs: IntoExpr) -> Pipe:
        """Add or replace columns, keeping every other column."""
        return self.derive(self.frame.with_columns(*exprs, **named_exprs))

    def select(self, *exprs: IntoExpr, **named_exprs: IntoExpr) -> Pipe:
        """Project onto the given columns or expressions.

        The tracing column of a traced branch is always retained.
        """
        frame = self.frame.select(*exprs, **named_exprs)
        selected = frame.collect_schema().names()
        missing = [f for f in self._kept_tracing_fields() if f not in selected]
        if missing:
            frame = self.frame.select(
                *exprs, *(pl.col(f) for f in missing), **named_exprs
            )
        return self.derive(frame)

    def drop(self, *columns: str) -> Pipe:
        """Discard columns. The tracing column of a traced branch is never dropped."""
        kept = set(self._kept_tracing_fields())
        if kept.intersection(columns):
            logger.debug(f"Not dropping tracing columns {sorted(kept)} of pipe {self.name}")
        return self.derive(self.frame.drop([c for c in columns if c not in kept]))

    def map_to(
        self,
        function: Callable[[dict[str, Any]], Mapping[str, Any]],
        schema: Mapping[str, pl.DataType],
    ) -> Pipe:
        """Replace every record by `function(record)`.

        `function` receives the record as a dict and returns the new record,
        whose columns are declared by `schema`. The tracing column of a traced
        branch is carried over unchanged.
        """
        kept = self._kept_tracing_fields()
        inputs = [c for c in self.columns if c not in kept]
        mapped = (
            pl.struct(inputs)
            .map_elements(
                lambda record: dict(function(record)),
                return_dtype=pl.Struct(dict(schema)),
            )
            .alias(MAPPED_COLUMN)
        )
        frame = self.frame.select(mapped, *(pl.col(f) for f in kept)).unnest(MAPPED_COLUMN)
        return self.derive(frame)

    def rename(self, mapping: Mapping[str, str]) -> Pipe:
        return self.derive(self.frame.rename(dict(mapping)))

    def filter(self, *predicates: pl.Expr) -> Pipe:
        return self.derive(self.frame.filter(*predicates))

    def explode(self, *columns: str) -> Pipe:
        """Emit one record per element of the given list columns."""
        return self.derive(self.frame.explode(*columns))

    def join(
        self,
        other: Pipe,
        on: str | Sequence[str] | None = None,
        *,
        how: str = "inner",
        left_on: str | Sequence[str] | None = None,
        right_on: str | Sequence[str] | None = None,
        suffix: str = "_right",
        **kwargs: Any,
    ) -> Pipe:
        """Join with another pipe, merging the provenance of both sides."""
        tracing = self.tracing
        left = tracing.before_join(self, JoinSide.LEFT)
        try:
            right = tracing.before_join(other, JoinSide.RIGHT)
            if how == "cross":
                frame = left.frame.join(right.frame, how="cross", suffix=suffix)
            else:
                frame = left.frame.join(
                    right.frame,
                    on=on,
                    how=how,  # pyright: ignore[reportArgumentType]
                    left_on=left_on,
                    right_on=right_on,
                    suffix=suffix,
                    **kwargs,
                )
        except Exception:
            tracing.abort_join()
            raise
        return tracing.after_join(Pipe(self.flow, frame, (left, right), name=self.name))

    def cross_with_tiny(self, other: Pipe) -> Pipe:
        """Pair every record with every record of a small pipe."""
        return self.join(other, how="cross")

    def group_by(self, *keys: IntoExpr, maintain_order: bool = False) -> GroupBuilder:
        return GroupBuilder(self, keys, maintain_order=maintain_order)

    def unique(self, *columns: str, maintain_order: bool = True) -> Pipe:
        """Keep the first record of every distinct combination of `columns`.

        Without columns, distinctness is judged on every column except the
        tracing column. Provenance of a traced branch is not merged: each
        kept record keeps its own tag.
        """
        kept = self._kept_tracing_fields()
        subset = list(columns) or [c for c in self.columns if c not in kept]
        builder = self.tracing.on_group_by_no_merge(
            GroupBuilder(self, subset, maintain_order=maintain_order), self
        )
        if not builder.reductions:
            return self.derive(
                self.frame.unique(subset=subset, keep="first", maintain_order=maintain_order)
            )
        order = self.columns
        others = [c for c in order if c not in subset and c not in kept]
        grouped = builder.aggregate(*(pl.col(c).first() for c in others))
        return grouped.derive(grouped.frame.select(order))

    def concat(self, *others: Pipe) -> Pipe:
        """Union of this pipe and `others`. Missing columns are filled with nulls."""
        frame = pl.concat([self.frame, *(o.frame for o in others)], how="diagonal_relaxed")
        return self.derive(frame, self, *others)

    def __add__(self, other: Pipe) -> Pipe:
        return self.concat(other)

    def write(self, sink: Sink) -> Pipe:
        """Register this pipe to be written to `sink` when the flow runs."""
        pipe = self.tracing.on_write(self)
        self.flow.add_write(pipe, sink)
        return pipe

    def collect(self) -> pl.DataFrame:
        return self.frame.collect()

    def __repr__(self) -> str:
        return f"Pipe(name={self.name!r}, heads={len(self.heads)})"


class GroupBuilder:
    """Grouping specification of a pipe.

    Tracing strategies append reductions for the tracing column through
    [reduce][sourcetrace.flow.pipe.GroupBuilder.reduce]; user aggregations are
    passed to [agg][sourcetrace.flow.pipe.GroupBuilder.agg].

    Example:
        ```py
        totals = pipe.group_by("customer").agg(pl.col("amount").sum())
        ```
    """

    def __init__(
        self,
        pipe: Pipe,
        keys: Sequence[IntoExpr],
        *,
        maintain_order: bool = False,
        reductions: Sequence[pl.Expr] = (),
    ):
        self.pipe = pipe
        self.keys = list(keys)
        self.maintain_order = maintain_order
        self.reductions = list(reductions)

    def reduce(self, expr: pl.Expr) -> GroupBuilder:
        """Return a builder that additionally applies the aggregation `expr`."""
        return GroupBuilder(
            self.pipe,
            self.keys,
            maintain_order=self.maintain_order,
            reductions=[*self.reductions, expr],
        )

    def agg(self, *aggs: IntoExpr, **named_aggs: IntoExpr) -> Pipe:
        builder = self.pipe.tracing.on_group_by(self, self.pipe)
        return builder.aggregate(*aggs, **named_aggs)

    def aggregate(self, *aggs: IntoExpr, **named_aggs: IntoExpr) -> Pipe:
        """Build the grouped pipe without consulting the tracing strategy."""
        frame = self.pipe.frame.group_by(
            *self.keys, maintain_order=self.maintain_order
        ).agg(*aggs, *self.reductions, **named_aggs)
        return self.pipe.derive(frame)
