"""Tracing strategies: the hooks the flow calls while a graph is assembled.

A strategy is consulted at every interception point of graph construction:

- `after_read` when a source is read
- `before_join` (once per side) and `after_join` around every join, or
  `abort_join` when the join itself fails
- `on_group_by` / `on_group_by_no_merge` when records are grouped
- `on_write` when a branch is written
- `on_flow_complete` once all writes are known

[NullTracing][sourcetrace.tracing.base.NullTracing] passes everything through.
[InputTracing][sourcetrace.tracing.base.InputTracing] carries a provenance tag
for every record of every traceable source through the graph, and turns the
tags reaching the writes back into per-source subsets of the original records.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from enum import Enum
from typing import TYPE_CHECKING, Any, Generic, TypeVar

import polars as pl

from sourcetrace.exceptions import SourceTraceError, TracingProtocolError
from sourcetrace.models.constants import (
    DEFAULT_TRACING_FIELD,
    JOIN_SIDE_SUFFIX,
    TAG_SOURCE,
)
from sourcetrace.provenance.tags import ProvenanceTag

if TYPE_CHECKING:
    from sourcetrace.flow.pipe import GroupBuilder, Pipe
    from sourcetrace.models.source import Source
    from sourcetrace.tracing.context import TracingContext

logger = logging.getLogger(__name__)

T = TypeVar("T")


class JoinSide(Enum):
    LEFT = "left"
    RIGHT = "right"


class Tracing(ABC):
    """Interface of every tracing strategy."""

    # Whether traced subsets may contain records that did not contribute
    approximate: bool = False

    def attach(self, context: TracingContext) -> None:
        """Called by the context that installs this strategy as its root."""

    @abstractmethod
    def after_read(self, source: Source, pipe: Pipe) -> Pipe: ...

    @abstractmethod
    def on_write(self, pipe: Pipe) -> Pipe: ...

    @abstractmethod
    def before_join(self, pipe: Pipe, side: JoinSide) -> Pipe: ...

    @abstractmethod
    def after_join(self, pipe: Pipe) -> Pipe: ...

    def abort_join(self) -> None:
        """Called instead of `after_join` when the host join raised."""

    @abstractmethod
    def on_group_by(self, groupbuilder: GroupBuilder, pipe: Pipe) -> GroupBuilder: ...

    @abstractmethod
    def on_group_by_no_merge(
        self, groupbuilder: GroupBuilder, pipe: Pipe
    ) -> GroupBuilder: ...

    @abstractmethod
    def on_flow_complete(self) -> dict[Source, Pipe]: ...

    @abstractmethod
    def tracing_fields(self) -> str | None:
        """Name of the tracing column, or None when nothing is traced.

        Operations that drop unlisted columns must retain this column.
        """

    @abstractmethod
    def is_traced(self, pipe: Pipe) -> bool:
        """Whether `pipe` carries the tracing column."""


class NullTracing(Tracing):
    """Strategy that traces nothing."""

    def after_read(self, source: Source, pipe: Pipe) -> Pipe:
        return pipe

    def on_write(self, pipe: Pipe) -> Pipe:
        return pipe

    def before_join(self, pipe: Pipe, side: JoinSide) -> Pipe:
        return pipe

    def after_join(self, pipe: Pipe) -> Pipe:
        return pipe

    def on_group_by(self, groupbuilder: GroupBuilder, pipe: Pipe) -> GroupBuilder:
        return groupbuilder

    def on_group_by_no_merge(
        self, groupbuilder: GroupBuilder, pipe: Pipe
    ) -> GroupBuilder:
        return groupbuilder

    def on_flow_complete(self) -> dict[Source, Pipe]:
        return {}

    def tracing_fields(self) -> str | None:
        return None

    def is_traced(self, pipe: Pipe) -> bool:
        return False

    def __repr__(self) -> str:
        return "NullTracing()"


class InputTracing(Tracing, Generic[T]):
    """Traces input records by placing a provenance tag into a dedicated column.

    Subclasses choose the tag representation and implement how the tags of a
    written branch are accumulated per source (`accumulate`) and how the
    accumulated value becomes a subset of the source (`resolve`).
    """

    def __init__(self, tag: ProvenanceTag[T], field_name: str = DEFAULT_TRACING_FIELD):
        self.tag = tag
        self.field_name = field_name
        self.context: TracingContext | None = None

        self.sources: dict[str, Source] = {}
        self.schemas: dict[str, pl.Schema] = {}
        self.head_pipes: set[Pipe] = set()
        self.tail_pipes: dict[str, Pipe] = {}
        self.original_pipes: dict[str, Pipe] = {}

        self._reachability: dict[Pipe, bool] = {}
        self._left_traced: bool | None = None
        self._right_traced: bool | None = None

    @property
    def join_field_name(self) -> str:
        """Temporary name of the right side's tracing column during a join."""
        return self.field_name + JOIN_SIDE_SUFFIX

    def attach(self, context: TracingContext) -> None:
        self.context = context

    def suspended(self) -> AbstractContextManager[Any]:
        """Disable tracing while the tracing layer builds its own branches."""
        if self.context is None:
            raise SourceTraceError(
                f"{type(self).__name__} is not attached to a TracingContext"
            )
        return self.context.suspended()

    def tracing_fields(self) -> str | None:
        return self.field_name

    def is_traced(self, pipe: Pipe) -> bool:
        """Whether `pipe` is a head or transitively derived from one."""
        known = self._reachability.get(pipe)
        if known is not None:
            return known

        seen: set[Pipe] = set()
        pending = [pipe]
        traced = False
        while pending:
            current = pending.pop()
            if current in seen:
                continue
            seen.add(current)
            if current in self.head_pipes or self._reachability.get(current):
                traced = True
                break
            if current not in self._reachability:
                pending.extend(current.heads)

        if traced:
            self._reachability[pipe] = True
        else:
            # the whole ancestry was explored without meeting a head
            for current in seen:
                self._reachability[current] = False
        return traced

    def after_read(self, source: Source, pipe: Pipe) -> Pipe:
        if not source.traceable:
            logger.debug(f"Source {source.identity} is not traceable, reading untraced")
            return pipe

        identity = source.identity
        if identity not in self.sources:
            logger.debug(f"Registering traced source {identity}")
        self.sources[identity] = source
        self.schemas[identity] = pipe.frame.collect_schema()
        self.head_pipes.add(pipe)
        self._reachability.pop(pipe, None)
        return self.prepare(source, pipe)

    def prepare(self, source: Source, pipe: Pipe) -> Pipe:
        """Attach the initial tag to every record of a freshly read source.

        The untagged pipe is kept, completion resolves subsets against it.
        """
        self.original_pipes[source.identity] = pipe
        return pipe.with_columns(
            self.tag.prepare_expr(source.identity, self.schemas[source.identity]).alias(
                self.field_name
            )
        )

    def before_join(self, pipe: Pipe, side: JoinSide) -> Pipe:
        if side is JoinSide.RIGHT:
            if self._right_traced is not None:
                raise TracingProtocolError(
                    "before_join called twice for the right side without after_join"
                )
            self._right_traced = self.is_traced(pipe)
            if self._right_traced:
                return pipe.rename({self.field_name: self.join_field_name})
            return pipe

        if self._left_traced is not None:
            raise TracingProtocolError(
                "before_join called twice for the left side without after_join"
            )
        self._left_traced = self.is_traced(pipe)
        return pipe

    def after_join(self, pipe: Pipe) -> Pipe:
        if self._left_traced is None or self._right_traced is None:
            raise TracingProtocolError(
                "after_join requires before_join to be called for both sides"
            )
        left, right = self._left_traced, self._right_traced
        self._left_traced = None
        self._right_traced = None

        if right and self.join_field_name not in pipe.columns:
            # semi and anti joins do not emit the right side's columns
            right = False

        field, other = self.field_name, self.join_field_name
        if left and right:
            return pipe.with_columns(
                self.tag.merge_safe_expr(pl.col(field), pl.col(other)).alias(field)
            ).drop(other)
        elif right:
            return pipe.rename({other: field})
        return pipe

    def abort_join(self) -> None:
        """Forget the sides registered by `before_join` when the join itself failed."""
        self._left_traced = None
        self._right_traced = None

    def on_group_by(self, groupbuilder: GroupBuilder, pipe: Pipe) -> GroupBuilder:
        if self.is_traced(pipe):
            return groupbuilder.reduce(
                self.tag.reduce_expr(self.field_name).alias(self.field_name)
            )
        return groupbuilder

    def on_group_by_no_merge(
        self, groupbuilder: GroupBuilder, pipe: Pipe
    ) -> GroupBuilder:
        if self.is_traced(pipe):
            return groupbuilder.reduce(
                self.tag.first_expr(self.field_name).alias(self.field_name)
            )
        return groupbuilder

    def on_write(self, pipe: Pipe) -> Pipe:
        if not self.is_traced(pipe):
            logger.debug(f"Write of untraced pipe {pipe.name}, nothing to accumulate")
            return pipe

        with self.suspended():
            for identity in self.sources:
                self.accumulate(identity, pipe)
        return pipe

    def source_entries(self, pipe: Pipe, identity: str) -> Pipe:
        """One record per tag entry of `identity` found in the tracing column."""
        field = self.field_name
        return pipe.select(pl.col(field).explode()).filter(
            pl.col(field).struct.field(TAG_SOURCE) == identity
        )

    @abstractmethod
    def accumulate(self, identity: str, pipe: Pipe) -> None:
        """Fold the tags of a written pipe into the accumulator of a source."""

    @abstractmethod
    def resolve(self, source: Source) -> Pipe | None:
        """Turn the accumulator of a source into the subset of its records."""

    def on_flow_complete(self) -> dict[Source, Pipe]:
        ret: dict[Source, Pipe] = {}
        with self.suspended():
            for source in self.sources.values():
                pipe = self.resolve(source)
                if pipe is not None:
                    ret[source] = pipe
        logger.info(
            f"Resolved traced subsets for {len(ret)} of {len(self.sources)} sources"
        )
        return ret

    def provenance(self, df: pl.DataFrame) -> list[T | None]:
        """Decode the tracing column of a collected frame into tag values."""
        return [
            None if cell is None else self.tag.decode(cell)
            for cell in df.get_column(self.field_name).to_list()
        ]

    def __repr__(self) -> str:
        return f"{type(self).__name__}(field_name={self.field_name!r})"
