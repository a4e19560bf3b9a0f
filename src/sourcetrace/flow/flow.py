"""Flow: the unit of graph assembly and execution."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field

import polars as pl

from sourcetrace.config import TracingConfig
from sourcetrace.exceptions import SourceTraceError
from sourcetrace.flow.pipe import Pipe
from sourcetrace.models.constants import ALL_HELPER_COLUMNS, JOIN_SIDE_SUFFIX
from sourcetrace.models.sink import Sink
from sourcetrace.models.source import Source
from sourcetrace.tracing.base import Tracing
from sourcetrace.tracing.context import TracingContext

logger = logging.getLogger(__name__)

TraceSinks = Mapping[Source, Sink] | Callable[[Source], Sink | None]


@dataclass
class FlowResult:
    """Outcome of [Flow.run][sourcetrace.flow.flow.Flow.run]."""

    written: int
    source_subsets: dict[Source, pl.DataFrame] = field(default_factory=dict)
    approximate: bool = False


class Flow:
    """Assembles a dataflow graph and runs it.

    A flow owns one [TracingContext][sourcetrace.tracing.context.TracingContext],
    built from its configuration. Every pipe created from the flow reads the
    context's current strategy when it is transformed.

    Example:
        ```py
        import polars as pl

        flow = Flow(TracingConfig(enabled=True))
        src = MemorySource(name="numbers", data=pl.DataFrame({"n": [1, 2, 3]}))
        out = MemorySink()
        flow.read(src).filter(pl.col("n") % 2 == 0).write(out)
        result = flow.run()
        assert result.source_subsets[src]["n"].to_list() == [2]
        ```
    """

    def __init__(
        self,
        config: TracingConfig | None = None,
        *,
        context: TracingContext | None = None,
    ):
        self.config = config or TracingConfig()
        self.context = context or TracingContext.from_config(self.config)
        self._writes: list[tuple[Pipe, Sink]] = []
        self._completed = False

    @property
    def tracing(self) -> Tracing:
        return self.context.current

    @property
    def writes(self) -> list[tuple[Pipe, Sink]]:
        return list(self._writes)

    def read(self, source: Source) -> Pipe:
        pipe = Pipe(self, source.read(), name=source.identity)
        return self.tracing.after_read(source, pipe)

    def add_write(self, pipe: Pipe, sink: Sink) -> None:
        if self._completed:
            raise SourceTraceError("Cannot add writes to a flow that has already completed")
        self._writes.append((pipe, sink))

    def complete(self) -> dict[Source, Pipe]:
        """Finish graph assembly and return the traced subset branch of every source."""
        if self._completed:
            raise SourceTraceError("Flow has already completed")
        self._completed = True
        return self.tracing.on_flow_complete()

    def _output_frame(self, pipe: Pipe) -> pl.LazyFrame:
        internal = set(ALL_HELPER_COLUMNS)
        field_name = self.context.root.tracing_fields()
        if field_name is not None:
            internal.update({field_name, field_name + JOIN_SIDE_SUFFIX})
        columns = [c for c in pipe.columns if c not in internal]
        return pipe.frame.select(columns)

    def run(self, trace_sinks: TraceSinks | None = None) -> FlowResult:
        """Execute every write and collect the traced source subsets.

        Args:
            trace_sinks: Optional destinations for the traced subsets, either a
                mapping from source to sink or a callable returning a sink (or
                None to skip) for a source.

        Returns:
            A [FlowResult][sourcetrace.flow.flow.FlowResult] holding the
            collected subsets. For Bloom filter tracing the subsets may contain
            records that did not contribute to any output.
        """
        subsets = self.complete()
        sources = list(subsets)
        frames = [self._output_frame(pipe) for pipe, _ in self._writes]
        frames.extend(subsets[source].frame for source in sources)

        logger.info(
            f"Running flow with {len(self._writes)} writes and {len(sources)} traced sources"
        )
        collected = pl.collect_all(frames)

        for (_, sink), df in zip(self._writes, collected):
            sink.write(df)

        result = FlowResult(
            written=len(self._writes),
            approximate=self.context.root.approximate,
        )
        for source, df in zip(sources, collected[len(self._writes) :]):
            result.source_subsets[source] = df
            sink = _resolve_trace_sink(trace_sinks, source)
            if sink is not None:
                logger.debug(f"Writing {df.height} traced records of {source.identity}")
                sink.write(df)
        return result


def _resolve_trace_sink(trace_sinks: TraceSinks | None, source: Source) -> Sink | None:
    if trace_sinks is None:
        return None
    if isinstance(trace_sinks, Mapping):
        return trace_sinks.get(source)
    return trace_sinks(source)
