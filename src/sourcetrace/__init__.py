"""Source record tracing for lazy dataflow graphs.

Tracks, for every record written by a flow, which records of which sources
contributed to it, and resolves that back into the subset of every source
that was actually consumed.
"""

from sourcetrace.config import TracingConfig, TracingStrategy
from sourcetrace.exceptions import (
    SourceReadError,
    SourceTraceError,
    TracingConfigurationError,
    TracingProtocolError,
)
from sourcetrace.flow import Flow, FlowResult, GroupBuilder, Pipe
from sourcetrace.models import (
    CsvSink,
    CsvSource,
    MemorySink,
    MemorySource,
    ParquetSink,
    ParquetSource,
    Sink,
    Source,
)
from sourcetrace.tracing import (
    BloomFilterInputTracing,
    ExactInputTracing,
    InputTracing,
    JoinSide,
    NullTracing,
    Tracing,
    TracingContext,
)


def init_tracing(config: TracingConfig | None = None) -> TracingContext:
    """Build the tracing context of a run.

    Args:
        config: Tracing configuration. Loaded from `sourcetrace.toml`,
            `pyproject.toml` and `SOURCETRACE_*` environment variables when omitted.

    Returns:
        TracingContext: A context whose root strategy matches the configuration.
    """
    return TracingContext.from_config(config or TracingConfig.load())


__all__ = [
    "BloomFilterInputTracing",
    "CsvSink",
    "CsvSource",
    "ExactInputTracing",
    "Flow",
    "FlowResult",
    "GroupBuilder",
    "InputTracing",
    "JoinSide",
    "MemorySink",
    "MemorySource",
    "NullTracing",
    "ParquetSink",
    "ParquetSource",
    "Pipe",
    "Sink",
    "Source",
    "SourceReadError",
    "SourceTraceError",
    "Tracing",
    "TracingConfig",
    "TracingConfigurationError",
    "TracingContext",
    "TracingProtocolError",
    "TracingStrategy",
    "init_tracing",
]
