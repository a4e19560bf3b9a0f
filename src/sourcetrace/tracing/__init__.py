from sourcetrace.tracing.base import InputTracing, JoinSide, NullTracing, Tracing
from sourcetrace.tracing.bloom import BloomFilterInputTracing
from sourcetrace.tracing.context import TracingContext
from sourcetrace.tracing.exact import ExactInputTracing

__all__ = [
    "BloomFilterInputTracing",
    "ExactInputTracing",
    "InputTracing",
    "JoinSide",
    "NullTracing",
    "Tracing",
    "TracingContext",
]
