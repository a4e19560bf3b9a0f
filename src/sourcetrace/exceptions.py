"""Exceptions raised by the source tracing layer."""


class SourceTraceError(Exception):
    """Base exception for source tracing errors."""

    pass


class TracingProtocolError(SourceTraceError):
    """Raised when the join hooks are called out of order.

    Two `before_join` calls (one per side) must precede every `after_join`.
    """

    pass


class TracingConfigurationError(SourceTraceError, ValueError):
    """Raised when a tracing strategy is constructed with invalid parameters."""

    pass


class SourceReadError(SourceTraceError):
    """Raised when a source cannot be turned into a lazy frame."""

    pass
