"""Scoped selection of the active tracing strategy."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager

from sourcetrace.config import TracingConfig, TracingStrategy
from sourcetrace.exceptions import SourceTraceError
from sourcetrace.tracing.base import NullTracing, Tracing

logger = logging.getLogger(__name__)


class TracingContext:
    """Stack of tracing strategies owned by one flow.

    The bottom of the stack (`root`) is the strategy configured for the run.
    Pipes read `current` at every interception point, so pushing a
    [NullTracing][sourcetrace.tracing.base.NullTracing] turns interception
    off for the graph segments the tracing layer builds for itself.

    Example:
        ```py
        context = TracingContext.from_config(TracingConfig(enabled=True))
        with context.suspended():
            assert context.current.tracing_fields() is None
        assert context.current is context.root
        ```
    """

    def __init__(self, tracing: Tracing | None = None):
        self.root: Tracing = tracing or NullTracing()
        self._stack: list[Tracing] = [self.root]
        self.root.attach(self)

    @classmethod
    def from_config(cls, config: TracingConfig) -> TracingContext:
        """Build the context for a run from its configuration."""
        # imported here, the strategies import the base module of this package
        from sourcetrace.tracing.bloom import BloomFilterInputTracing
        from sourcetrace.tracing.exact import ExactInputTracing

        if not config.enabled:
            return cls()

        tracing: Tracing
        if config.strategy is TracingStrategy.BLOOM:
            tracing = BloomFilterInputTracing(
                bf_hashes=config.bf_hashes,
                bf_width=config.bf_width,
                field_name=config.field_name,
            )
        else:
            tracing = ExactInputTracing(field_name=config.field_name)
        logger.info(f"Source tracing enabled with {tracing!r}")
        return cls(tracing)

    @property
    def current(self) -> Tracing:
        return self._stack[-1]

    @property
    def enabled(self) -> bool:
        """Whether the configured strategy traces anything."""
        return not isinstance(self.root, NullTracing)

    @property
    def depth(self) -> int:
        return len(self._stack)

    @contextmanager
    def use(self, tracing: Tracing) -> Iterator[Tracing]:
        """Temporarily make `tracing` the current strategy.

        The previous strategy is restored when the block exits, including
        when it raises.
        """
        self._stack.append(tracing)
        try:
            yield tracing
        finally:
            popped = self._stack.pop()
            if popped is not tracing:
                raise SourceTraceError("Tracing strategies were restored out of order")

    def suspended(self) -> AbstractContextManager[Tracing]:
        """Turn tracing off for the duration of the block."""
        return self.use(NullTracing())

    def reset(self) -> None:
        """Replace the configured strategy by a no-op one."""
        self.root = NullTracing()
        self._stack = [self.root]

    def __repr__(self) -> str:
        return f"TracingContext(root={self.root!r}, depth={self.depth})"
