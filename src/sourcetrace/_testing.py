"""Helpers for testing flows under both tracing strategies."""

from collections.abc import Iterable
from typing import Any

from sourcetrace.flow.flow import FlowResult
from sourcetrace.models.source import Source


def traced_values(result: FlowResult, source: Source, column: str) -> list[Any]:
    """Values of `column` in the traced subset of `source`."""
    return result.source_subsets[source].get_column(column).to_list()


def assert_traced_subset(
    result: FlowResult,
    source: Source,
    column: str,
    expected: Iterable[Any],
) -> None:
    """Check the traced subset of `source` against the records expected to contribute.

    Exact tracing must return exactly `expected`, without duplicates. Bloom
    filter tracing must return a superset of `expected` made only of records
    of the source.
    """
    got = traced_values(result, source, column)
    expected_set = set(expected)

    if result.approximate:
        universe = set(source.read().collect().get_column(column).to_list())
        assert expected_set <= set(got), f"missing traced records: {expected_set - set(got)}"
        assert set(got) <= universe, f"records not in source: {set(got) - universe}"
    else:
        assert sorted(got) == sorted(expected_set), f"expected {sorted(expected_set)}, got {sorted(got)}"
