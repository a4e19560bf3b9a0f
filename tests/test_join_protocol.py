"""The two-sided join hooks of input tracing, called directly."""

import polars as pl
import pytest

from sourcetrace import (
    Flow,
    JoinSide,
    MemorySource,
    Pipe,
    TracingProtocolError,
)
from sourcetrace.models.constants import DEFAULT_TRACING_FIELD


@pytest.fixture
def traced(flow: Flow, numbers: MemorySource) -> Pipe:
    return flow.read(numbers)


@pytest.fixture
def untraced(flow: Flow) -> Pipe:
    return flow.read(
        MemorySource(name="labels", data=pl.DataFrame({"n": [1, 2]}), traceable=False)
    )


def test_left_side_twice_raises(flow: Flow, traced: Pipe) -> None:
    flow.tracing.before_join(traced, JoinSide.LEFT)
    with pytest.raises(TracingProtocolError, match="left side"):
        flow.tracing.before_join(traced, JoinSide.LEFT)


def test_right_side_twice_raises(flow: Flow, traced: Pipe) -> None:
    flow.tracing.before_join(traced, JoinSide.RIGHT)
    with pytest.raises(TracingProtocolError, match="right side"):
        flow.tracing.before_join(traced, JoinSide.RIGHT)


def test_after_join_requires_both_sides(flow: Flow, traced: Pipe) -> None:
    with pytest.raises(TracingProtocolError):
        flow.tracing.after_join(traced)

    flow.tracing.before_join(traced, JoinSide.LEFT)
    with pytest.raises(TracingProtocolError):
        flow.tracing.after_join(traced)


def test_traced_right_side_is_renamed(flow: Flow, traced: Pipe) -> None:
    right = flow.tracing.before_join(traced, JoinSide.RIGHT)

    assert DEFAULT_TRACING_FIELD not in right.columns
    assert DEFAULT_TRACING_FIELD + "_" in right.columns


def test_untraced_right_side_is_untouched(flow: Flow, untraced: Pipe) -> None:
    right = flow.tracing.before_join(untraced, JoinSide.RIGHT)
    assert right is untraced


def test_left_side_is_never_renamed(flow: Flow, traced: Pipe) -> None:
    left = flow.tracing.before_join(traced, JoinSide.LEFT)
    assert left is traced


def test_protocol_completes_a_cycle(flow: Flow, traced: Pipe, untraced: Pipe) -> None:
    tracing = flow.tracing
    for _ in range(2):
        left = tracing.before_join(untraced, JoinSide.LEFT)
        right = tracing.before_join(traced, JoinSide.RIGHT)
        joined = Pipe(flow, left.frame.join(right.frame, on="n"), (left, right))
        joined = tracing.after_join(joined)

        assert DEFAULT_TRACING_FIELD in joined.columns
        assert DEFAULT_TRACING_FIELD + "_" not in joined.columns
        assert tracing.is_traced(joined)


def test_untraced_join_stays_untraced(flow: Flow, untraced: Pipe) -> None:
    other = flow.read(
        MemorySource(name="more", data=pl.DataFrame({"n": [2]}), traceable=False)
    )
    joined = untraced.join(other, on="n")

    assert not flow.tracing.is_traced(joined)
    assert DEFAULT_TRACING_FIELD not in joined.columns


@pytest.mark.parametrize("how", ["semi", "anti"])
def test_filtering_joins_keep_left_provenance(flow: Flow, traced: Pipe, how: str) -> None:
    """Semi and anti joins drop the right side, and with it its provenance."""
    other = flow.read(MemorySource(name="keys", data=pl.DataFrame({"n": [2]})))
    joined = traced.join(other, on="n", how=how)

    assert joined.columns == ["n", DEFAULT_TRACING_FIELD]
    expected = [2] if how == "semi" else [1, 3]
    assert sorted(joined.collect()["n"].to_list()) == expected


def test_failed_join_does_not_block_later_joins(flow: Flow, traced: Pipe) -> None:
    other = flow.read(MemorySource(name="keys", data=pl.DataFrame({"n": [2]})))

    with pytest.raises(ValueError):
        traced.join(other)

    joined = traced.join(other, on="n")
    assert sorted(joined.collect()["n"].to_list()) == [2]
    assert DEFAULT_TRACING_FIELD + "_" not in joined.columns
