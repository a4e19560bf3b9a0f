import os

import polars as pl
import pytest

from sourcetrace import (
    Flow,
    MemorySource,
    TracingConfig,
    TracingStrategy,
)

# Small enough to keep BitSet expansion cheap, wide enough that the handful of
# records used in tests never collide
TEST_BF_WIDTH = 1 << 20


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep config discovery away from the repository and the caller's environment."""
    for name in list(os.environ):
        if name.startswith("SOURCETRACE_"):
            monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)


@pytest.fixture(params=[TracingStrategy.EXACT, TracingStrategy.BLOOM], ids=["exact", "bloom"])
def tracing_config(request) -> TracingConfig:
    return TracingConfig(enabled=True, strategy=request.param, bf_width=TEST_BF_WIDTH)


@pytest.fixture
def exact_config() -> TracingConfig:
    return TracingConfig(enabled=True, strategy=TracingStrategy.EXACT)


@pytest.fixture
def flow(tracing_config: TracingConfig) -> Flow:
    return Flow(tracing_config)


@pytest.fixture
def exact_flow(exact_config: TracingConfig) -> Flow:
    return Flow(exact_config)


@pytest.fixture
def numbers() -> MemorySource:
    return MemorySource(name="numbers", data=pl.DataFrame({"n": [1, 2, 3]}))


@pytest.fixture
def orders() -> MemorySource:
    return MemorySource(
        name="orders",
        data=pl.DataFrame(
            {
                "order_id": [1, 2, 3, 4],
                "customer": ["a", "a", "b", "c"],
                "amount": [10, 20, 5, 50],
            }
        ),
    )


@pytest.fixture
def customers() -> MemorySource:
    return MemorySource(
        name="customers",
        data=pl.DataFrame(
            {
                "customer": ["a", "b", "d"],
                "country": ["fr", "de", "it"],
            }
        ),
    )

