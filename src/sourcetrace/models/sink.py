"""Destinations of written branches and traced source subsets."""

from abc import ABC, abstractmethod
from pathlib import Path

import polars as pl


class Sink(ABC):
    """Receives the materialized records of a written branch."""

    @abstractmethod
    def write(self, df: pl.DataFrame) -> None: ...


class MemorySink(Sink):
    """Keeps the last written DataFrame in memory."""

    def __init__(self, name: str = "memory"):
        self.name = name
        self.data: pl.DataFrame | None = None

    def write(self, df: pl.DataFrame) -> None:
        self.data = df

    def __repr__(self) -> str:
        rows = None if self.data is None else self.data.height
        return f"MemorySink(name={self.name!r}, rows={rows})"


class ParquetSink(Sink):
    def __init__(self, path: str | Path):
        self.path = Path(path)

    def write(self, df: pl.DataFrame) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        df.write_parquet(self.path)

    def __repr__(self) -> str:
        return f"ParquetSink({str(self.path)!r})"


class CsvSink(Sink):
    def __init__(self, path: str | Path, separator: str = ","):
        self.path = Path(path)
        self.separator = separator

    def write(self, df: pl.DataFrame) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        df.write_csv(self.path, separator=self.separator)

    def __repr__(self) -> str:
        return f"CsvSink({str(self.path)!r})"
