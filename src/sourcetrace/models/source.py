"""Named inputs of a flow."""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import polars as pl
import pydantic
from pydantic import ConfigDict, model_validator

from sourcetrace._utils import to_polars_lazy
from sourcetrace.exceptions import SourceReadError


class Source(pydantic.BaseModel, ABC):
    """An externally owned, named input dataset with a fixed schema.

    Sources compare and hash by `identity`, so reading the same source twice
    produces two branches that are correlated to the same traced source.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str

    # Untraceable sources are read without attaching provenance
    traceable: bool = True

    @property
    def identity(self) -> str:
        """Stable string identity used as the key of provenance tags."""
        return f"{type(self).__name__}({self.name})"

    @abstractmethod
    def scan(self) -> pl.LazyFrame:
        """Lazily load the source data."""

    def read(self) -> pl.LazyFrame:
        try:
            return self.scan()
        except (OSError, TypeError, ValueError, pl.exceptions.PolarsError) as e:
            raise SourceReadError(f"Cannot read source {self.identity}: {e}") from e

    @property
    def fields(self) -> list[str]:
        """Ordered schema field names of the source."""
        return self.read().collect_schema().names()

    def __str__(self) -> str:
        return self.identity

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Source):
            return NotImplemented
        return self.identity == other.identity

    def __hash__(self) -> int:
        return hash(self.identity)


class MemorySource(Source):
    """Source backed by an in-memory frame.

    Accepts any frame narwhals can wrap (Polars, pandas, PyArrow, ...).

    Example:
        ```py
        import polars as pl

        src = MemorySource(name="numbers", data=pl.DataFrame({"n": [1, 2, 3]}))
        assert src.fields == ["n"]
        ```
    """

    data: Any = pydantic.Field(repr=False)

    def scan(self) -> pl.LazyFrame:
        return to_polars_lazy(self.data)


class FileSource(Source):
    """Source backed by a file. The path is the default name."""

    path: Path

    @model_validator(mode="before")
    @classmethod
    def default_name(cls, data: Any) -> Any:
        if isinstance(data, dict) and "name" not in data and "path" in data:
            data = {**data, "name": str(data["path"])}
        return data


class ParquetSource(FileSource):
    def scan(self) -> pl.LazyFrame:
        return pl.scan_parquet(self.path)


class CsvSource(FileSource):
    separator: str = ","
    has_header: bool = True

    def scan(self) -> pl.LazyFrame:
        return pl.scan_csv(
            self.path, separator=self.separator, has_header=self.has_header
        )
