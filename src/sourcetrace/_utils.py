from typing import Any

import narwhals as nw
import polars as pl


def to_polars_lazy(native: Any) -> pl.LazyFrame:
    """Normalize any narwhals-compatible native frame into a Polars LazyFrame."""
    if isinstance(native, pl.LazyFrame):
        return native
    if isinstance(native, pl.DataFrame):
        return native.lazy()

    frame = nw.from_native(native)
    if frame.implementation == nw.Implementation.POLARS:
        return frame.lazy().to_native()
    elif isinstance(frame, nw.DataFrame):
        return frame.to_polars().lazy()
    elif isinstance(frame, nw.LazyFrame):
        return frame.collect().to_polars().lazy()
    else:
        raise ValueError(f"Unsupported frame type: {type(native)}")


__all__ = ["to_polars_lazy"]
