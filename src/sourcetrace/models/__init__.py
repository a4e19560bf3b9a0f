from sourcetrace.models.sink import CsvSink, MemorySink, ParquetSink, Sink
from sourcetrace.models.source import (
    CsvSource,
    FileSource,
    MemorySource,
    ParquetSource,
    Source,
)

__all__ = [
    "CsvSink",
    "CsvSource",
    "FileSource",
    "MemorySink",
    "MemorySource",
    "ParquetSink",
    "ParquetSource",
    "Sink",
    "Source",
]
