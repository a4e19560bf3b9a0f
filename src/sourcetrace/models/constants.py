"""Shared constants for tracing column names and defaults."""

# Column holding the provenance tag of every traced record
DEFAULT_TRACING_FIELD = "__source_data__"

# Suffix given to the right side's tracing field while a join is being built
JOIN_SIDE_SUFFIX = "_"

# Struct field names inside the provenance payload lists
TAG_SOURCE = "source"
TAG_RECORD = "record"
TAG_BIT = "bit"

# Helper columns used while building accumulator and decode branches
BLOOM_FILTER_COLUMN = "__bf__"
BLOOM_FILTER_OTHER_COLUMN = "__bf2__"
CANONICAL_RECORD_COLUMN = "__tuplestr__"

DEFAULT_BF_HASHES = 5
DEFAULT_BF_WIDTH = 1 << 24

# Bit positions are stored as UInt32
MAX_BF_WIDTH = 1 << 32

# Columns that the tracing layer adds and that sinks never persist
ALL_HELPER_COLUMNS = frozenset(
    {
        BLOOM_FILTER_COLUMN,
        BLOOM_FILTER_OTHER_COLUMN,
        CANONICAL_RECORD_COLUMN,
    }
)
