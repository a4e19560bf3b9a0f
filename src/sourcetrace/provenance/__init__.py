"""Provenance payloads and the structures used to resolve them.

- [BitSet][sourcetrace.provenance.bitset.BitSet]: packed bit array for Bloom membership checks
- [BloomHash][sourcetrace.provenance.hashing.BloomHash]: k-hash function over canonical record strings
- [ProvenanceTag][sourcetrace.provenance.tags.ProvenanceTag]: merge contract of provenance tags,
  implemented by `ExactProvenance` and `ApproximateProvenance`
"""

from sourcetrace.provenance.bitset import BitSet
from sourcetrace.provenance.hashing import BloomHash
from sourcetrace.provenance.tags import (
    ApproximateProvenance,
    BloomTag,
    ExactProvenance,
    ExactTag,
    ProvenanceTag,
    canonical_record,
    canonical_record_expr,
)

__all__ = [
    "ApproximateProvenance",
    "BitSet",
    "BloomHash",
    "BloomTag",
    "ExactProvenance",
    "ExactTag",
    "ProvenanceTag",
    "canonical_record",
    "canonical_record_expr",
]
