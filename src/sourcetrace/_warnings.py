"""sourcetrace warnings.

This module contains all warning classes used by sourcetrace.
"""


class ApproximateLineageWarning(UserWarning):
    """Warning raised when source subsets were resolved from Bloom filters and may contain false positives."""
