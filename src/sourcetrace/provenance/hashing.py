"""k-hash function feeding the approximate provenance strategy."""

import hashlib


class BloomHash:
    """Map a string onto `num_hashes` positions in `[0, width)`.

    Positions are derived by double hashing the two halves of a 128-bit
    BLAKE2b digest, so they are stable across processes and interpreter runs.

    Example:
        ```py
        bf_hash = BloomHash(num_hashes=3, width=1024)
        positions = bf_hash("record")
        assert len(positions) == 3
        assert all(0 <= p < 1024 for p in positions)
        ```
    """

    def __init__(self, num_hashes: int, width: int):
        if num_hashes < 1:
            raise ValueError(f"num_hashes must be at least 1, got {num_hashes}")
        if width < 1:
            raise ValueError(f"width must be positive, got {width}")
        self.num_hashes = num_hashes
        self.width = width

    def __call__(self, value: str) -> list[int]:
        digest = hashlib.blake2b(value.encode("utf-8"), digest_size=16).digest()
        h1 = int.from_bytes(digest[:8], "little")
        # odd step so that positions do not collapse when width is a power of two
        h2 = int.from_bytes(digest[8:], "little") | 1
        return [(h1 + i * h2) % self.width for i in range(self.num_hashes)]

    def __repr__(self) -> str:
        return f"BloomHash(num_hashes={self.num_hashes}, width={self.width})"
