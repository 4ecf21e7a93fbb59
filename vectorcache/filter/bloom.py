"""
Bloom filter for per-shard membership hints.

A Bloom filter answers "possibly present" or "definitely absent":
- add(id) sets ``num_hashes`` bits derived from the id
- maybe_contains(id) checks that all of those bits are set

There are no false negatives. The false-positive probability at ``n``
inserted elements is approximately (1 - e^(-k*n/m))^k for ``m`` bits
and ``k`` hash functions. The filter is append-only: removing a record
from a shard never clears bits.

Sizing (for expected elements n and target false-positive rate p):
    m = ceil(-n * ln(p) / ln(2)^2)
    k = max(1, round(m / n * ln(2)))
"""

from __future__ import annotations

import hashlib
import math
import struct
import threading
from typing import Any, Dict, Tuple

import numpy as np


class BloomFilter:
    """
    Bit-array Bloom filter keyed by integer record ids.

    Uses double hashing: positions are ``h1 + i * h2 (mod m)`` with
    ``h1``, ``h2`` taken from one 128-bit BLAKE2b digest.

    Example:
        >>> bloom = BloomFilter(expected_items=1000, false_positive_rate=0.01)
        >>> bloom.add(42)
        >>> bloom.maybe_contains(42)
        True
    """

    def __init__(
        self,
        expected_items: int,
        false_positive_rate: float = 0.01,
    ):
        """
        Initialize an empty filter.

        Args:
            expected_items: Element count the filter is sized for
            false_positive_rate: Target false-positive rate at that count
        """
        if expected_items < 1:
            raise ValueError(f"expected_items must be >= 1, got {expected_items}")
        if not 0.0 < false_positive_rate < 1.0:
            raise ValueError(
                f"false_positive_rate must be in (0, 1), got {false_positive_rate}"
            )

        num_bits, num_hashes = self.optimal_parameters(expected_items, false_positive_rate)

        self.expected_items = expected_items
        self.false_positive_rate = false_positive_rate
        self._num_bits = num_bits
        self._num_hashes = num_hashes
        self._bits = np.zeros((num_bits + 7) // 8, dtype=np.uint8)
        self._count = 0
        self._lock = threading.Lock()

    @staticmethod
    def optimal_parameters(expected_items: int, false_positive_rate: float) -> Tuple[int, int]:
        """Bit count and hash count for a target false-positive rate."""
        ln2 = math.log(2)
        num_bits = max(8, int(math.ceil(-expected_items * math.log(false_positive_rate) / (ln2 * ln2))))
        num_hashes = max(1, int(round(num_bits / expected_items * ln2)))
        return num_bits, num_hashes

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def num_bits(self) -> int:
        return self._num_bits

    @property
    def num_hashes(self) -> int:
        return self._num_hashes

    @property
    def count(self) -> int:
        """Number of add() calls (including repeats)."""
        return self._count

    @property
    def fill_ratio(self) -> float:
        """Fraction of bits set."""
        set_bits = int(np.unpackbits(self._bits)[:self._num_bits].sum())
        return set_bits / self._num_bits

    def estimated_false_positive_rate(self) -> float:
        """False-positive probability given the current fill ratio."""
        return self.fill_ratio ** self._num_hashes

    # =========================================================================
    # OPERATIONS
    # =========================================================================

    def _positions(self, id: int) -> np.ndarray:
        digest = hashlib.blake2b(struct.pack('<q', id), digest_size=16).digest()
        h1, h2 = struct.unpack('<QQ', digest)
        # Odd step so the probe sequence doesn't collapse
        h2 |= 1
        i = np.arange(self._num_hashes, dtype=np.uint64)
        return (np.uint64(h1) + i * np.uint64(h2)) % np.uint64(self._num_bits)

    def add(self, id: int) -> None:
        """Record ``id`` as a member."""
        positions = self._positions(id)
        with self._lock:
            np.bitwise_or.at(
                self._bits,
                (positions >> np.uint64(3)).astype(np.intp),
                (np.uint8(1) << (positions & np.uint64(7)).astype(np.uint8)),
            )
            self._count += 1

    def maybe_contains(self, id: int) -> bool:
        """False means definitely absent; True means possibly present."""
        positions = self._positions(id)
        bytes_ = self._bits[(positions >> np.uint64(3)).astype(np.intp)]
        masks = np.uint8(1) << (positions & np.uint64(7)).astype(np.uint8)
        return bool(np.all(bytes_ & masks))

    def __contains__(self, id: int) -> bool:
        return self.maybe_contains(id)

    # =========================================================================
    # SERIALIZATION
    # =========================================================================

    def to_bytes(self) -> bytes:
        """Raw bit array."""
        return self._bits.tobytes()

    def state(self) -> Dict[str, Any]:
        """Sizing parameters needed to restore the filter."""
        return {
            "expected_items": self.expected_items,
            "false_positive_rate": self.false_positive_rate,
            "num_bits": self._num_bits,
            "num_hashes": self._num_hashes,
            "count": self._count,
        }

    @classmethod
    def from_state(cls, state: Dict[str, Any], bits: bytes) -> BloomFilter:
        """
        Restore a filter from ``state()`` and ``to_bytes()`` output.

        Raises:
            ValueError: If the bit array doesn't match the parameters
        """
        bloom = cls(state["expected_items"], state["false_positive_rate"])

        if bloom.num_bits != state["num_bits"] or bloom.num_hashes != state["num_hashes"]:
            raise ValueError("Filter parameters don't match sizing")

        if len(bits) != len(bloom._bits):
            raise ValueError(
                f"Filter bit array is {len(bits)} bytes, expected {len(bloom._bits)}"
            )

        bloom._bits = np.frombuffer(bits, dtype=np.uint8).copy()
        bloom._count = int(state.get("count", 0))
        return bloom

    def __repr__(self) -> str:
        return (
            f"BloomFilter(num_bits={self._num_bits}, num_hashes={self._num_hashes}, "
            f"count={self._count})"
        )
