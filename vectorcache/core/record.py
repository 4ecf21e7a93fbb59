"""
Vector record definition.
"""

from __future__ import annotations

import numpy as np
from dataclasses import dataclass, field, replace
from typing import Dict, Any
import time


@dataclass(frozen=True, eq=False)
class VectorRecord:
    """
    A single cached embedding with its ID, metadata and access state.

    Records are immutable. Accessing a record produces a replacement
    via ``touched()``; the owning shard swaps it in under its lock.

    Attributes:
        id: Unique identifier, assigned at insert
        embedding: The embedding vector (float32, read-only)
        metadata: Opaque payload, never interpreted by the cache
        inserted_at: Insertion timestamp
        last_accessed_at: Timestamp of the most recent access
        access_count: Number of accesses since insertion

    Example:
        >>> record = VectorRecord(
        ...     id=7,
        ...     embedding=np.array([0.1, 0.2, 0.3]),
        ...     metadata=b"cached answer",
        ... )
    """

    id: int
    embedding: np.ndarray
    metadata: bytes = b""
    inserted_at: float = field(default_factory=time.time)
    last_accessed_at: float = -1.0
    access_count: int = 0

    def __post_init__(self):
        """Convert embedding to a read-only float32 array."""
        embedding = np.array(self.embedding, dtype=np.float32)

        if embedding.ndim != 1:
            raise ValueError(
                f"Embedding must be 1-dimensional, got {embedding.ndim} dimensions"
            )

        if len(embedding) == 0:
            raise ValueError("Embedding cannot be empty")

        embedding.setflags(write=False)
        object.__setattr__(self, "embedding", embedding)
        object.__setattr__(self, "metadata", bytes(self.metadata))

        # A fresh record counts as accessed when inserted
        if self.last_accessed_at < 0:
            object.__setattr__(self, "last_accessed_at", self.inserted_at)

    @property
    def dimension(self) -> int:
        """Return the dimension of the embedding."""
        return len(self.embedding)

    def touched(self, now: float) -> VectorRecord:
        """Return a copy recording one more access at ``now``."""
        return replace(
            self,
            last_accessed_at=now,
            access_count=self.access_count + 1,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert record to dictionary."""
        return {
            "id": self.id,
            "embedding": self.embedding.tolist(),
            "metadata": self.metadata,
            "inserted_at": self.inserted_at,
            "last_accessed_at": self.last_accessed_at,
            "access_count": self.access_count,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> VectorRecord:
        """Create record from dictionary."""
        return cls(
            id=int(data["id"]),
            embedding=np.array(data["embedding"], dtype=np.float32),
            metadata=data.get("metadata", b""),
            inserted_at=data["inserted_at"],
            last_accessed_at=data.get("last_accessed_at", -1.0),
            access_count=data.get("access_count", 0),
        )

    def __repr__(self) -> str:
        return (
            f"VectorRecord(id={self.id}, dimension={self.dimension}, "
            f"access_count={self.access_count})"
        )
