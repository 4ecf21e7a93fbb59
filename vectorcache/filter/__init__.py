"""
Probabilistic membership filters.
"""

from .bloom import BloomFilter

__all__ = ["BloomFilter"]
